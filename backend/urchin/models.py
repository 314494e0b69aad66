from __future__ import annotations
from typing import Optional
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Text, Boolean, DateTime, ForeignKey, JSON, CheckConstraint

from urchin.db import Base

# Session 싱글톤 마커. 테이블에는 이 key 를 가진 row 하나만 존재할 수 있다.
SESSION_KEY = "session"


class Session(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint(f"key = '{SESSION_KEY}'", name="ck_sessions_singleton"),
    )

    key: Mapped[str] = mapped_column(String, primary_key=True, default=SESSION_KEY)
    session_id: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("users.userid", ondelete="SET NULL"), nullable=True
    )


class User(Base):
    __tablename__ = "users"

    userid: Mapped[str] = mapped_column(String, primary_key=True)
    username: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    emails: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    email_verified: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    terms_accepted: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    profile_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("profiles.userid", ondelete="SET NULL"), nullable=True
    )
    # 순서 유지되는 문자열 리스트 (viewable user ids)
    viewable_user_ids: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)


class Profile(Base):
    __tablename__ = "profiles"

    userid: Mapped[str] = mapped_column(String, primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    short_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    patient: Mapped[Optional["Patient"]] = relationship(
        back_populates="profile", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )

    def stamp_owner(self, userid: str) -> None:
        """The profile payload does not carry its owner; set it on the profile and its patient."""
        self.userid = userid
        if self.patient is not None:
            self.patient.userid = userid


class Patient(Base):
    __tablename__ = "patients"

    userid: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.userid", ondelete="CASCADE"), primary_key=True
    )
    birthday: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    diagnosis_date: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    about_me: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    profile: Mapped["Profile"] = relationship(back_populates="patient")


class Note(Base):
    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    userid: Mapped[str] = mapped_column(String, nullable=False, index=True)
    groupid: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    parentmessage: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    messagetext: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    createdtime: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    modifiedtime: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    replies: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
