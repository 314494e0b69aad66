from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, ValidationInfo, SerializationInfo, field_validator, field_serializer

from urchin.models import User, Profile, Patient, Note


@dataclass(frozen=True)
class DateFormat:
    """A wire timestamp encoding. Offsets are numeric only (`+0000`)."""

    pattern: str        # 서버 문서 표기 (Java SimpleDateFormat 스타일)
    regex: str
    strptime: str
    millis: bool

    def parse(self, value: Any) -> datetime:
        if not isinstance(value, str) or not re.fullmatch(self.regex, value):
            raise ValueError(f"date {value!r} does not match {self.pattern}")
        parsed = datetime.strptime(value, self.strptime)
        return parsed.astimezone(timezone.utc)

    def format(self, value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if self.millis:
            return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}" + value.strftime("%z")
        return value.strftime(self.strptime)


# Date format for most things (sign-in, profile, query parameters)
DEFAULT_DATE_FORMAT = DateFormat(
    pattern="yyyy-MM-dd HH:mm:ss.SSSZ",
    regex=r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3}[+-]\d{4}",
    strptime="%Y-%m-%d %H:%M:%S.%f%z",
    millis=True,
)

# Date format for messages
MESSAGE_DATE_FORMAT = DateFormat(
    pattern="yyyy-MM-dd'T'HH:mm:ssZ",
    regex=r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}[+-]\d{4}",
    strptime="%Y-%m-%dT%H:%M:%S%z",
    millis=False,
)


def _date_format(context: Optional[Dict[str, Any]]) -> DateFormat:
    if context and context.get("date_format") is not None:
        return context["date_format"]
    return DEFAULT_DATE_FORMAT


class PatientPayload(BaseModel):
    birthday: Optional[str] = None
    diagnosis_date: Optional[str] = Field(None, alias="diagnosisDate")
    about_me: Optional[str] = Field(None, alias="aboutMe")

    class Config:
        from_attributes = True
        populate_by_name = True

    def to_entity(self) -> Patient:
        return Patient(birthday=self.birthday, diagnosis_date=self.diagnosis_date, about_me=self.about_me)


class UserPayload(BaseModel):
    """
    /auth/login 응답 body.
    String lists (emails, viewableUserIds) are read but never written back.
    """
    userid: str
    username: Optional[str] = None
    emails: Optional[List[str]] = Field(None, exclude=True)
    email_verified: Optional[bool] = Field(None, alias="emailVerified")
    terms_accepted: Optional[str] = Field(None, alias="termsAccepted")
    viewable_user_ids: Optional[List[str]] = Field(None, alias="viewableUserIds", exclude=True)

    class Config:
        from_attributes = True
        populate_by_name = True

    def to_entity(self) -> User:
        # 응답에 없는 필드는 건드리지 않는다 (기존 profile_id, viewable ids 보존)
        return User(**{name: getattr(self, name) for name in self.model_fields_set})


class ProfilePayload(BaseModel):
    full_name: Optional[str] = Field(None, alias="fullName")
    short_name: Optional[str] = Field(None, alias="shortName")
    patient: Optional[PatientPayload] = None

    class Config:
        from_attributes = True
        populate_by_name = True

    def to_entity(self) -> Profile:
        patient = self.patient.to_entity() if self.patient is not None else None
        return Profile(full_name=self.full_name, short_name=self.short_name, patient=patient)


class NotePayload(BaseModel):
    id: str
    userid: Optional[str] = None
    groupid: Optional[str] = None
    parentmessage: Optional[str] = None
    messagetext: str
    timestamp: datetime
    createdtime: Optional[datetime] = None
    modifiedtime: Optional[datetime] = None
    replies: Optional[List[str]] = Field(None, exclude=True)

    class Config:
        from_attributes = True
        populate_by_name = True

    @field_validator("timestamp", "createdtime", "modifiedtime", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any, info: ValidationInfo):
        if value is None or isinstance(value, datetime):
            return value
        return _date_format(info.context).parse(value)

    @field_serializer("timestamp", "createdtime", "modifiedtime")
    def _format_dates(self, value: Optional[datetime], info: SerializationInfo):
        if value is None:
            return None
        return _date_format(info.context).format(value)

    def to_entity(self) -> Note:
        return Note(**{name: getattr(self, name) for name in type(self).model_fields})


class MessagesEnvelope(BaseModel):
    """`/message/notes` 응답: messages 배열의 각 원소는 다시 디코딩할 JSON 문자열."""
    messages: List[Any]


# entity type -> wire schema
PAYLOADS: Dict[type, type[BaseModel]] = {
    User: UserPayload,
    Profile: ProfilePayload,
    Patient: PatientPayload,
    Note: NotePayload,
}
