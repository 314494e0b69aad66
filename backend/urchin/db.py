from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from urchin.config import DATABASE_URL
from urchin.errors import StoreError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


T = TypeVar("T", bound=Base)


class Transaction:
    """One unit of work against the store. Only obtained from EntityStore.transaction()."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def upsert(self, entity: T) -> T:
        # primary key 기준으로 insert 또는 update
        return await self._db.merge(entity)

    async def find_by_id(self, model: Type[T], ident: str) -> Optional[T]:
        return await self._db.get(model, ident)

    async def find_first(self, model: Type[T]) -> Optional[T]:
        res = await self._db.execute(select(model).limit(1))
        return res.scalars().first()

    async def find_all(self, model: Type[T]) -> Sequence[T]:
        res = await self._db.execute(select(model))
        return res.scalars().all()

    async def delete_all(self, model: Type[Base]) -> int:
        res = await self._db.execute(delete(model))
        return res.rowcount or 0


class EntityStore:
    """
    Local persistent store for Session / User / Profile / Note records.

    Writers are serialized: only one transaction is open at a time per store.
    Reads use a fresh session each call and see the latest committed state.
    """

    def __init__(self, url: str = DATABASE_URL, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo)
        self._sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)
        self._write_lock = asyncio.Lock()

    async def create_all(self) -> None:
        from urchin import models  # noqa: F401  테이블 등록

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        async with self._write_lock:
            try:
                async with self._sessionmaker() as db:
                    async with db.begin():
                        yield Transaction(db)
            except SQLAlchemyError as e:
                logger.error("store transaction failed: %s", e)
                raise StoreError(f"store transaction failed: {e}") from e

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[Transaction]:
        try:
            async with self._sessionmaker() as db:
                yield Transaction(db)
        except SQLAlchemyError as e:
            raise StoreError(f"store read failed: {e}") from e

    async def find_by_id(self, model: Type[T], ident: str) -> Optional[T]:
        async with self.reader() as tx:
            return await tx.find_by_id(model, ident)

    async def find_all(self, model: Type[T]) -> Sequence[T]:
        async with self.reader() as tx:
            return await tx.find_all(model)
