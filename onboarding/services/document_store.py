"""
Document Store — keyed JSON documents grouped in collections, stored in
one SQL table.

Operations mirror a document database:
  get / set (optionally merging) / update (must exist) / query by field equality
"""

from __future__ import annotations
import logging
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from onboarding.errors import NotFoundError, WriteConflictError
from onboarding.models.document import Document

logger = logging.getLogger(__name__)

BUSINESSES = "Businesses"
BUSINESS_USERS = "BusinessUsers"


class DocumentStore(Protocol):
    async def get(self, collection: str, key: str) -> dict | None: ...

    async def set(self, collection: str, key: str, data: dict, merge: bool = False) -> None: ...

    async def update(self, collection: str, key: str, data: dict) -> None: ...

    async def query(self, collection: str, field: str, value: Any) -> list[dict]: ...


class SqlDocumentStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from onboarding.db.database import async_session
            session_factory = async_session
        self.session_factory = session_factory

    async def get(self, collection: str, key: str) -> dict | None:
        async with self.session_factory() as db:
            doc = await db.get(Document, (collection, key))
            return dict(doc.data) if doc else None

    async def set(self, collection: str, key: str, data: dict, merge: bool = False) -> None:
        """Write a document; with merge=True keep fields not present in ``data``."""
        async with self.session_factory() as db:
            doc = await db.get(Document, (collection, key))
            if doc is None:
                db.add(Document(collection=collection, key=key, data=dict(data)))
            elif merge:
                # Reassign so the JSON column is flagged dirty
                doc.data = {**doc.data, **data}
            else:
                doc.data = dict(data)
            await self._commit(db, collection, key)

    async def update(self, collection: str, key: str, data: dict) -> None:
        """Merge ``data`` into an existing document."""
        async with self.session_factory() as db:
            doc = await db.get(Document, (collection, key))
            if doc is None:
                raise NotFoundError(collection, key)
            doc.data = {**doc.data, **data}
            await self._commit(db, collection, key)

    async def query(self, collection: str, field: str, value: Any) -> list[dict]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Document).where(Document.collection == collection).order_by(Document.key)
            )
            # JSON path equality is not portable across backends; filter here
            return [
                dict(doc.data) for doc in result.scalars().all()
                if doc.data.get(field) == value
            ]

    @staticmethod
    async def _commit(db: AsyncSession, collection: str, key: str) -> None:
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Write conflict on %s/%s: %s", collection, key, e)
            raise WriteConflictError(collection, key) from e
