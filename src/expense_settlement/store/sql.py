"""SQLAlchemy-backed document store."""

from __future__ import annotations

import copy
from typing import Any, Mapping
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_settlement.constants import Collection
from expense_settlement.models import DocumentRecord
from expense_settlement.store.base import Document, DocumentStore, Query, collection_name, matches


class SqlDocumentStore(DocumentStore):
    """Stores each document as a JSON body in the ``documents`` table.

    Every public operation runs in its own transaction. ``upsert_one`` reads
    and writes inside one transaction, which is only race-free when a single
    writer touches a given key at a time.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _load(self, session: AsyncSession, collection: str | Collection) -> list[DocumentRecord]:
        result = await session.execute(
            select(DocumentRecord)
            .where(DocumentRecord.collection == collection_name(collection))
            .order_by(DocumentRecord.document_id)
        )
        return list(result.scalars().all())

    @staticmethod
    def _add(session: AsyncSession, collection: str | Collection, doc: Mapping[str, Any]) -> Document:
        body = copy.deepcopy(dict(doc))
        body.setdefault("_id", uuid4().hex)
        session.add(DocumentRecord(collection=collection_name(collection), body=body))
        return copy.deepcopy(body)

    @staticmethod
    def _merge(record: DocumentRecord, patch: Mapping[str, Any]) -> Document:
        # Reassign so the JSON column is flagged dirty
        body = {**record.body, **copy.deepcopy(dict(patch))}
        record.body = body
        return copy.deepcopy(body)

    async def insert(self, collection: str | Collection, doc: Document) -> Document:
        async with self.session_factory() as session, session.begin():
            return self._add(session, collection, doc)

    async def list(self, collection: str | Collection) -> list[Document]:
        async with self.session_factory() as session:
            return [copy.deepcopy(r.body) for r in await self._load(session, collection)]

    async def find_one(self, collection: str | Collection, query: Query) -> Document | None:
        async with self.session_factory() as session:
            for record in await self._load(session, collection):
                if matches(record.body, query):
                    return copy.deepcopy(record.body)
        return None

    async def find_many(self, collection: str | Collection, query: Query) -> list[Document]:
        async with self.session_factory() as session:
            return [
                copy.deepcopy(r.body)
                for r in await self._load(session, collection)
                if matches(r.body, query)
            ]

    async def update_many(
        self, collection: str | Collection, query: Query, patch: Mapping[str, Any]
    ) -> int:
        changed = 0
        async with self.session_factory() as session, session.begin():
            for record in await self._load(session, collection):
                if matches(record.body, query):
                    self._merge(record, patch)
                    changed += 1
        return changed

    async def delete_many(self, collection: str | Collection, query: Query) -> int:
        deleted = 0
        async with self.session_factory() as session, session.begin():
            for record in await self._load(session, collection):
                if matches(record.body, query):
                    await session.delete(record)
                    deleted += 1
        return deleted

    async def update_by_id(
        self,
        collection: str | Collection,
        id_field: str,
        id_value: Any,
        patch: Mapping[str, Any],
    ) -> Document | None:
        async with self.session_factory() as session, session.begin():
            for record in await self._load(session, collection):
                if record.body.get(id_field) == id_value:
                    return self._merge(record, patch)
        return None

    async def upsert_one(
        self,
        collection: str | Collection,
        query: Query,
        patch: Mapping[str, Any],
        create_defaults: Mapping[str, Any] | None = None,
    ) -> Document:
        async with self.session_factory() as session, session.begin():
            for record in await self._load(session, collection):
                if matches(record.body, query):
                    return self._merge(record, patch)
            doc = {**dict(query), **dict(create_defaults or {}), **dict(patch)}
            return self._add(session, collection, doc)
