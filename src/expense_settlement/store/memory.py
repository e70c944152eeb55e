"""In-process document store."""

from __future__ import annotations

import copy
from typing import Any, Mapping
from uuid import uuid4

from expense_settlement.constants import Collection
from expense_settlement.store.base import Document, DocumentStore, Query, collection_name, matches


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store used for tests and single-process deployments.

    No method awaits anything between reading and writing, so every
    operation (including upsert_one) is atomic within one event loop.
    """

    def __init__(self, seed: Mapping[str, list[Document]] | None = None):
        self._collections: dict[str, list[Document]] = {
            c.value: [] for c in Collection
        }
        for name, docs in (seed or {}).items():
            for doc in docs:
                self._insert(collection_name(name), doc)

    def dump(self) -> dict[str, list[Document]]:
        """Copy of the whole state, for debugging and tests."""
        return copy.deepcopy(self._collections)

    def _rows(self, collection: str | Collection) -> list[Document]:
        return self._collections.setdefault(collection_name(collection), [])

    def _insert(self, name: str, doc: Mapping[str, Any]) -> Document:
        row = copy.deepcopy(dict(doc))
        row.setdefault("_id", uuid4().hex)
        self._collections.setdefault(name, []).append(row)
        return copy.deepcopy(row)

    async def insert(self, collection: str | Collection, doc: Document) -> Document:
        return self._insert(collection_name(collection), doc)

    async def list(self, collection: str | Collection) -> list[Document]:
        return copy.deepcopy(self._rows(collection))

    async def find_one(self, collection: str | Collection, query: Query) -> Document | None:
        for row in self._rows(collection):
            if matches(row, query):
                return copy.deepcopy(row)
        return None

    async def find_many(self, collection: str | Collection, query: Query) -> list[Document]:
        return [copy.deepcopy(row) for row in self._rows(collection) if matches(row, query)]

    async def update_many(
        self, collection: str | Collection, query: Query, patch: Mapping[str, Any]
    ) -> int:
        changed = 0
        for row in self._rows(collection):
            if matches(row, query):
                row.update(copy.deepcopy(dict(patch)))
                changed += 1
        return changed

    async def delete_many(self, collection: str | Collection, query: Query) -> int:
        rows = self._rows(collection)
        keep = [row for row in rows if not matches(row, query)]
        deleted = len(rows) - len(keep)
        self._collections[collection_name(collection)] = keep
        return deleted

    async def update_by_id(
        self,
        collection: str | Collection,
        id_field: str,
        id_value: Any,
        patch: Mapping[str, Any],
    ) -> Document | None:
        for row in self._rows(collection):
            if row.get(id_field) == id_value:
                row.update(copy.deepcopy(dict(patch)))
                return copy.deepcopy(row)
        return None

    async def upsert_one(
        self,
        collection: str | Collection,
        query: Query,
        patch: Mapping[str, Any],
        create_defaults: Mapping[str, Any] | None = None,
    ) -> Document:
        for row in self._rows(collection):
            if matches(row, query):
                row.update(copy.deepcopy(dict(patch)))
                return copy.deepcopy(row)
        doc = {**dict(query), **dict(create_defaults or {}), **dict(patch)}
        return self._insert(collection_name(collection), doc)
