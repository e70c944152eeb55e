"""Abstract document store.

The engine only needs a small set of operations over named collections of
JSON-like documents. Queries are exact-match conjunctions over top-level
fields. Every document handed back is a copy; mutating it never changes
stored state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from expense_settlement.constants import Collection

Document = dict[str, Any]
Query = Mapping[str, Any]

_MISSING = object()


def collection_name(collection: str | Collection) -> str:
    """Plain string name of a collection."""
    if isinstance(collection, Collection):
        return collection.value
    return str(collection)


def matches(doc: Mapping[str, Any], query: Query) -> bool:
    """True when every query field equals the document's field."""
    return all(doc.get(key, _MISSING) == value for key, value in query.items())


class DocumentStore(ABC):
    """Storage contract consumed by every engine component."""

    @abstractmethod
    async def insert(self, collection: str | Collection, doc: Document) -> Document:
        """Insert a document and return the stored copy (with ``_id``)."""

    @abstractmethod
    async def list(self, collection: str | Collection) -> list[Document]:
        """Return every document in insertion order."""

    @abstractmethod
    async def find_one(self, collection: str | Collection, query: Query) -> Document | None:
        """Return the first matching document or None."""

    @abstractmethod
    async def find_many(self, collection: str | Collection, query: Query) -> list[Document]:
        """Return all matching documents in insertion order."""

    @abstractmethod
    async def update_many(
        self, collection: str | Collection, query: Query, patch: Mapping[str, Any]
    ) -> int:
        """Merge ``patch`` into every matching document. Returns the count."""

    @abstractmethod
    async def delete_many(self, collection: str | Collection, query: Query) -> int:
        """Delete every matching document. Returns the count."""

    @abstractmethod
    async def update_by_id(
        self,
        collection: str | Collection,
        id_field: str,
        id_value: Any,
        patch: Mapping[str, Any],
    ) -> Document | None:
        """Merge ``patch`` into the document whose ``id_field`` equals ``id_value``.

        Returns the updated document, or None if there is no such document.
        """

    @abstractmethod
    async def upsert_one(
        self,
        collection: str | Collection,
        query: Query,
        patch: Mapping[str, Any],
        create_defaults: Mapping[str, Any] | None = None,
    ) -> Document:
        """Update the document matching ``query`` or create it.

        On create the document is ``query`` + ``create_defaults`` + ``patch``.
        The read and the write happen as one unit; this is only race-free
        under a single writer per key.
        """

    async def close(self) -> None:
        """Release backend resources."""
        return None
