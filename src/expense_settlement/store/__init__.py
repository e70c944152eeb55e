"""Document store collaborators."""

from expense_settlement.store.base import DocumentStore, Query, collection_name, matches
from expense_settlement.store.memory import MemoryDocumentStore
from expense_settlement.store.sql import SqlDocumentStore

__all__ = [
    "DocumentStore",
    "MemoryDocumentStore",
    "Query",
    "SqlDocumentStore",
    "collection_name",
    "matches",
]
