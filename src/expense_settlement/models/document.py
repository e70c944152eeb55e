"""ORM mapping for the JSON document table."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        dict[str, Any]: JSON,
    }


class DocumentRecord(Base):
    """One document in one collection.

    The body is stored whole; queries are exact-match over body fields and
    are evaluated after loading the collection. ``stored_at``/``changed_at``
    are row bookkeeping and never leak into the returned document.
    """

    __tablename__ = "documents"
    __table_args__ = (Index("ix_documents_collection", "collection"),)

    document_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(64), nullable=False)
    body: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    stored_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<DocumentRecord {self.collection}#{self.document_id}>"
