"""SQLAlchemy models backing the document store."""

from expense_settlement.models.document import Base, DocumentRecord

__all__ = ["Base", "DocumentRecord"]
