"""Engine context: the explicit handle passed into every service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable
from uuid import uuid4

from expense_settlement.config import Settings, get_settings
from expense_settlement.database import create_engine, create_schema, create_session_factory
from expense_settlement.services.audit import OperationLog
from expense_settlement.store import DocumentStore, MemoryDocumentStore, SqlDocumentStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from expense_settlement.providers.revenue_feed import RevenueFeed


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str = "id") -> str:
    return f"{prefix}_{uuid4().hex[:16]}"


@dataclass
class EngineContext:
    """Collaborators shared by all engine operations for one process.

    Built once at startup and passed by reference; there is no module-level
    store handle.
    """

    store: DocumentStore
    settings: Settings
    clock: Callable[[], str] = utc_now
    id_factory: Callable[[str], str] = new_id
    revenue_feed: RevenueFeed | None = None
    audit: OperationLog = field(init=False)
    engine: AsyncEngine | None = None

    def __post_init__(self) -> None:
        self.audit = OperationLog(self.store, self.clock, self.id_factory)

    def now(self) -> str:
        return self.clock()

    def new_id(self, prefix: str) -> str:
        return self.id_factory(prefix)

    async def close(self) -> None:
        await self.store.close()
        if self.engine is not None:
            await self.engine.dispose()


async def build_context(settings: Settings | None = None) -> EngineContext:
    """Construct the store and context described by settings."""
    from expense_settlement.providers.revenue_feed import HttpRevenueFeed

    settings = settings or get_settings()
    feed = HttpRevenueFeed.from_settings(settings) if settings.erp_endpoint else None

    if settings.uses_memory_store:
        return EngineContext(store=MemoryDocumentStore(), settings=settings, revenue_feed=feed)

    engine = create_engine(settings)
    await create_schema(engine)
    store = SqlDocumentStore(create_session_factory(engine))
    return EngineContext(store=store, settings=settings, revenue_feed=feed, engine=engine)
