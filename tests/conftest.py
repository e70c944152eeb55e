"""Pytest fixtures for expense settlement tests."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

import pytest

from expense_settlement.authz import CurrentUser
from expense_settlement.config import Settings
from expense_settlement.constants import Role
from expense_settlement.context import EngineContext
from expense_settlement.services.project_service import ProjectService
from expense_settlement.store import MemoryDocumentStore

PERIOD = "2024-05"

SEED_USERS = [
    {"user_id": "u_alice", "role": "applicant", "status": "active", "name": "Alice"},
    {"user_id": "u_bob", "role": "applicant", "status": "active", "name": "Bob"},
    {"user_id": "u_fin", "role": "finance", "status": "active", "name": "Fiona"},
    {"user_id": "u_admin", "role": "admin", "status": "active", "name": "Ada"},
    {"user_id": "u_gone", "role": "finance", "status": "disabled", "name": "Gone"},
]


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 5, 20, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> str:
        value = self.current.isoformat()
        self.current += timedelta(seconds=1)
        return value


class SequentialIds:
    def __init__(self) -> None:
        self.counter = itertools.count(1)

    def __call__(self, prefix: str) -> str:
        return f"{prefix}_{next(self.counter):04d}"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "database_url": "sqlite+aiosqlite:///:memory:",
        "store_backend": "memory",
        "erp_endpoint": "",
        "erp_token": "",
        "erp_timeout_seconds": 5.0,
        "host": "127.0.0.1",
        "port": 8000,
        "debug": False,
        "log_level": "INFO",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> MemoryDocumentStore:
    """Memory store seeded with one user per role plus a disabled user."""
    return MemoryDocumentStore(seed={"users": SEED_USERS})


@pytest.fixture
def ctx(store: MemoryDocumentStore, settings: Settings) -> EngineContext:
    return EngineContext(
        store=store,
        settings=settings,
        clock=TickingClock(),
        id_factory=SequentialIds(),
    )


@pytest.fixture
def applicant() -> CurrentUser:
    return CurrentUser(user_id="u_alice", role=Role.APPLICANT, name="Alice")


@pytest.fixture
def other_applicant() -> CurrentUser:
    return CurrentUser(user_id="u_bob", role=Role.APPLICANT, name="Bob")


@pytest.fixture
def finance() -> CurrentUser:
    return CurrentUser(user_id="u_fin", role=Role.FINANCE, name="Fiona")


@pytest.fixture
def admin() -> CurrentUser:
    return CurrentUser(user_id="u_admin", role=Role.ADMIN, name="Ada")


@pytest.fixture
def period_data(
    ctx: EngineContext, finance: CurrentUser
) -> Callable[..., Awaitable[None]]:
    """Factory recording revenue, labor and tax fee for a project period."""

    async def _record(
        project_id: str,
        period: str = PERIOD,
        revenue: float | None = None,
        labor: float | None = None,
        tax_fee: float | None = None,
    ) -> None:
        projects = ProjectService(ctx)
        if revenue is not None:
            await projects.upsert_revenue(project_id, period, revenue, finance)
        if labor is not None or tax_fee is not None:
            await projects.upsert_period_data(project_id, period, labor or 0, tax_fee or 0, finance)

    return _record
