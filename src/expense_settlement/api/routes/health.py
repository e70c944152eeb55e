"""Liveness, readiness and store probes."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from expense_settlement.api.dependencies import Ctx
from expense_settlement.constants import Collection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    store: str
    store_backend: str
    revenue_feed: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(ctx: Ctx) -> HealthResponse:
    """Probe the document store with a lookup that matches nothing."""
    try:
        await ctx.store.find_one(Collection.USERS, {"user_id": "__probe__"})
        store_state = "healthy"
    except Exception:
        logger.exception("Document store probe failed")
        store_state = "unhealthy"

    return HealthResponse(
        status="healthy" if store_state == "healthy" else "degraded",
        timestamp=ctx.now(),
        store=store_state,
        store_backend=type(ctx.store).__name__,
        revenue_feed=ctx.revenue_feed is not None,
    )


@router.get("/ready")
async def readiness_check() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
