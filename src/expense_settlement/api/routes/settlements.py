"""Settlement and commission rule endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Path

from expense_settlement.api.dependencies import Ctx, User
from expense_settlement.api.schemas import (
    CommissionRuleRequest,
    ErrorResponse,
    SettlementGenerateRequest,
    ok,
)
from expense_settlement.services.settlement_service import SettlementService

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.post(
    "",
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def generate_settlement(
    ctx: Ctx, user: User, payload: SettlementGenerateRequest
) -> dict[str, Any]:
    """Compute (or recompute) the settlement for a project period."""
    settlement = await SettlementService(ctx).generate_settlement(
        payload.project_id, payload.period, user
    )
    return ok(settlement=settlement)


@router.get("", responses={404: {"model": ErrorResponse}})
async def find_settlement(
    ctx: Ctx,
    user: User,
    project_id: str | None = None,
    period: str | None = None,
) -> dict[str, Any]:
    settlement = await SettlementService(ctx).get_settlement_detail(
        user, project_id=project_id, period=period
    )
    return ok(settlement=settlement)


@router.get("/{settlement_id}", responses={404: {"model": ErrorResponse}})
async def get_settlement(
    ctx: Ctx, user: User, settlement_id: Annotated[str, Path()]
) -> dict[str, Any]:
    settlement = await SettlementService(ctx).get_settlement_detail(user, settlement_id=settlement_id)
    return ok(settlement=settlement)


@router.put("/rules/{version}", responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}})
async def save_commission_rule(
    ctx: Ctx,
    user: User,
    payload: CommissionRuleRequest,
    version: Annotated[str, Path()],
) -> dict[str, Any]:
    """Store a commission rule version (admin only)."""
    rule = await SettlementService(ctx).save_commission_rule(
        {**payload.model_dump(), "version": version}, user
    )
    return ok(rule=rule)
