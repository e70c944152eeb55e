"""Expense claim endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Path, Query, status

from expense_settlement.api.dependencies import Ctx, User
from expense_settlement.api.schemas import (
    ClaimDecisionRequest,
    ClaimUpsertRequest,
    ErrorResponse,
    ok,
)
from expense_settlement.services.claim_service import ClaimService

router = APIRouter(prefix="/claims", tags=["claims"])


@router.post(
    "",
    status_code=status.HTTP_200_OK,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def save_claim(ctx: Ctx, user: User, payload: ClaimUpsertRequest) -> dict[str, Any]:
    """Create a draft claim or replace an editable one."""
    result = await ClaimService(ctx).create_or_update(payload.header(), payload.item_dicts(), user)
    return ok(**result)


@router.get("", responses={403: {"model": ErrorResponse}})
async def list_claims(
    ctx: Ctx,
    user: User,
    scope: str = "mine",
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    project_id: str | None = None,
    period: str | None = None,
) -> dict[str, Any]:
    """List claim summaries in one of the mine / pending / all scopes."""
    claims = await ClaimService(ctx).list_claims(
        user, scope=scope, status=status_filter, project_id=project_id, period=period
    )
    return ok(items=claims, total=len(claims))


@router.get("/{claim_id}", responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
async def get_claim(ctx: Ctx, user: User, claim_id: Annotated[str, Path()]) -> dict[str, Any]:
    return ok(**await ClaimService(ctx).get_claim_detail(claim_id, user))


@router.post("/{claim_id}/submit", responses={409: {"model": ErrorResponse}})
async def submit_claim(ctx: Ctx, user: User, claim_id: Annotated[str, Path()]) -> dict[str, Any]:
    claim = await ClaimService(ctx).submit(claim_id, user)
    return ok(claim=claim)


@router.post(
    "/{claim_id}/decision",
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def decide_claim(
    ctx: Ctx,
    user: User,
    payload: ClaimDecisionRequest,
    claim_id: Annotated[str, Path()],
) -> dict[str, Any]:
    """Approve, reject or void a claim."""
    claim = await ClaimService(ctx).decide(claim_id, payload.action, user, payload.reason)
    return ok(claim=claim)
