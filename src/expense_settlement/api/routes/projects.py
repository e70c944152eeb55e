"""Project and period data endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Path

from expense_settlement.api.dependencies import Ctx, User
from expense_settlement.api.schemas import (
    ErrorResponse,
    PeriodDataRequest,
    ProjectUpsertRequest,
    RevenueRequest,
    ok,
)
from expense_settlement.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("")
async def list_projects(
    ctx: Ctx,
    user: User,
    include_disabled: bool = False,
    keyword: str | None = None,
) -> dict[str, Any]:
    projects = await ProjectService(ctx).list_projects(
        user, include_disabled=include_disabled, keyword=keyword
    )
    return ok(items=projects, total=len(projects))


@router.post("", responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}})
async def upsert_project(ctx: Ctx, user: User, payload: ProjectUpsertRequest) -> dict[str, Any]:
    project = await ProjectService(ctx).upsert_project(payload.model_dump(), user)
    return ok(project=project)


@router.put("/{project_id}/period-data", responses={400: {"model": ErrorResponse}})
async def upsert_period_data(
    ctx: Ctx,
    user: User,
    payload: PeriodDataRequest,
    project_id: Annotated[str, Path()],
) -> dict[str, Any]:
    """Record labor allocation and tax fee for a project period."""
    result = await ProjectService(ctx).upsert_period_data(
        project_id, payload.period, payload.labor_amount, payload.tax_fee_amount, user
    )
    return ok(**result)


@router.put("/{project_id}/revenue", responses={400: {"model": ErrorResponse}})
async def upsert_revenue(
    ctx: Ctx,
    user: User,
    payload: RevenueRequest,
    project_id: Annotated[str, Path()],
) -> dict[str, Any]:
    revenue = await ProjectService(ctx).upsert_revenue(
        project_id, payload.period, payload.revenue_amount, user
    )
    return ok(revenue=revenue)
