"""Batch import endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Path

from expense_settlement.api.dependencies import Ctx, User
from expense_settlement.api.schemas import ErrorResponse, PaperImportRequest, RevenuePullRequest, ok
from expense_settlement.services.import_service import ImportReconciler

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("/paper-claims", responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}})
async def import_paper_claims(ctx: Ctx, user: User, payload: PaperImportRequest) -> dict[str, Any]:
    """Import paper claims; row failures are reported in the job, not as errors."""
    result = await ImportReconciler(ctx).import_paper_claims(
        payload.period,
        user,
        rows=payload.rows,
        file_base64=payload.file_base64,
        mode=payload.mode,
    )
    return ok(**result)


@router.post("/revenue", responses={403: {"model": ErrorResponse}, 502: {"model": ErrorResponse}})
async def pull_revenue(ctx: Ctx, user: User, payload: RevenuePullRequest) -> dict[str, Any]:
    result = await ImportReconciler(ctx).pull_revenue(payload.period, user, rows=payload.rows)
    return ok(**result)


@router.get("/jobs/{job_id}", responses={404: {"model": ErrorResponse}})
async def get_import_job(ctx: Ctx, user: User, job_id: Annotated[str, Path()]) -> dict[str, Any]:
    job = await ImportReconciler(ctx).get_import_job(job_id, user)
    return ok(job=job)
