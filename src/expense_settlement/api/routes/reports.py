"""Report endpoints."""

from typing import Any

from fastapi import APIRouter

from expense_settlement.api.dependencies import Ctx, User
from expense_settlement.api.schemas import ErrorResponse, MonthlyReportRequest, ok
from expense_settlement.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/monthly", responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}})
async def generate_monthly_report(
    ctx: Ctx, user: User, payload: MonthlyReportRequest
) -> dict[str, Any]:
    """Aggregate approved claims of a period into the monthly workbook."""
    report = await ReportService(ctx).generate_monthly_report(
        payload.period,
        user,
        project_id=payload.project_id,
        include_file=payload.include_file,
    )
    return ok(**report)
