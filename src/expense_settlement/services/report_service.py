"""Monthly period report.

Aggregates approved claims of a period into project summaries and item
details, and flags projects whose revenue, labor or tax-fee record for the
period is missing.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from expense_settlement.authz import CurrentUser, require_capability
from expense_settlement.constants import ClaimStatus, Collection
from expense_settlement.reporting.workbook import XLSX_MIME_TYPE, Sheet, Workbook, render_xlsx
from expense_settlement.services.project_service import require_period
from expense_settlement.utils import clean_str, is_date_in_period, round2, sum_money, unique

if TYPE_CHECKING:
    from expense_settlement.context import EngineContext

SUMMARY_SHEET = "Project Summary"
DETAIL_SHEET = "Expense Detail"
ANOMALY_SHEET = "Anomalies"

SUMMARY_COLUMNS = ("period", "project_id", "claim_count", "expense_total", "tax_total")
DETAIL_COLUMNS = (
    "period",
    "project_id",
    "claim_id",
    "occur_date",
    "applicant_id",
    "category",
    "amount",
    "tax_amount",
    "source",
)
ANOMALY_COLUMNS = ("period", "project_id", "issues")

MISSING_REVENUE = "missing revenue"
MISSING_LABOR = "missing labor allocation"
MISSING_TAX_FEE = "missing tax fee"


def build_summary_rows(period: str, claims: list[dict[str, Any]]) -> list[dict[str, Any]]:
    by_project: dict[str, list[dict[str, Any]]] = {}
    for claim in claims:
        by_project.setdefault(claim.get("project_id", ""), []).append(claim)

    return [
        {
            "period": period,
            "project_id": project_id,
            "claim_count": len(group),
            "expense_total": sum_money(c.get("amount_total") for c in group),
            "tax_total": sum_money(c.get("tax_amount") for c in group),
        }
        for project_id, group in by_project.items()
    ]


def build_detail_rows(
    period: str, claims: list[dict[str, Any]], items: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """One row per item, carrying the owning claim's date, applicant and source."""
    claims_by_id = {c["claim_id"]: c for c in claims}
    rows = []
    for item in items:
        claim = claims_by_id.get(item.get("claim_id"), {})
        rows.append(
            {
                "period": period,
                "project_id": item.get("project_id"),
                "claim_id": item.get("claim_id"),
                "occur_date": claim.get("occur_date", ""),
                "applicant_id": claim.get("applicant_id", ""),
                "category": item.get("category"),
                "amount": round2(item.get("amount")),
                "tax_amount": round2(item.get("tax_amount")),
                "source": claim.get("source", ""),
            }
        )
    return rows


def build_anomaly_rows(
    period: str,
    project_ids: list[str],
    revenue: list[dict[str, Any]],
    labor: list[dict[str, Any]],
    tax_fees: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Flag missing records only; a record holding zero is not an anomaly."""
    has_revenue = {r.get("project_id") for r in revenue}
    has_labor = {r.get("project_id") for r in labor}
    has_tax = {r.get("project_id") for r in tax_fees}

    rows = []
    for project_id in project_ids:
        issues = []
        if project_id not in has_revenue:
            issues.append(MISSING_REVENUE)
        if project_id not in has_labor:
            issues.append(MISSING_LABOR)
        if project_id not in has_tax:
            issues.append(MISSING_TAX_FEE)
        if issues:
            rows.append({"period": period, "project_id": project_id, "issues": "; ".join(issues)})
    return rows


def build_monthly_workbook(
    summary: list[dict[str, Any]],
    detail: list[dict[str, Any]],
    anomalies: list[dict[str, Any]],
) -> Workbook:
    return Workbook(
        sheets=[
            Sheet(SUMMARY_SHEET, SUMMARY_COLUMNS, summary),
            Sheet(DETAIL_SHEET, DETAIL_COLUMNS, detail),
            Sheet(ANOMALY_SHEET, ANOMALY_COLUMNS, anomalies),
        ]
    )


class ReportService:
    def __init__(self, ctx: EngineContext):
        self.ctx = ctx
        self.store = ctx.store

    async def generate_monthly_report(
        self,
        period: Any,
        actor: CurrentUser,
        project_id: Any = None,
        include_file: bool = True,
    ) -> dict[str, Any]:
        """Build the monthly workbook for a period, optionally for one project.

        Returns:
            period, stats, the three row lists, file_name, mime_type and,
            when ``include_file`` is set, ``file_base64``
        """
        require_capability(actor)
        period = require_period(period)
        project_filter = clean_str(project_id) or None

        claims = [
            c
            for c in await self.store.find_many(
                Collection.EXPENSE_CLAIMS, {"status": ClaimStatus.APPROVED.value}
            )
            if is_date_in_period(c.get("occur_date"), period)
            and (project_filter is None or c.get("project_id") == project_filter)
        ]
        claim_ids = {c["claim_id"] for c in claims}
        items = [
            i for i in await self.store.list(Collection.EXPENSE_ITEMS) if i.get("claim_id") in claim_ids
        ]

        summary = build_summary_rows(period, claims)
        detail = build_detail_rows(period, claims, items)

        revenue = await self.store.find_many(Collection.PROJECT_REVENUE, {"period": period})
        labor = await self.store.find_many(Collection.PROJECT_LABOR_ALLOCATIONS, {"period": period})
        tax_fees = await self.store.find_many(Collection.PROJECT_TAX_FEES, {"period": period})

        involved = unique(
            [r["project_id"] for r in summary]
            + [r.get("project_id") for r in revenue]
            + [r.get("project_id") for r in labor]
            + [r.get("project_id") for r in tax_fees]
        )
        involved = [p for p in involved if p and (project_filter is None or p == project_filter)]
        anomalies = build_anomaly_rows(period, involved, revenue, labor, tax_fees)

        stats = {
            "summary_count": len(summary),
            "detail_count": len(detail),
            "anomaly_count": len(anomalies),
        }
        scope = project_filter or "ALL"

        await self.ctx.audit.record(
            "report.monthly.generate",
            actor.user_id,
            "monthly_report",
            f"{period}:{scope}",
            stats,
        )

        result: dict[str, Any] = {
            "period": period,
            "project_id": project_filter,
            "stats": stats,
            "summary": summary,
            "detail": detail,
            "anomalies": anomalies,
            "file_name": f"monthly_report_{period}_{scope}.xlsx",
            "mime_type": XLSX_MIME_TYPE,
        }
        if include_file:
            workbook = build_monthly_workbook(summary, detail, anomalies)
            result["file_base64"] = base64.b64encode(render_xlsx(workbook)).decode("ascii")
        return result
