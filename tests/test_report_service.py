"""Tests for the monthly period report."""

import base64
from io import BytesIO

import pytest
from openpyxl import load_workbook

from expense_settlement.constants import Collection
from expense_settlement.errors import Forbidden, ValidationError
from expense_settlement.reporting import XLSX_MIME_TYPE
from expense_settlement.services.import_service import ImportReconciler
from expense_settlement.services.report_service import ReportService

PERIOD = "2024-05"


def paper_row(project_id, amount, tax=0, occur_date="2024-05-03", category="printing"):
    return {
        "project_id": project_id,
        "applicant_id": "u_alice",
        "occur_date": occur_date,
        "category": category,
        "amount": amount,
        "tax_amount": tax,
    }


@pytest.fixture
async def approved_claims(ctx, finance):
    """Approved paper claims: two for P1, one for P2, one outside the period."""
    await ImportReconciler(ctx).import_paper_claims(
        PERIOD,
        finance,
        rows=[
            paper_row("P1", 100, 6),
            paper_row("P1", 50.25, 1.5),
            paper_row("P2", 10),
        ],
    )
    await ImportReconciler(ctx).import_paper_claims(
        "2024-04", finance, rows=[paper_row("P1", 999, occur_date="2024-04-30")]
    )


class TestMonthlyReport:
    async def test_project_missing_every_record(self, ctx, finance, approved_claims):
        """A project with claims but no revenue, labor or tax lists all three."""
        report = await ReportService(ctx).generate_monthly_report(PERIOD, finance, project_id="P2")

        assert report["anomalies"] == [
            {
                "period": PERIOD,
                "project_id": "P2",
                "issues": "missing revenue; missing labor allocation; missing tax fee",
            }
        ]

    async def test_summary_and_detail(self, ctx, finance, approved_claims):
        report = await ReportService(ctx).generate_monthly_report(PERIOD, finance, include_file=False)

        assert report["summary"] == [
            {"period": PERIOD, "project_id": "P1", "claim_count": 2, "expense_total": 150.25, "tax_total": 7.5},
            {"period": PERIOD, "project_id": "P2", "claim_count": 1, "expense_total": 10, "tax_total": 0},
        ]
        assert report["stats"] == {"summary_count": 2, "detail_count": 3, "anomaly_count": 2}
        detail = report["detail"][0]
        assert detail["applicant_id"] == "u_alice"
        assert detail["source"] == "paper_excel"
        assert detail["occur_date"] == "2024-05-03T00:00:00+00:00"
        assert "file_base64" not in report

    async def test_present_zero_records_are_not_anomalies(self, ctx, finance, approved_claims, period_data):
        await period_data("P1", revenue=0, labor=0, tax_fee=0)
        await period_data("P2", revenue=10)

        report = await ReportService(ctx).generate_monthly_report(PERIOD, finance)
        assert report["anomalies"] == [
            {"period": PERIOD, "project_id": "P2", "issues": "missing labor allocation; missing tax fee"}
        ]

    async def test_projects_with_only_period_records_are_checked(self, ctx, finance, period_data):
        await period_data("P9", revenue=100)
        report = await ReportService(ctx).generate_monthly_report(PERIOD, finance)

        assert report["summary"] == []
        assert [a["project_id"] for a in report["anomalies"]] == ["P9"]

    async def test_unapproved_claims_are_excluded(self, ctx, store, finance, approved_claims):
        await store.update_many(Collection.EXPENSE_CLAIMS, {"project_id": "P2"}, {"status": "void"})
        report = await ReportService(ctx).generate_monthly_report(PERIOD, finance)
        assert [s["project_id"] for s in report["summary"]] == ["P1"]

    async def test_workbook(self, ctx, finance, approved_claims):
        report = await ReportService(ctx).generate_monthly_report(PERIOD, finance, project_id="P1")

        assert report["mime_type"] == XLSX_MIME_TYPE
        assert report["file_name"] == "monthly_report_2024-05_P1.xlsx"
        wb = load_workbook(BytesIO(base64.b64decode(report["file_base64"])))
        assert wb.sheetnames == ["Project Summary", "Expense Detail", "Anomalies"]
        summary = list(wb["Project Summary"].iter_rows(values_only=True))
        assert summary[0] == ("period", "project_id", "claim_count", "expense_total", "tax_total")
        assert summary[1][1] == "P1"
        assert wb["Expense Detail"].max_row == 3

    async def test_audit_record(self, ctx, store, finance):
        await ReportService(ctx).generate_monthly_report(PERIOD, finance, include_file=False)
        logs = await store.find_many(Collection.OPERATION_LOGS, {"action": "report.monthly.generate"})
        assert logs[0]["target_id"] == "2024-05:ALL"

    async def test_requires_finance(self, ctx, applicant):
        with pytest.raises(Forbidden):
            await ReportService(ctx).generate_monthly_report(PERIOD, applicant)

    async def test_bad_period(self, ctx, finance):
        with pytest.raises(ValidationError):
            await ReportService(ctx).generate_monthly_report("May 2024", finance)
