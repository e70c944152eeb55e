"""Tests for batch paper-claim and revenue imports."""

import base64
from io import BytesIO

import httpx
import pytest
from openpyxl import Workbook

from expense_settlement.constants import Collection, ImportJobStatus
from expense_settlement.errors import FeedError, Forbidden, NotFound, ValidationError
from expense_settlement.providers import HttpRevenueFeed
from expense_settlement.services.import_service import ImportReconciler, derive_job_status

PERIOD = "2024-05"


def paper_row(**overrides):
    row = {
        "projectId": "P1",
        "applicantId": "u_alice",
        "occurDate": "2024-05-03",
        "category": "printing",
        "amount": 88.8,
        "taxAmount": 1.2,
        "remark": "invoices",
    }
    row.update(overrides)
    return row


def xlsx_base64(header, rows):
    wb = Workbook()
    ws = wb.active
    ws.append(header)
    for row in rows:
        ws.append(row)
    bio = BytesIO()
    wb.save(bio)
    return base64.b64encode(bio.getvalue()).decode("ascii")


@pytest.fixture
def reconciler(ctx):
    return ImportReconciler(ctx)


class TestDeriveJobStatus:
    @pytest.mark.parametrize(
        "success,fail,expected",
        [
            (3, 0, ImportJobStatus.SUCCESS),
            (0, 0, ImportJobStatus.SUCCESS),
            (2, 1, ImportJobStatus.PARTIAL_SUCCESS),
            (0, 4, ImportJobStatus.FAILED),
        ],
    )
    def test_status_table(self, success, fail, expected):
        assert derive_job_status(success, fail) is expected


class TestPaperImport:
    async def test_out_of_period_row_fails(self, reconciler, store, finance):
        """One row in period and one outside gives a partial success."""
        result = await reconciler.import_paper_claims(
            PERIOD,
            finance,
            rows=[paper_row(), paper_row(occurDate="2024-06-01")],
        )

        assert result["success_count"] == 1
        assert result["fail_count"] == 1
        assert result["status"] == "partial_success"
        assert result["errors"] == ["row 2: occur_date is not in period 2024-05"]

        job = await store.find_one(Collection.IMPORT_JOBS, {"job_id": result["job_id"]})
        assert job["status"] == "partial_success"
        assert job["type"] == "paper_excel"

    async def test_rows_become_approved_claims(self, reconciler, store, finance):
        await reconciler.import_paper_claims(PERIOD, finance, rows=[paper_row(projectId="NEW")])

        claim = (await store.list(Collection.EXPENSE_CLAIMS))[0]
        assert claim["status"] == "approved"
        assert claim["claim_type"] == "paper"
        assert claim["source"] == "paper_excel"
        assert claim["approval_by"] == "u_fin"
        assert claim["amount_total"] == 88.8
        assert claim["tax_amount"] == 1.2

        items = await store.find_many(Collection.EXPENSE_ITEMS, {"claim_id": claim["claim_id"]})
        assert len(items) == 1
        assert items[0]["remark"] == "invoices"

        project = await store.find_one(Collection.PROJECTS, {"project_id": "NEW"})
        assert project["source"] == "auto"

    async def test_manual_mode_and_default_applicant(self, reconciler, store, finance):
        await reconciler.import_paper_claims(
            PERIOD, finance, rows=[paper_row(applicantId="")], mode="manual"
        )
        claim = (await store.list(Collection.EXPENSE_CLAIMS))[0]
        assert claim["source"] == "paper_manual"
        assert claim["applicant_id"] == "u_fin"

    async def test_amount_too_large_fails_the_row(self, reconciler, store, finance):
        result = await reconciler.import_paper_claims(
            PERIOD, finance, rows=[paper_row(amount=1e27), paper_row(taxAmount="1e30")]
        )

        assert result["status"] == "failed"
        assert result["errors"] == ["row 1: amount out of range", "row 2: tax_amount out of range"]
        assert await store.list(Collection.EXPENSE_CLAIMS) == []

    async def test_row_problems_joined_into_one_error(self, reconciler, finance):
        result = await reconciler.import_paper_claims(
            PERIOD,
            finance,
            rows=[paper_row(projectId="", amount="abc", category=" ")],
        )
        assert result["status"] == "failed"
        assert result["errors"] == [
            "row 1: project_id is required; category is required; amount must be greater than 0"
        ]

    async def test_count_invariant(self, reconciler, store, finance):
        rows = [
            paper_row(),
            paper_row(amount=0),
            "not a row",
            paper_row(taxAmount=-1),
            paper_row(occurDate="garbage"),
            paper_row(amount="1,250.50"),
        ]
        result = await reconciler.import_paper_claims(PERIOD, finance, rows=rows)

        assert result["success_count"] + result["fail_count"] == len(rows)
        assert result["fail_count"] == len(result["errors"]) == 4
        assert result["status"] == "partial_success"
        assert [e.split(":")[0] for e in result["errors"]] == ["row 2", "row 3", "row 4", "row 5"]
        assert len(await store.list(Collection.EXPENSE_CLAIMS)) == 2

    async def test_failed_rows_do_not_undo_earlier_rows(self, reconciler, store, finance):
        await reconciler.import_paper_claims(PERIOD, finance, rows=[paper_row(), paper_row(amount=-5)])
        assert len(await store.list(Collection.EXPENSE_CLAIMS)) == 1

    async def test_xlsx_payload_with_loose_headers(self, reconciler, store, finance):
        file_base64 = xlsx_base64(
            ["Project ID", "applicant_id", "Occur Date", "Category", "Amount", "Tax Amount", "Remark"],
            [
                ["P7", "u_bob", "2024-05-15", "courier", 12.5, 0, ""],
                [None, None, None, None, None, None, None],
                ["P7", "u_bob", "2024-04-15", "courier", 3, 0, "late"],
            ],
        )
        result = await reconciler.import_paper_claims(PERIOD, finance, file_base64=file_base64)

        assert result["success_count"] == 1
        assert result["fail_count"] == 1
        claim = (await store.list(Collection.EXPENSE_CLAIMS))[0]
        assert claim["project_id"] == "P7"
        assert claim["applicant_id"] == "u_bob"

    async def test_bad_file_is_request_error(self, reconciler, store, finance):
        with pytest.raises(ValidationError):
            await reconciler.import_paper_claims(PERIOD, finance, file_base64="bm90IGEgd29ya2Jvb2s=")
        assert await store.list(Collection.IMPORT_JOBS) == []

    async def test_needs_rows_or_file(self, reconciler, finance):
        with pytest.raises(ValidationError):
            await reconciler.import_paper_claims(PERIOD, finance)

    async def test_requires_finance(self, reconciler, applicant):
        with pytest.raises(Forbidden):
            await reconciler.import_paper_claims(PERIOD, applicant, rows=[paper_row()])

    async def test_audit_record(self, reconciler, store, finance):
        result = await reconciler.import_paper_claims(PERIOD, finance, rows=[paper_row()])
        logs = await store.find_many(Collection.OPERATION_LOGS, {"action": "paper.import"})
        assert logs[0]["target_id"] == result["job_id"]
        assert logs[0]["payload"]["success_count"] == 1


class TestRevenueImport:
    async def test_upsert_is_idempotent(self, reconciler, store, finance):
        first = await reconciler.pull_revenue(
            PERIOD, finance, rows=[{"projectId": "P1", "revenueAmount": 100}]
        )
        second = await reconciler.pull_revenue(
            PERIOD, finance, rows=[{"projectId": "P1", "revenueAmount": 250.555}]
        )

        records = await store.find_many(Collection.PROJECT_REVENUE, {"project_id": "P1", "period": PERIOD})
        assert len(records) == 1
        assert records[0]["revenue_amount"] == 250.56
        assert records[0]["source"] == "erp_pull"
        assert records[0]["sync_batch_id"] == second["job_id"]
        assert first["job_id"] != second["job_id"]

    async def test_invalid_rows(self, reconciler, finance):
        result = await reconciler.pull_revenue(
            PERIOD,
            finance,
            rows=[
                {"project_id": "P1", "revenue_amount": 10},
                {"project_id": "", "revenue_amount": 10},
                {"project_id": "P2", "revenue_amount": -1},
                {"project_id": "P3", "revenue_amount": "n/a"},
            ],
        )
        assert result["success_count"] == 1
        assert result["fail_count"] == 3
        assert result["errors"][0] == "row 2: project_id is required"
        assert result["status"] == "partial_success"

    async def test_amount_too_large_fails_the_row(self, reconciler, store, finance):
        result = await reconciler.pull_revenue(
            PERIOD,
            finance,
            rows=[{"project_id": "P1", "revenue_amount": 1e27}, {"project_id": "P2", "revenue_amount": 7}],
        )

        assert result["status"] == "partial_success"
        assert result["errors"] == ["row 1: revenue_amount out of range"]
        assert await store.find_one(Collection.PROJECT_REVENUE, {"project_id": "P1"}) is None

    async def test_zero_revenue_is_valid(self, reconciler, finance):
        result = await reconciler.pull_revenue(PERIOD, finance, rows=[{"projectId": "P1", "revenueAmount": 0}])
        assert result["status"] == "success"

    async def test_system_pull_needs_no_actor(self, reconciler, store):
        result = await reconciler.pull_revenue(PERIOD, rows=[{"projectId": "P1", "revenueAmount": 5}], system=True)
        assert result["status"] == "success"
        job = await store.find_one(Collection.IMPORT_JOBS, {"job_id": result["job_id"]})
        assert job["created_by"] == "system"

    async def test_requires_actor_unless_system(self, reconciler, applicant):
        with pytest.raises(Forbidden):
            await reconciler.pull_revenue(PERIOD, None, rows=[])
        with pytest.raises(Forbidden):
            await reconciler.pull_revenue(PERIOD, applicant, rows=[])


class TestRevenueFeed:
    async def test_pull_from_feed(self, ctx, store, finance):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["period"] = request.url.params["period"]
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"items": [{"projectId": "P1", "revenueAmount": 900}]})

        ctx.revenue_feed = HttpRevenueFeed(
            "https://erp.example.test/revenue", token="s3cret", transport=httpx.MockTransport(handler)
        )
        result = await ImportReconciler(ctx).pull_revenue(PERIOD, finance)

        assert seen == {"period": PERIOD, "auth": "Bearer s3cret"}
        assert result["status"] == "success"
        record = await store.find_one(Collection.PROJECT_REVENUE, {"project_id": "P1"})
        assert record["revenue_amount"] == 900

    async def test_bare_list_payload(self, ctx, finance):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json=[{"projectId": "P1", "revenueAmount": 1}])
        )
        ctx.revenue_feed = HttpRevenueFeed("https://erp.example.test/revenue", transport=transport)
        result = await ImportReconciler(ctx).pull_revenue(PERIOD, finance)
        assert result["success_count"] == 1

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503, text="down"),
            httpx.Response(200, json={"data": []}),
            httpx.Response(200, text="<html>"),
        ],
    )
    async def test_feed_failure_marks_job_failed(self, ctx, store, finance, response):
        ctx.revenue_feed = HttpRevenueFeed(
            "https://erp.example.test/revenue", transport=httpx.MockTransport(lambda request: response)
        )
        with pytest.raises(FeedError):
            await ImportReconciler(ctx).pull_revenue(PERIOD, finance)

        jobs = await store.list(Collection.IMPORT_JOBS)
        assert len(jobs) == 1
        assert jobs[0]["status"] == "failed"
        assert jobs[0]["errors"]

    async def test_unconfigured_feed(self, ctx, store, finance):
        with pytest.raises(FeedError):
            await ImportReconciler(ctx).pull_revenue(PERIOD, finance)
        assert (await store.list(Collection.IMPORT_JOBS))[0]["status"] == "failed"

    async def test_transport_error(self, ctx, finance):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        ctx.revenue_feed = HttpRevenueFeed("https://erp.example.test/revenue", transport=httpx.MockTransport(handler))
        with pytest.raises(FeedError, match="request failed"):
            await ImportReconciler(ctx).pull_revenue(PERIOD, finance)


class TestImportJobs:
    async def test_get_import_job(self, reconciler, finance):
        result = await reconciler.import_paper_claims(PERIOD, finance, rows=[paper_row()])
        job = await reconciler.get_import_job(result["job_id"], finance)
        assert job["status"] == "success"
        assert job["success_count"] == 1
        assert job["period"] == PERIOD

    async def test_unknown_job(self, reconciler, finance):
        with pytest.raises(NotFound):
            await reconciler.get_import_job("job_missing", finance)
