"""Batch import and reconciliation.

Rows from paper-claim spreadsheets and revenue feeds run through the same
engine:

1. An import job is created in ``processing`` state
2. Rows are validated and persisted one at a time, in order
3. A failed row is recorded as ``"row {n}: ..."`` and never undoes earlier rows
4. The job is finalized once with counts and a status derived from them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable

from expense_settlement.authz import CurrentUser, require_capability
from expense_settlement.constants import (
    ClaimSource,
    ClaimStatus,
    ClaimType,
    Collection,
    ImportJobStatus,
    ImportJobType,
    RecordSource,
)
from expense_settlement.errors import FeedError, NotFound, ValidationError, ensure
from expense_settlement.reporting.rows import (
    PAPER_CLAIM_FIELDS,
    REVENUE_FIELDS,
    decode_paper_claim_rows,
    normalize_row,
)
from expense_settlement.services.patches import ImportJobPatch, RevenuePatch
from expense_settlement.services.project_service import ProjectService, require_period
from expense_settlement.utils import clean_str, parse_datetime, period_of, round2, to_iso, to_money, to_number

if TYPE_CHECKING:
    from expense_settlement.context import EngineContext

logger = logging.getLogger(__name__)

RowHandler = Callable[[dict[str, Any], int], Awaitable[None]]

JOB_FIELDS = (
    "job_id",
    "type",
    "period",
    "status",
    "success_count",
    "fail_count",
    "errors",
    "created_by",
    "created_at",
    "updated_at",
)


def derive_job_status(success_count: int, fail_count: int) -> ImportJobStatus:
    """Aggregate job status from per-row outcomes."""
    if fail_count == 0:
        return ImportJobStatus.SUCCESS
    if success_count > 0:
        return ImportJobStatus.PARTIAL_SUCCESS
    return ImportJobStatus.FAILED


class RowRejected(ValidationError):
    """A single import row failed validation; carries every problem found."""

    def __init__(self, problems: list[str]):
        super().__init__("; ".join(problems), details={"problems": problems})
        self.problems = problems


@dataclass
class BatchResult:
    """Outcome of one import batch."""

    job_id: str
    success_count: int = 0
    fail_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> ImportJobStatus:
        return derive_job_status(self.success_count, self.fail_count)

    def record_failure(self, index: int, message: str) -> None:
        self.fail_count += 1
        self.errors.append(f"row {index + 1}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "errors": list(self.errors),
        }


def validate_paper_row(row: dict[str, Any], period: str) -> list[str]:
    """Return the problems with one normalized paper-claim row."""
    problems = []
    if not row["project_id"]:
        problems.append("project_id is required")
    if not row["applicant_id"]:
        problems.append("applicant_id is required")
    if not row["category"]:
        problems.append("category is required")
    amount = to_money(row["amount"])
    if row["amount"] is not None and amount is None:
        problems.append("amount out of range")
    elif amount is None or amount <= 0:
        problems.append("amount must be greater than 0")
    tax_amount = to_money(row["tax_amount"])
    if row["tax_amount"] is not None and tax_amount is None:
        problems.append("tax_amount out of range")
    elif tax_amount is None or tax_amount < 0:
        problems.append("tax_amount must not be negative")

    occur = parse_datetime(row["occur_date"])
    if occur is None:
        problems.append("occur_date is not a valid date")
    elif period_of(occur) != period:
        problems.append(f"occur_date is not in period {period}")
    return problems


class ImportReconciler:
    """Runs paper-claim and revenue batches through one job lifecycle."""

    def __init__(self, ctx: EngineContext):
        self.ctx = ctx
        self.store = ctx.store
        self.projects = ProjectService(ctx)

    async def run_batch(
        self,
        job_type: ImportJobType,
        period: str,
        rows: Iterable[dict[str, Any]],
        handle_row: RowHandler,
        created_by: str | None,
        job_id: str | None = None,
    ) -> BatchResult:
        """Process rows sequentially and finalize the job.

        ``handle_row`` persists one row or raises ValidationError. Any other
        exception propagates and leaves the job in ``processing``.
        """
        if job_id is None:
            job_id = await self.open_job(job_type, period, created_by)
        result = BatchResult(job_id=job_id)

        for index, raw in enumerate(rows):
            try:
                await handle_row(raw if isinstance(raw, dict) else {}, index)
            except ValidationError as e:
                result.record_failure(index, e.message)
            else:
                result.success_count += 1

        await self.finalize_job(result)
        logger.info(
            "Import job %s (%s, %s) finished: %s, %d ok, %d failed",
            job_id,
            job_type.value,
            period,
            result.status.value,
            result.success_count,
            result.fail_count,
        )
        return result

    async def open_job(self, job_type: ImportJobType, period: str, created_by: str | None) -> str:
        now = self.ctx.now()
        job = await self.store.insert(
            Collection.IMPORT_JOBS,
            {
                "job_id": self.ctx.new_id("job"),
                "type": job_type.value,
                "period": period,
                "status": ImportJobStatus.PROCESSING.value,
                "success_count": 0,
                "fail_count": 0,
                "errors": [],
                "created_by": created_by or "system",
                "created_at": now,
                "updated_at": now,
            },
        )
        return job["job_id"]

    async def finalize_job(self, result: BatchResult, status: ImportJobStatus | None = None) -> None:
        await self.store.update_by_id(
            Collection.IMPORT_JOBS,
            "job_id",
            result.job_id,
            ImportJobPatch(
                status=(status or result.status).value,
                success_count=result.success_count,
                fail_count=result.fail_count,
                errors=list(result.errors),
                updated_at=self.ctx.now(),
            ).as_patch(),
        )

    async def import_paper_claims(
        self,
        period: Any,
        actor: CurrentUser,
        rows: list[dict[str, Any]] | None = None,
        file_base64: str | None = None,
        mode: str = "excel",
    ) -> dict[str, Any]:
        """Import pre-approved paper claims, one claim and one item per row.

        Rows are given inline or as a base64 .xlsx payload. Rows whose
        occur_date is outside the period are rejected.
        """
        require_capability(actor)
        period = require_period(period)

        if rows is None:
            ensure(
                isinstance(file_base64, str) and file_base64.strip(),
                "Either rows or file_base64 is required",
            )
            raw_rows = decode_paper_claim_rows(file_base64)
        else:
            ensure(isinstance(rows, list), "rows must be a list")
            raw_rows = [normalize_row(r, PAPER_CLAIM_FIELDS) if isinstance(r, dict) else {} for r in rows]

        source = ClaimSource.PAPER_MANUAL if clean_str(mode) == "manual" else ClaimSource.PAPER_EXCEL

        async def handle_row(raw: dict[str, Any], index: int) -> None:
            row = {
                "project_id": clean_str(raw.get("project_id")),
                "applicant_id": clean_str(raw.get("applicant_id")) or actor.user_id,
                "occur_date": raw.get("occur_date"),
                "category": clean_str(raw.get("category")),
                "amount": to_number(raw.get("amount"), None),
                "tax_amount": to_number(raw.get("tax_amount"), 0.0),
                "remark": clean_str(raw.get("remark")),
            }
            problems = validate_paper_row(row, period)
            if problems:
                raise RowRejected(problems)
            await self._insert_paper_claim(row, source, actor)

        result = await self.run_batch(
            ImportJobType.PAPER_EXCEL, period, raw_rows, handle_row, actor.user_id
        )

        await self.ctx.audit.record(
            "paper.import",
            actor.user_id,
            "import_job",
            result.job_id,
            {"period": period, "success_count": result.success_count, "fail_count": result.fail_count},
        )
        return {"period": period, **result.to_dict()}

    async def _insert_paper_claim(
        self, row: dict[str, Any], source: ClaimSource, actor: CurrentUser
    ) -> None:
        await self.projects.ensure_project_exists(row["project_id"], actor.user_id)

        now = self.ctx.now()
        amount = round2(row["amount"])
        tax_amount = round2(row["tax_amount"])
        claim = await self.store.insert(
            Collection.EXPENSE_CLAIMS,
            {
                "claim_id": self.ctx.new_id("claim"),
                "project_id": row["project_id"],
                "claim_type": ClaimType.PAPER.value,
                "applicant_id": row["applicant_id"],
                "amount_total": amount,
                "tax_amount": tax_amount,
                "cost_category": row["category"],
                "occur_date": to_iso(parse_datetime(row["occur_date"])),
                "source": source.value,
                "attachments": [],
                # Paper claims arrive already signed off
                "status": ClaimStatus.APPROVED.value,
                "approval_by": actor.user_id,
                "approval_at": now,
                "reject_reason": "",
                "created_at": now,
                "updated_at": now,
            },
        )
        await self.store.insert(
            Collection.EXPENSE_ITEMS,
            {
                "item_id": self.ctx.new_id("item"),
                "claim_id": claim["claim_id"],
                "project_id": row["project_id"],
                "category": row["category"],
                "amount": amount,
                "tax_amount": tax_amount,
                "remark": row["remark"],
                "created_at": now,
                "updated_at": now,
            },
        )

    async def pull_revenue(
        self,
        period: Any,
        actor: CurrentUser | None = None,
        rows: list[dict[str, Any]] | None = None,
        system: bool = False,
    ) -> dict[str, Any]:
        """Upsert revenue per project for a period.

        Rows are given inline or fetched from the configured revenue feed.
        Scheduler-triggered pulls pass ``system=True`` and need no actor.

        Raises:
            FeedError: The feed failed; the job is finalized as failed first
        """
        if not system:
            require_capability(actor)
        period = require_period(period)
        operator_id = actor.user_id if actor is not None else "system"

        job_id = await self.open_job(ImportJobType.ERP_PULL, period, operator_id)

        if rows is None:
            try:
                rows = await self._fetch_feed_rows(period)
            except FeedError as e:
                failed = BatchResult(job_id=job_id, errors=[e.message])
                await self.finalize_job(failed, ImportJobStatus.FAILED)
                logger.warning("Revenue pull job %s for %s failed: %s", job_id, period, e.message)
                raise
        elif not isinstance(rows, list):
            failed = BatchResult(job_id=job_id, errors=["rows must be a list"])
            await self.finalize_job(failed, ImportJobStatus.FAILED)
            raise ValidationError("rows must be a list")

        async def handle_row(raw: dict[str, Any], index: int) -> None:
            row = normalize_row(raw, REVENUE_FIELDS)
            project_id = clean_str(row.get("project_id"))
            raw_amount = to_number(row.get("revenue_amount"), None)
            amount = to_money(raw_amount)

            problems = []
            if not project_id:
                problems.append("project_id is required")
            if raw_amount is None:
                problems.append("revenue_amount must be a number >= 0")
            elif amount is None:
                problems.append("revenue_amount out of range")
            elif amount < 0:
                problems.append("revenue_amount must be a number >= 0")
            if problems:
                raise RowRejected(problems)

            await self.projects.ensure_project_exists(project_id, operator_id)
            now = self.ctx.now()
            await self.store.upsert_one(
                Collection.PROJECT_REVENUE,
                {"project_id": project_id, "period": period},
                RevenuePatch(
                    revenue_amount=amount,
                    source=RecordSource.ERP_PULL.value,
                    sync_batch_id=job_id,
                    updated_by=operator_id,
                    updated_at=now,
                ).as_patch(),
                {"record_id": self.ctx.new_id("rev"), "created_at": now},
            )

        result = await self.run_batch(
            ImportJobType.ERP_PULL, period, rows, handle_row, operator_id, job_id=job_id
        )

        await self.ctx.audit.record(
            "revenue.import",
            operator_id,
            "import_job",
            job_id,
            {"period": period, "success_count": result.success_count, "fail_count": result.fail_count},
        )
        return {"period": period, **result.to_dict()}

    async def _fetch_feed_rows(self, period: str) -> list[dict[str, Any]]:
        feed = self.ctx.revenue_feed
        if feed is None:
            raise FeedError("Revenue feed endpoint is not configured")
        return await feed.fetch(period)

    async def get_import_job(self, job_id: Any, actor: CurrentUser) -> dict[str, Any]:
        require_capability(actor)
        job_id = clean_str(job_id)
        ensure(job_id, "job_id is required")
        job = await self.store.find_one(Collection.IMPORT_JOBS, {"job_id": job_id})
        if job is None:
            raise NotFound(f"Import job {job_id} not found")
        return {key: job.get(key) for key in JOB_FIELDS}
