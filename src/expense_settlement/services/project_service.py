"""Projects and the period-keyed records attached to them."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from expense_settlement.authz import CurrentUser, is_privileged, require_capability
from expense_settlement.constants import Collection, ProjectStatus, RecordSource
from expense_settlement.errors import ValidationError, ensure
from expense_settlement.services.patches import LaborPatch, ProjectPatch, RevenuePatch, TaxFeePatch
from expense_settlement.utils import clean_str, normalize_period, pick, to_money, to_number

if TYPE_CHECKING:
    from expense_settlement.context import EngineContext

PROJECT_FIELDS = (
    "project_id",
    "name",
    "owner",
    "status",
    "start_date",
    "end_date",
    "source",
    "updated_at",
)


def require_period(value: Any) -> str:
    period = normalize_period(value)
    if period is None:
        raise ValidationError("period must be formatted as YYYY-MM")
    return period


def require_amount(value: Any, field_name: str) -> float:
    """Parse a non-negative money amount, rounded to 2 decimals."""
    if to_number(value, None) is None:
        raise ValidationError(f"{field_name} must be a number >= 0")
    amount = to_money(value)
    if amount is None:
        raise ValidationError(f"{field_name} is out of range")
    if amount < 0:
        raise ValidationError(f"{field_name} must be a number >= 0")
    return amount


class ProjectService:
    """Project registry plus revenue, labor and tax-fee records."""

    def __init__(self, ctx: EngineContext):
        self.ctx = ctx
        self.store = ctx.store

    async def ensure_project_exists(
        self, project_id: Any, operator_id: str | None = None
    ) -> dict[str, Any] | None:
        """Return the project, auto-creating it on first reference."""
        project_id = clean_str(project_id)
        if not project_id:
            return None

        project = await self.store.find_one(Collection.PROJECTS, {"project_id": project_id})
        if project is not None:
            return project

        now = self.ctx.now()
        return await self.store.insert(
            Collection.PROJECTS,
            {
                "project_id": project_id,
                "name": project_id,
                "status": ProjectStatus.ACTIVE.value,
                "source": RecordSource.AUTO.value,
                "owner": "",
                "created_by": operator_id or "system",
                "created_at": now,
                "updated_at": now,
            },
        )

    async def upsert_project(self, payload: dict[str, Any], actor: CurrentUser) -> dict[str, Any]:
        """Create or update a project by its business key."""
        require_capability(actor)

        project_id = clean_str(payload.get("project_id"))
        name = clean_str(payload.get("name"))
        status = clean_str(payload.get("status")) or ProjectStatus.ACTIVE.value
        ensure(project_id, "project_id is required")
        ensure(name, "name is required")
        ensure(status in {s.value for s in ProjectStatus}, f"Unknown project status '{status}'")

        now = self.ctx.now()
        patch = ProjectPatch(
            name=name,
            owner=clean_str(payload.get("owner")),
            status=status,
            start_date=clean_str(payload.get("start_date")) or None,
            end_date=clean_str(payload.get("end_date")) or None,
            updated_by=actor.user_id,
            updated_at=now,
        ).as_patch()

        project = await self.store.upsert_one(
            Collection.PROJECTS,
            {"project_id": project_id},
            patch,
            {
                "source": RecordSource.MANUAL.value,
                "created_by": actor.user_id,
                "created_at": now,
            },
        )

        await self.ctx.audit.record(
            "project.upsert",
            actor.user_id,
            "project",
            project_id,
            {"name": name, "status": status},
        )
        return pick(project, PROJECT_FIELDS)

    async def list_projects(
        self,
        actor: CurrentUser,
        include_disabled: bool = False,
        keyword: str | None = None,
    ) -> list[dict[str, Any]]:
        """List projects sorted by id.

        Disabled projects are only returned to finance/admin users who ask
        for them.
        """
        include_disabled = include_disabled and is_privileged(actor)
        needle = clean_str(keyword).lower()

        out = []
        for project in await self.store.list(Collection.PROJECTS):
            if not include_disabled and project.get("status") == ProjectStatus.DISABLED.value:
                continue
            if needle:
                haystack = (
                    str(project.get("project_id", "")).lower(),
                    str(project.get("name", "")).lower(),
                )
                if not any(needle in part for part in haystack):
                    continue
            out.append(pick(project, PROJECT_FIELDS))

        out.sort(key=lambda p: str(p.get("project_id", "")))
        return out

    async def upsert_period_data(
        self,
        project_id: Any,
        period: Any,
        labor_amount: Any,
        tax_fee_amount: Any,
        actor: CurrentUser,
    ) -> dict[str, Any]:
        """Record labor allocation and tax fee for one project period."""
        require_capability(actor)

        project_id = clean_str(project_id)
        ensure(project_id, "project_id is required")
        period = require_period(period)
        labor = require_amount(labor_amount, "labor_amount")
        tax_fee = require_amount(tax_fee_amount, "tax_fee_amount")

        await self.ensure_project_exists(project_id, actor.user_id)
        now = self.ctx.now()
        key = {"project_id": project_id, "period": period}

        labor_doc = await self.store.upsert_one(
            Collection.PROJECT_LABOR_ALLOCATIONS,
            key,
            LaborPatch(
                labor_amount=labor,
                source=RecordSource.MANUAL.value,
                updated_by=actor.user_id,
                updated_at=now,
            ).as_patch(),
            {"allocation_id": self.ctx.new_id("labor"), "created_at": now},
        )
        tax_doc = await self.store.upsert_one(
            Collection.PROJECT_TAX_FEES,
            key,
            TaxFeePatch(
                tax_fee_amount=tax_fee,
                source=RecordSource.MANUAL.value,
                updated_by=actor.user_id,
                updated_at=now,
            ).as_patch(),
            {"fee_id": self.ctx.new_id("tax"), "created_at": now},
        )

        await self.ctx.audit.record(
            "project.period.upsert",
            actor.user_id,
            "project_period",
            f"{project_id}:{period}",
            {"labor_amount": labor, "tax_fee_amount": tax_fee},
        )
        return {"labor": labor_doc, "tax_fee": tax_doc}

    async def upsert_revenue(
        self,
        project_id: Any,
        period: Any,
        revenue_amount: Any,
        actor: CurrentUser,
    ) -> dict[str, Any]:
        """Manually record revenue for one project period."""
        require_capability(actor)

        project_id = clean_str(project_id)
        ensure(project_id, "project_id is required")
        period = require_period(period)
        amount = require_amount(revenue_amount, "revenue_amount")

        await self.ensure_project_exists(project_id, actor.user_id)
        now = self.ctx.now()
        record = await self.store.upsert_one(
            Collection.PROJECT_REVENUE,
            {"project_id": project_id, "period": period},
            RevenuePatch(
                revenue_amount=amount,
                source=RecordSource.MANUAL.value,
                updated_by=actor.user_id,
                updated_at=now,
            ).as_patch(),
            {"record_id": self.ctx.new_id("rev"), "created_at": now},
        )

        await self.ctx.audit.record(
            "project.revenue.upsert",
            actor.user_id,
            "project_period",
            f"{project_id}:{period}",
            {"revenue_amount": amount},
        )
        return record
