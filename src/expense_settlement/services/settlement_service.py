"""Project settlement generation.

One settlement exists per (project_id, period). Regenerating overwrites it
in place with freshly computed figures and a new input snapshot.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from expense_settlement.authz import CurrentUser, require_capability
from expense_settlement.calculators import (
    CommissionRuleResolver,
    SettlementInputs,
    compute_settlement,
)
from expense_settlement.calculators.commission import validate_rule_ranges
from expense_settlement.constants import ClaimStatus, Collection, Role
from expense_settlement.errors import (
    MissingLabor,
    MissingRevenue,
    MissingTax,
    NotFound,
    ValidationError,
    ensure,
)
from expense_settlement.services.project_service import require_period
from expense_settlement.utils import clean_str, is_date_in_period, pick, sum_money

if TYPE_CHECKING:
    from expense_settlement.context import EngineContext

logger = logging.getLogger(__name__)


class SettlementService:
    """Combines approved costs with revenue, labor and tax-fee records."""

    def __init__(self, ctx: EngineContext):
        self.ctx = ctx
        self.store = ctx.store
        self.rule_resolver = CommissionRuleResolver(ctx.store)

    async def approved_claims(self, project_id: str, period: str) -> list[dict[str, Any]]:
        """Approved claims of a project whose occur_date falls in the period."""
        claims = await self.store.find_many(
            Collection.EXPENSE_CLAIMS,
            {"project_id": project_id, "status": ClaimStatus.APPROVED.value},
        )
        return [c for c in claims if is_date_in_period(c.get("occur_date"), period)]

    async def generate_settlement(
        self, project_id: Any, period: Any, actor: CurrentUser
    ) -> dict[str, Any]:
        """Compute and upsert the settlement for one project period.

        Raises:
            Forbidden: Actor is not finance/admin
            MissingRevenue / MissingLabor / MissingTax: Input record absent
        """
        require_capability(actor)
        project_id = clean_str(project_id)
        ensure(project_id, "project_id is required")
        period = require_period(period)

        key = {"project_id": project_id, "period": period}
        claims = await self.approved_claims(project_id, period)
        expense_cost = sum_money(c.get("amount_total") for c in claims)

        revenue = await self.store.find_one(Collection.PROJECT_REVENUE, key)
        labor = await self.store.find_one(Collection.PROJECT_LABOR_ALLOCATIONS, key)
        tax_fee = await self.store.find_one(Collection.PROJECT_TAX_FEES, key)
        if revenue is None:
            raise MissingRevenue("Cannot settle: project revenue is missing for the period", key)
        if labor is None:
            raise MissingLabor("Cannot settle: labor allocation is missing for the period", key)
        if tax_fee is None:
            raise MissingTax("Cannot settle: tax fee is missing for the period", key)

        rule = await self.rule_resolver.resolve(period)
        figures = compute_settlement(
            SettlementInputs(
                revenue=revenue.get("revenue_amount"),
                expense_cost=expense_cost,
                tax_fee=tax_fee.get("tax_fee_amount"),
                labor_cost=labor.get("labor_amount"),
            ),
            rule.ranges,
        )

        snapshot = {
            "project_id": project_id,
            "period": period,
            "revenue_record": pick(revenue, ("record_id", "revenue_amount", "source", "sync_batch_id")),
            "labor_record": pick(labor, ("allocation_id", "labor_amount", "source")),
            "tax_fee_record": pick(tax_fee, ("fee_id", "tax_fee_amount", "source")),
            "claim_count": len(claims),
            "rule": rule.to_snapshot(),
        }

        now = self.ctx.now()
        settlement = await self.store.upsert_one(
            Collection.PROJECT_SETTLEMENTS,
            key,
            {
                **figures.to_dict(),
                "rule_version": rule.version,
                "snapshot": snapshot,
                "generated_by": actor.user_id,
                "generated_at": now,
                "updated_at": now,
            },
            {"settlement_id": self.ctx.new_id("settlement"), "created_at": now},
        )

        logger.info(
            "Settlement %s for %s %s: profit=%s commission=%s rule=%s",
            settlement["settlement_id"],
            project_id,
            period,
            figures.profit,
            figures.commission_amount,
            rule.version,
        )
        await self.ctx.audit.record(
            "settlement.generate",
            actor.user_id,
            "project_settlement",
            settlement["settlement_id"],
            {
                "project_id": project_id,
                "period": period,
                "profit": figures.profit,
                "commission_amount": figures.commission_amount,
            },
        )
        return settlement

    async def get_settlement_detail(
        self,
        actor: CurrentUser,
        settlement_id: Any = None,
        project_id: Any = None,
        period: Any = None,
    ) -> dict[str, Any]:
        """Fetch a settlement by id or by (project_id, period)."""
        require_capability(actor)
        settlement_id = clean_str(settlement_id)
        project_id = clean_str(project_id)

        if settlement_id:
            query = {"settlement_id": settlement_id}
        elif project_id and period:
            query = {"project_id": project_id, "period": require_period(period)}
        else:
            raise ValidationError("Provide settlement_id or project_id and period")

        settlement = await self.store.find_one(Collection.PROJECT_SETTLEMENTS, query)
        if settlement is None:
            raise NotFound("Settlement not found", query)
        return settlement

    async def save_commission_rule(self, payload: dict[str, Any], actor: CurrentUser) -> dict[str, Any]:
        """Store or replace a commission rule version (admin only)."""
        require_capability(actor, {Role.ADMIN}, "Only admins may change commission rules")

        version = clean_str(payload.get("version"))
        ensure(version, "version is required")
        effective_from = payload.get("effective_from")
        if effective_from:
            effective_from = require_period(effective_from)
        status = clean_str(payload.get("status")) or "active"
        ensure(status in {"active", "disabled"}, f"Unknown rule status '{status}'")

        ranges = payload.get("ranges") or []
        validation = validate_rule_ranges(ranges)
        if not validation.ok:
            raise ValidationError("Invalid commission rule", validation.errors)

        now = self.ctx.now()
        rule = await self.store.upsert_one(
            Collection.COMMISSION_RULES,
            {"version": version},
            {
                "effective_from": effective_from or None,
                "status": status,
                "ranges": [dict(r) for r in ranges],
                "updated_by": actor.user_id,
                "updated_at": now,
            },
            {"created_at": now},
        )

        await self.ctx.audit.record(
            "commission_rule.save",
            actor.user_id,
            "commission_rule",
            version,
            {"effective_from": effective_from, "status": status},
        )
        return rule
