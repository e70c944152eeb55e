"""Expense claim lifecycle.

Operations:
- create_or_update: validate items, write the claim and replace its items
- submit: draft/rejected → submitted
- decide: approve / reject / void by finance or admin
- get_claim_detail / list_claims: read side used by the HTTP layer

Every mutating operation appends one operation-log record. Logging is
best-effort and never rolls back the mutation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from expense_settlement.authz import (
    CurrentUser,
    is_owner_or_privileged,
    is_privileged,
    require_capability,
)
from expense_settlement.constants import (
    DEFAULT_REJECT_REASON,
    DEFAULT_VOID_REASON,
    ClaimDecision,
    ClaimSource,
    ClaimStatus,
    ClaimType,
    Collection,
)
from expense_settlement.errors import Forbidden, InvalidState, NotFound, ValidationError, ensure
from expense_settlement.services.patches import ClaimPatch
from expense_settlement.services.project_service import ProjectService
from expense_settlement.services.state_machine import ClaimStateMachine, InvalidTransitionError
from expense_settlement.utils import (
    clean_str,
    is_date_in_period,
    normalize_period,
    parse_datetime,
    pick,
    sum_money,
    to_iso,
    to_money,
    to_number,
)

if TYPE_CHECKING:
    from expense_settlement.context import EngineContext

CLAIM_SUMMARY_FIELDS = (
    "claim_id",
    "project_id",
    "claim_type",
    "applicant_id",
    "amount_total",
    "tax_amount",
    "status",
    "occur_date",
    "source",
    "updated_at",
    "created_at",
)

_DECISION_TARGETS = {
    ClaimDecision.APPROVE: ClaimStatus.APPROVED,
    ClaimDecision.REJECT: ClaimStatus.REJECTED,
    ClaimDecision.VOID: ClaimStatus.VOID,
}


def sanitize_claim_items(items: Iterable[Any] | None) -> list[dict[str, Any]]:
    """Validate and normalize claim items.

    Each item needs a category, ``amount > 0`` and ``tax_amount >= 0``.
    Amounts are rounded to 2 decimals before any check.

    Raises:
        ValidationError: naming the first offending item (1-indexed)
    """
    items = list(items or [])
    ensure(items, "Claim must contain at least one expense item")

    out = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {index} is malformed")
        category = clean_str(item.get("category"))
        raw_amount = to_number(item.get("amount"), None)
        raw_tax = to_number(item.get("tax_amount"), 0.0)

        ensure(category, f"Item {index}: category is required")
        ensure(raw_amount is not None, f"Item {index}: amount must be greater than 0")
        amount = to_money(raw_amount)
        tax_amount = to_money(raw_tax)
        ensure(amount is not None, f"Item {index}: amount out of range")
        ensure(tax_amount is not None, f"Item {index}: tax_amount out of range")
        ensure(amount > 0, f"Item {index}: amount must be greater than 0")
        ensure(tax_amount >= 0, f"Item {index}: tax_amount must not be negative")

        out.append(
            {
                "category": category,
                "amount": amount,
                "tax_amount": tax_amount,
                "remark": clean_str(item.get("remark")),
            }
        )
    return out


def parse_occur_date(value: Any, field_name: str = "occur_date") -> str:
    """Normalize a date-like value to an ISO UTC timestamp string."""
    parsed = parse_datetime(value)
    if parsed is None:
        if isinstance(value, str) and value.strip():
            raise ValidationError(f"{field_name} is not a valid date")
        raise ValidationError(f"{field_name} is required")
    return to_iso(parsed)


def resolve_claim_source(claim_type: str, source: Any) -> str:
    source = clean_str(source)
    if source:
        return source
    if claim_type == ClaimType.PAPER:
        return ClaimSource.PAPER_MANUAL.value
    return ClaimSource.MINIAPP_MANUAL.value


class ClaimService:
    """Expense claim lifecycle."""

    def __init__(self, ctx: EngineContext):
        self.ctx = ctx
        self.store = ctx.store
        self.projects = ProjectService(ctx)

    async def get_claim(self, claim_id: Any) -> dict[str, Any]:
        claim_id = clean_str(claim_id)
        ensure(claim_id, "claim_id is required")
        claim = await self.store.find_one(Collection.EXPENSE_CLAIMS, {"claim_id": claim_id})
        if claim is None:
            raise NotFound(f"Claim {claim_id} not found")
        return claim

    async def create_or_update(
        self,
        payload: dict[str, Any],
        items: Iterable[Any] | None,
        actor: CurrentUser,
    ) -> dict[str, Any]:
        """Create a draft claim, or replace an editable claim and its items.

        Args:
            payload: Claim header fields; ``claim_id`` selects update mode
            items: Replacement item list (never merged with existing items)
            actor: Current user

        Returns:
            ``{"claim": ..., "items": [...]}``

        Raises:
            ValidationError: Bad header or items
            NotFound: ``claim_id`` given but unknown
            Forbidden: Actor is neither owner nor finance/admin
            InvalidState: Claim is not draft or rejected
        """
        clean_items = sanitize_claim_items(items)

        claim_id = clean_str(payload.get("claim_id"))
        project_id = clean_str(payload.get("project_id"))
        claim_type = clean_str(payload.get("claim_type")) or ClaimType.ELECTRONIC.value
        ensure(project_id, "project_id is required")
        ensure(
            claim_type in {t.value for t in ClaimType},
            f"Unknown claim_type '{claim_type}'",
        )
        occur_date = parse_occur_date(payload.get("occur_date"))

        existing = await self.get_claim(claim_id) if claim_id else None
        if existing is not None:
            if not is_owner_or_privileged(actor, existing.get("applicant_id")):
                raise Forbidden("Not allowed to edit this claim")
            if not ClaimStateMachine.can_edit(existing.get("status", "")):
                raise InvalidState(
                    "Only draft or rejected claims can be edited",
                    current_status=existing.get("status"),
                )

        requested_applicant = clean_str(payload.get("applicant_id"))
        if existing is not None:
            applicant_id = existing.get("applicant_id") or actor.user_id
        else:
            applicant_id = actor.user_id
        if requested_applicant and is_privileged(actor):
            applicant_id = requested_applicant

        await self.projects.ensure_project_exists(project_id, actor.user_id)

        now = self.ctx.now()
        amount_total = sum_money(item["amount"] for item in clean_items)
        tax_total = sum_money(item["tax_amount"] for item in clean_items)
        attachments = payload.get("attachments")

        patch = ClaimPatch(
            project_id=project_id,
            claim_type=claim_type,
            occur_date=occur_date,
            applicant_id=applicant_id,
            amount_total=amount_total,
            tax_amount=tax_total,
            cost_category=clean_str(payload.get("cost_category")),
            source=resolve_claim_source(claim_type, payload.get("source")),
            attachments=list(attachments) if isinstance(attachments, list) else [],
            updated_at=now,
        )

        if existing is not None:
            if existing.get("status") == ClaimStatus.REJECTED:
                # Editing a rejected claim reopens it as a draft
                patch.status = ClaimStatus.DRAFT.value
            claim = await self.store.update_by_id(
                Collection.EXPENSE_CLAIMS, "claim_id", claim_id, patch.as_patch()
            )
            if claim is None:
                raise NotFound(f"Claim {claim_id} not found")
            await self.store.delete_many(Collection.EXPENSE_ITEMS, {"claim_id": claim_id})
        else:
            claim = await self.store.insert(
                Collection.EXPENSE_CLAIMS,
                {
                    "claim_id": self.ctx.new_id("claim"),
                    "status": ClaimStatus.DRAFT.value,
                    "created_at": now,
                    **patch.as_patch(),
                },
            )

        saved_items = []
        for item in clean_items:
            saved_items.append(
                await self.store.insert(
                    Collection.EXPENSE_ITEMS,
                    {
                        "item_id": self.ctx.new_id("item"),
                        "claim_id": claim["claim_id"],
                        "project_id": claim["project_id"],
                        **item,
                        "created_at": now,
                        "updated_at": now,
                    },
                )
            )

        await self.ctx.audit.record(
            "claim.update" if existing is not None else "claim.create",
            actor.user_id,
            "expense_claim",
            claim["claim_id"],
            {"amount_total": amount_total, "item_count": len(saved_items)},
        )
        return {"claim": claim, "items": saved_items}

    async def submit(self, claim_id: Any, actor: CurrentUser) -> dict[str, Any]:
        """Submit a draft or rejected claim for review."""
        claim = await self.get_claim(claim_id)
        claim_id = claim["claim_id"]

        if not is_owner_or_privileged(actor, claim.get("applicant_id")):
            raise Forbidden("Not allowed to submit this claim")

        items = await self.store.find_many(Collection.EXPENSE_ITEMS, {"claim_id": claim_id})
        errors = ClaimStateMachine.validate_claim_for_transition(
            claim, ClaimStatus.SUBMITTED, item_count=len(items)
        )
        if errors:
            raise InvalidTransitionError(
                claim.get("status", ""), ClaimStatus.SUBMITTED.value, "; ".join(errors)
            )

        now = self.ctx.now()
        updated = await self.store.update_by_id(
            Collection.EXPENSE_CLAIMS,
            "claim_id",
            claim_id,
            ClaimPatch(
                status=ClaimStatus.SUBMITTED.value,
                submitted_at=now,
                updated_at=now,
            ).as_patch(),
        )

        await self.ctx.audit.record("claim.submit", actor.user_id, "expense_claim", claim_id)
        return updated

    async def decide(
        self,
        claim_id: Any,
        action: Any,
        actor: CurrentUser,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Approve, reject, or void a claim.

        Reject and void record a reason, falling back to a default text.
        """
        require_capability(actor)

        try:
            decision = ClaimDecision(clean_str(action) or ClaimDecision.APPROVE.value)
        except ValueError:
            raise ValidationError(f"Unknown action '{action}'") from None

        claim = await self.get_claim(claim_id)
        claim_id = claim["claim_id"]
        to_status = _DECISION_TARGETS[decision]

        errors = ClaimStateMachine.validate_claim_for_transition(claim, to_status)
        if errors:
            raise InvalidTransitionError(claim.get("status", ""), to_status.value, "; ".join(errors))

        now = self.ctx.now()
        reason = clean_str(reason)
        patch = ClaimPatch(status=to_status.value, updated_at=now)

        if decision == ClaimDecision.APPROVE:
            patch.approval_by = actor.user_id
            patch.approval_at = now
            patch.reject_reason = ""
        elif decision == ClaimDecision.REJECT:
            patch.approval_by = actor.user_id
            patch.approval_at = now
            patch.reject_reason = reason or DEFAULT_REJECT_REASON
        else:
            patch.void_reason = reason or DEFAULT_VOID_REASON

        updated = await self.store.update_by_id(
            Collection.EXPENSE_CLAIMS, "claim_id", claim_id, patch.as_patch()
        )

        await self.ctx.audit.record(
            f"claim.{decision.value}",
            actor.user_id,
            "expense_claim",
            claim_id,
            {"reason": reason},
        )
        return updated

    async def get_claim_detail(self, claim_id: Any, actor: CurrentUser) -> dict[str, Any]:
        """Return a claim and its items to its owner or to finance/admin."""
        claim = await self.get_claim(claim_id)
        if not is_owner_or_privileged(actor, claim.get("applicant_id")):
            raise Forbidden("Not allowed to view this claim")
        items = await self.store.find_many(
            Collection.EXPENSE_ITEMS, {"claim_id": claim["claim_id"]}
        )
        return {"claim": claim, "items": items}

    async def list_claims(
        self,
        actor: CurrentUser,
        scope: str = "mine",
        status: str | None = None,
        project_id: str | None = None,
        period: str | None = None,
    ) -> list[dict[str, Any]]:
        """List claim summaries, newest update first.

        Scopes: ``mine`` (own claims), ``pending`` (submitted, finance/admin),
        ``all`` (finance/admin).
        """
        scope = clean_str(scope) or "mine"
        ensure(scope in {"mine", "pending", "all"}, f"Unknown scope '{scope}'")
        if scope in {"pending", "all"}:
            require_capability(actor)

        status = clean_str(status)
        project_id = clean_str(project_id)
        period_filter = normalize_period(period) if period else None

        claims = await self.store.list(Collection.EXPENSE_CLAIMS)
        out = []
        for claim in claims:
            if scope == "mine" and claim.get("applicant_id") != actor.user_id:
                continue
            if scope == "pending" and claim.get("status") != ClaimStatus.SUBMITTED:
                continue
            if status and claim.get("status") != status:
                continue
            if project_id and claim.get("project_id") != project_id:
                continue
            if period_filter and not is_date_in_period(claim.get("occur_date"), period_filter):
                continue
            out.append(pick(claim, CLAIM_SUMMARY_FIELDS))

        out.sort(key=lambda c: str(c.get("updated_at") or ""), reverse=True)
        return out
