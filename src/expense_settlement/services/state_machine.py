"""Expense claim state machine with transition validation."""

from __future__ import annotations

from typing import Any, Mapping

from expense_settlement.constants import ClaimStatus
from expense_settlement.errors import InvalidState


class InvalidTransitionError(InvalidState):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = reason or f"Invalid transition from '{from_status}' to '{to_status}'"
        super().__init__(
            msg,
            current_status=from_status,
            details={"from": from_status, "to": to_status},
        )


class ClaimStateMachine:
    """State machine for expense claim status transitions.

    Allowed transitions:
    - draft → submitted
    - submitted → approved | rejected
    - rejected → submitted (resubmit)
    - rejected → draft (edit)
    - submitted | approved | rejected → void
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ClaimStatus.DRAFT: [ClaimStatus.SUBMITTED],
        ClaimStatus.SUBMITTED: [ClaimStatus.APPROVED, ClaimStatus.REJECTED, ClaimStatus.VOID],
        ClaimStatus.APPROVED: [ClaimStatus.VOID],
        ClaimStatus.REJECTED: [ClaimStatus.SUBMITTED, ClaimStatus.DRAFT, ClaimStatus.VOID],
        ClaimStatus.VOID: [],  # Terminal state
    }

    # Statuses where the owner may replace the claim's items
    EDITABLE = {
        ClaimStatus.DRAFT,
        ClaimStatus.REJECTED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if items and header fields may be replaced in this status."""
        return status in cls.EDITABLE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status, [])

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def validate_claim_for_transition(
        cls,
        claim: Mapping[str, Any],
        to_status: str,
        item_count: int | None = None,
    ) -> list[str]:
        """Validate a claim for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = claim.get("status", "")

        if not cls.can_transition(from_status, to_status):
            errors.append(cls._describe_illegal(from_status, to_status))
            return errors

        if to_status == ClaimStatus.SUBMITTED:
            if item_count is not None and item_count <= 0:
                errors.append("Claim has no expense items")

        return errors

    @staticmethod
    def _describe_illegal(from_status: str, to_status: str) -> str:
        if to_status == ClaimStatus.SUBMITTED:
            return f"Only draft or rejected claims can be submitted (current: {from_status})"
        if to_status == ClaimStatus.APPROVED:
            return f"Only submitted claims can be approved (current: {from_status})"
        if to_status == ClaimStatus.REJECTED:
            return f"Only submitted claims can be rejected (current: {from_status})"
        if to_status == ClaimStatus.VOID:
            return f"Claim cannot be voided in status '{from_status}'"
        return f"Cannot transition from '{from_status}' to '{to_status}'"
