"""Authorization predicates.

Every guard in the engine goes through ``has_capability`` so that role
checks stay in one auditable place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from expense_settlement.constants import PRIVILEGED_ROLES, Role, UserStatus
from expense_settlement.errors import Forbidden


@dataclass(frozen=True)
class CurrentUser:
    """Resolved identity of the caller."""

    user_id: str
    role: Role
    status: str = UserStatus.ACTIVE.value
    name: str = ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> CurrentUser:
        try:
            role = Role(doc.get("role") or Role.APPLICANT.value)
        except ValueError:
            # Unknown roles carry no capability
            role = Role.APPLICANT
        return cls(
            user_id=str(doc.get("user_id") or ""),
            role=role,
            status=str(doc.get("status") or UserStatus.ACTIVE.value),
            name=str(doc.get("name") or ""),
        )


def has_capability(user: CurrentUser | None, required: Iterable[Role]) -> bool:
    """True when the user holds one of the required roles."""
    if user is None:
        return False
    return user.role in frozenset(required)


def require_capability(
    user: CurrentUser | None,
    required: Iterable[Role] = PRIVILEGED_ROLES,
    message: str = "Only finance or admin users may perform this operation",
) -> None:
    """Raise Forbidden unless the user holds one of the required roles."""
    if not has_capability(user, required):
        raise Forbidden(message)


def is_privileged(user: CurrentUser | None) -> bool:
    return has_capability(user, PRIVILEGED_ROLES)


def is_owner_or_privileged(user: CurrentUser | None, owner_id: str | None) -> bool:
    """Owners and finance/admin users may act on a claim."""
    if user is None:
        return False
    return (bool(owner_id) and owner_id == user.user_id) or is_privileged(user)
