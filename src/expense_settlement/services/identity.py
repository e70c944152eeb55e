"""Current-user resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING

from expense_settlement.authz import CurrentUser
from expense_settlement.constants import Collection, UserStatus
from expense_settlement.errors import Forbidden, Unauthorized
from expense_settlement.utils import clean_str

if TYPE_CHECKING:
    from expense_settlement.store import DocumentStore


async def resolve_current_user(store: DocumentStore, user_id: str | None) -> CurrentUser:
    """Look up the caller by id.

    Raises:
        Unauthorized: No id was supplied or no such user exists
        Forbidden: The user has been disabled
    """
    user_id = clean_str(user_id)
    if not user_id:
        raise Unauthorized("User is not signed in")

    doc = await store.find_one(Collection.USERS, {"user_id": user_id})
    if doc is None:
        raise Unauthorized("User is not signed in or does not exist")

    user = CurrentUser.from_document(doc)
    if user.status == UserStatus.DISABLED.value:
        raise Forbidden("User account is disabled")
    return user
