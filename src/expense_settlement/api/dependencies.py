"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Header, Request

from expense_settlement.authz import CurrentUser
from expense_settlement.context import EngineContext
from expense_settlement.services.identity import resolve_current_user


def get_context(request: Request) -> EngineContext:
    """Engine context built at startup."""
    return request.app.state.ctx


async def get_current_user(
    ctx: Annotated[EngineContext, Depends(get_context)],
    x_user_id: Annotated[str | None, Header()] = None,
) -> CurrentUser:
    """Resolve the caller from the X-User-ID header."""
    return await resolve_current_user(ctx.store, x_user_id)


# Type aliases for cleaner dependency injection
Ctx = Annotated[EngineContext, Depends(get_context)]
User = Annotated[CurrentUser, Depends(get_current_user)]
