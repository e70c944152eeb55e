"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from expense_settlement import __version__
from expense_settlement.api.routes import (
    claims_router,
    health_router,
    imports_router,
    projects_router,
    reports_router,
    settlements_router,
)
from expense_settlement.config import get_settings
from expense_settlement.context import EngineContext, build_context
from expense_settlement.errors import AppError, InternalError, ValidationError
from expense_settlement.logging_config import configure_logging

logger = logging.getLogger(__name__)


def error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"ok": False, "error": exc.to_dict()}),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the engine context on startup unless one was injected."""
    settings = get_settings()
    configure_logging(settings.log_level)

    owned = app.state.ctx is None
    if owned:
        app.state.ctx = await build_context(settings)
    yield
    if owned:
        await app.state.ctx.close()
        app.state.ctx = None


def create_app(ctx: EngineContext | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        ctx: Pre-built engine context; when omitted one is built from
            settings during startup
    """
    app = FastAPI(
        title="Expense Settlement API",
        description="Project expense claims, imports, settlements and reports",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(ValidationError("Invalid request", exc.errors()))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": InternalError("An unexpected error occurred").to_dict()},
        )

    app.include_router(health_router)
    app.include_router(claims_router, prefix="/api/v1")
    app.include_router(imports_router, prefix="/api/v1")
    app.include_router(projects_router, prefix="/api/v1")
    app.include_router(settlements_router, prefix="/api/v1")
    app.include_router(reports_router, prefix="/api/v1")

    return app
