"""API routes."""

from expense_settlement.api.routes.claims import router as claims_router
from expense_settlement.api.routes.health import router as health_router
from expense_settlement.api.routes.imports import router as imports_router
from expense_settlement.api.routes.projects import router as projects_router
from expense_settlement.api.routes.reports import router as reports_router
from expense_settlement.api.routes.settlements import router as settlements_router

__all__ = [
    "claims_router",
    "health_router",
    "imports_router",
    "projects_router",
    "reports_router",
    "settlements_router",
]
