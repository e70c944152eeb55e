"""Application error taxonomy.

Every failure that crosses the engine boundary is an AppError carrying a
stable machine-readable code, a human-readable message, the HTTP status it
maps to, and optional structured details.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for all expected engine failures."""

    code = "BAD_REQUEST"
    status_code = 400

    def __init__(
        self,
        message: str,
        details: Any | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.details = details
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Return the error part of the result envelope."""
        return {
            "code": self.code,
            "message": self.message,
            "statusCode": self.status_code,
            "details": self.details,
        }


class ValidationError(AppError):
    """Malformed or missing input."""

    code = "BAD_REQUEST"
    status_code = 400


class Unauthorized(AppError):
    """No resolvable identity."""

    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(AppError):
    """Identity resolved but lacks the required role or ownership."""

    code = "FORBIDDEN"
    status_code = 403


class NotFound(AppError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidState(AppError):
    """Operation is not legal in the entity's current lifecycle state."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        details: Any | None = None,
    ):
        self.current_status = current_status
        if details is None and current_status is not None:
            details = {"status": current_status}
        super().__init__(message, details)


class MissingRevenue(AppError):
    code = "MISSING_REVENUE"
    status_code = 422


class MissingLabor(AppError):
    code = "MISSING_LABOR"
    status_code = 422


class MissingTax(AppError):
    code = "MISSING_TAX"
    status_code = 422


class FeedError(AppError):
    """External revenue feed could not be read."""

    code = "FEED_ERROR"
    status_code = 502


class InternalError(AppError):
    code = "INTERNAL_ERROR"
    status_code = 500


def ensure(condition: Any, message: str, error: type[AppError] = ValidationError) -> None:
    """Raise ``error(message)`` unless ``condition`` holds."""
    if not condition:
        raise error(message)
