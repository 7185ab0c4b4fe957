"""Application errors and the handlers that render them.

Every error leaves the API as ``{error, message, status, details?}`` so
the dashboard can show ``message`` verbatim and branch on ``error``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging import get_logger


logger = get_logger("error")


class AppException(Exception):
    """Base application exception with structured error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


class BadRequestError(AppException):
    """Well-formed request the domain cannot act on (bad price, unknown symbol)."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"
    message = "Bad request"


class ValidationError(AppException):
    """Malformed input: body, query parameter or ticker."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


class AuthenticationError(AppException):
    """Missing, expired or forged session."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTHENTICATION_FAILED"
    message = "Authentication required"


class NotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(AppException):
    """Email or username already registered."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    message = "Resource conflict"


class ExternalServiceError(AppException):
    """Upstream dependency failed or returned unusable data."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UPSTREAM_ERROR"
    message = "External service temporarily unavailable"


class InsufficientHoldingError(AppException):
    """A sell asked for more shares than the position holds."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INSUFFICIENT_HOLDING"

    def __init__(self, held: Decimal, requested: Decimal):
        self.held = held
        self.requested = requested
        super().__init__(
            message=f"Cannot sell {_plain(requested)}. You hold {_plain(held)}.",
            details={"held": float(held), "requested": float(requested)},
        )


def _plain(value: Decimal) -> str:
    """Render a quantity without exponent or trailing zeros."""
    return format(value.normalize(), "f")


def _error_response(request: Request, status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return _error_response(request, exc.status_code, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # 400 rather than FastAPI's 422; the first message doubles as the summary
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        error = ValidationError(
            message=errors[0]["message"] if errors else None,
            details={"errors": jsonable_encoder(errors)},
        )
        return _error_response(request, error.status_code, error.to_dict())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled exception",
            extra={"path": request.url.path, "method": request.method},
        )

        from .config import settings

        error = AppException(message=str(exc) if settings.debug else None)
        return _error_response(request, error.status_code, error.to_dict())
