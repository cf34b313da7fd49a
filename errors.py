"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

Non-AppError exceptions are logged and mapped to a 500 ServerError; the
exception detail is only echoed back outside production.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    """Field-level input errors; ``errors`` maps field name to message."""

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[dict[str, str]] = None,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message, field=field, details=details)
        self.errors = errors

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class InvalidCredentialsError(AuthenticationError):
    error_code = "invalid_credentials"

    def __init__(
        self,
        message: str = "Invalid email or password.",
        *,
        remaining_attempts: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.remaining_attempts = remaining_attempts

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.remaining_attempts is not None:
            payload["remainingAttempts"] = self.remaining_attempts
        return payload


class AccountLockedError(AuthenticationError):
    error_code = "account_locked"


class TooManyAttemptsError(AuthenticationError):
    error_code = "too_many_attempts"


class TokenExpiredError(AppError):
    status_code = 400
    error_code = "token_expired"


class TokenMalformedError(AppError):
    status_code = 400
    error_code = "token_invalid"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


class CooldownError(RateLimitError):
    error_code = "cooldown"

    def __init__(self, message: str, *, seconds_left: int) -> None:
        super().__init__(message)
        self.seconds_left = seconds_left

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["cooldown"] = self.seconds_left
        return payload


class SessionExpiredError(AppError):
    status_code = 440
    error_code = "session_expired"


class DeliveryFailureError(AppError):
    """Notification dispatch failed after the token state was persisted."""

    status_code = 500
    error_code = "delivery_failure"


class ServerError(AppError):
    status_code = 500
    error_code = "internal_error"


def field_errors_from_pydantic(errors: list[dict]) -> dict[str, str]:
    """Collapse pydantic error dicts into ``{field: first message}``."""
    result: dict[str, str] = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = loc[-1] if loc else "__root__"
        msg = err.get("msg", "Invalid value")
        # pydantic prefixes custom ValueError messages
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        result.setdefault(field, msg)
    return result


def register_error_handlers(app: FastAPI, *, is_production: bool = False) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = ValidationError(
            "Validation errors in fields",
            errors=field_errors_from_pydantic(exc.errors()),
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        message = (
            "An internal server error occurred."
            if is_production
            else f"Server error: {exc}"
        )
        error = ServerError(message)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
