"""
Custom exceptions for the expense tracker backend.

Every AppError carries a stable machine-readable `code` and the HTTP status
it maps to; the handlers in app.main turn them into the error envelope.
"""

from typing import Any


class AppError(Exception):
    """Base exception for the application."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details


# === Configuration ===

class ConfigurationError(AppError):
    """Raised when a required setting is missing or unusable."""

    status_code = 500
    code = "CONFIGURATION_ERROR"


# === Authentication ===

class NotAuthenticatedError(AppError):
    """Raised when a request carries no usable session identity."""

    status_code = 401

    def __init__(self, reason: str):
        super().__init__(
            message="Authentication required",
            code=f"AUTH_{reason}",
            details={"reason": reason},
        )
        self.reason = reason


class InvalidCredentialsError(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"

    def __init__(self):
        super().__init__("Invalid credentials")


# === Request / business rules ===

class ValidationFailedError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class RateLimitedError(AppError):
    status_code = 429
    code = "RATE_LIMITED"


class GoneError(AppError):
    status_code = 410
    code = "GONE"


# === Upstream services ===

class UpstreamServiceError(AppError):
    """Raised when an external API (Anthropic, Google) fails.

    `original_error` stays server-side; the error handler only exposes it
    outside production.
    """

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, code: str | None = None, original_error: Exception | None = None):
        super().__init__(message=message, code=code)
        self.original_error = original_error
