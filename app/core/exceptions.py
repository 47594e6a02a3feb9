"""
Base exception classes for application-wide error handling.

Every domain error raised by the booking and payment services derives from
BaseApplicationError, which carries a machine-readable error code and the
HTTP status that API views should answer with.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or precondition failures (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── ConflictError - State conflicts, concurrent modifications (409)
    └── ExternalServiceError - Third-party service failures (502)

Usage:
    from core.exceptions import NotFoundError, ValidationError

    raise ValidationError("Session is too early to join", error_code="JOIN_TOO_EARLY")

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (current status, amounts, ids)
        http_status: Status code API views answer with
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Returns:
            Dict with error, error_code, and optionally details
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input or a business precondition is not met.

    Example:
        if duration_minutes < 30:
            raise ValidationError(
                "Sessions must be at least 30 minutes",
                error_code="INVALID_DURATION",
                details={"duration_minutes": duration_minutes},
            )
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource does not exist."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller is not allowed to act on a resource.

    Distinct from authentication: the caller is known, but is not a
    participant of the session (or owner of the package) being touched.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current state.

    Typical causes are transitions that the state machine does not allow
    and concurrent writers that changed a row between read and write.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """Raised when a third-party service (Stripe, Redis) fails."""

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
