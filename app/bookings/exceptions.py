"""
Booking-specific exceptions for session lifecycle operations.

Exception Hierarchy:
    AuthorizationError - Caller is not a participant (inherits PermissionDeniedError)
    InvalidTransitionError - Transition not allowed from the current status
        └── TerminalStateError - Session already completed/cancelled/no-show
    StaleStateError - Session changed between read and write

Every transition error carries the current status in ``details`` so the
caller can show it or decide whether to re-read.

Usage:
    from bookings.exceptions import StaleStateError

    try:
        SessionLedger.apply_cancellation(...)
    except StaleStateError:
        session = SessionLedger.get_session(session_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ConflictError, PermissionDeniedError

if TYPE_CHECKING:
    from typing import Any


class AuthorizationError(PermissionDeniedError):
    """Raised when the requester is neither the candidate nor the interviewer."""

    default_error_code: str = "FORBIDDEN"


class InvalidTransitionError(ConflictError):
    """
    Raised when the session status does not allow the requested transition.

    Example:
        raise InvalidTransitionError(
            "Cannot cancel a session that is awaiting payment",
            current_status="pending_payment",
        )
    """

    default_error_code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if current_status is not None:
            details["current_status"] = str(current_status)
        super().__init__(message, error_code=error_code, details=details)
        self.current_status = current_status


class TerminalStateError(InvalidTransitionError):
    """
    Raised when acting on a session that already reached a terminal status.

    Answered with 400 rather than 409: retrying will never succeed.
    """

    default_error_code: str = "ALREADY_TERMINAL"
    http_status: int = 400


class StaleStateError(ConflictError):
    """
    Raised when a compare-and-set write found a different status than was read.

    Another writer moved the session first. Callers either re-read and
    return an idempotent result or surface the conflict.
    """

    default_error_code: str = "STALE_STATE"

    def __init__(
        self,
        message: str,
        expected_status: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if expected_status is not None:
            details["expected_status"] = str(expected_status)
        super().__init__(message, error_code=error_code, details=details)
        self.expected_status = expected_status
