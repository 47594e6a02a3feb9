"""
Tests for the application exception hierarchy.
"""

from __future__ import annotations

import pytest

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class TestBaseApplicationError:
    def test_defaults(self):
        exc = BaseApplicationError("Something broke")

        assert exc.message == "Something broke"
        assert exc.error_code == "APPLICATION_ERROR"
        assert exc.details == {}
        assert exc.http_status == 500

    def test_str_includes_code(self):
        exc = ValidationError("Too early", error_code="JOIN_TOO_EARLY")

        assert str(exc) == "[JOIN_TOO_EARLY] Too early"

    def test_to_dict_omits_empty_details(self):
        exc = NotFoundError("Session not found")

        assert exc.to_dict() == {"error": "Session not found", "error_code": "NOT_FOUND"}

    def test_to_dict_includes_details(self):
        exc = ConflictError(
            "Cannot cancel a completed session",
            error_code="INVALID_TRANSITION",
            details={"current_status": "completed"},
        )

        assert exc.to_dict() == {
            "error": "Cannot cancel a completed session",
            "error_code": "INVALID_TRANSITION",
            "details": {"current_status": "completed"},
        }


@pytest.mark.parametrize(
    "exc_class,error_code,http_status",
    [
        (ValidationError, "VALIDATION_ERROR", 400),
        (NotFoundError, "NOT_FOUND", 404),
        (PermissionDeniedError, "PERMISSION_DENIED", 403),
        (ConflictError, "CONFLICT", 409),
        (ExternalServiceError, "EXTERNAL_SERVICE_ERROR", 502),
    ],
)
def test_subclass_codes_and_statuses(exc_class, error_code, http_status):
    exc = exc_class("message")

    assert isinstance(exc, BaseApplicationError)
    assert exc.error_code == error_code
    assert exc.http_status == http_status
