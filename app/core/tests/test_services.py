"""
Tests for ServiceResult and BaseService.
"""

from __future__ import annotations

import logging

import pytest
from django.contrib.auth.models import User

from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult


class ExampleService(BaseService):
    pass


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"processed": 3})

        assert result.success is True
        assert bool(result) is True
        assert result.data == {"processed": 3}
        assert result.to_response() == {"success": True, "data": {"processed": 3}}

    def test_failure(self):
        result = ServiceResult.failure(
            "Invalid input",
            error_code="INVALID",
            errors={"amount": ["must be positive"]},
        )

        assert bool(result) is False
        assert result.to_response() == {
            "success": False,
            "error": "Invalid input",
            "error_code": "INVALID",
            "errors": {"amount": ["must be positive"]},
        }

    def test_from_application_error_keeps_code(self):
        exc = ValidationError("Too early", error_code="JOIN_TOO_EARLY")

        result = ServiceResult.from_exception(exc)

        assert result.error == "Too early"
        assert result.error_code == "JOIN_TOO_EARLY"

    def test_from_plain_exception_uses_class_name(self):
        result = ServiceResult.from_exception(KeyError("missing"))

        assert result.success is False
        assert result.error_code == "KEYERROR"

    def test_explicit_code_wins(self):
        result = ServiceResult.from_exception(ValueError("bad"), error_code="LOCK_BUSY")

        assert result.error_code == "LOCK_BUSY"


class TestBaseService:
    def test_logger_named_after_service(self):
        assert ExampleService.get_logger().name == f"{__name__}.ExampleService"

    @pytest.mark.django_db
    def test_atomic_rolls_back(self):
        with pytest.raises(RuntimeError), ExampleService.atomic():
            User.objects.create(username="rolled-back")
            raise RuntimeError("boom")

        assert not User.objects.filter(username="rolled-back").exists()

    def test_handle_exception_logs_and_wraps(self, caplog):
        with caplog.at_level(logging.WARNING):
            try:
                raise ValidationError("No funds", error_code="INSUFFICIENT_FUNDS")
            except ValidationError as exc:
                result = ExampleService.handle_exception(
                    exc, context="Payout retry", log_level=logging.WARNING
                )

        assert result.success is False
        assert result.error_code == "INSUFFICIENT_FUNDS"
        assert "Payout retry" in caplog.text
