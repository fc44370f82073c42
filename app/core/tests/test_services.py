"""
Tests for ServiceResult, BaseService and the base exception hierarchy.
"""

from __future__ import annotations

import logging

import pytest

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from core.services import BaseService, ServiceResult


class ExampleService(BaseService):
    pass


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result
        assert result.data == {"id": 1}
        assert result.error is None

    def test_failure_with_field_errors(self):
        result = ServiceResult.failure(
            "Payout destination is incomplete",
            error_code="PAYOUT_VALIDATION_ERROR",
            errors={"upi_id": ["This field is required."]},
        )

        assert not result
        assert result.data is None
        assert result.error == "Payout destination is incomplete"
        assert result.error_code == "PAYOUT_VALIDATION_ERROR"
        assert result.errors == {"upi_id": ["This field is required."]}

    def test_from_application_error_keeps_code(self):
        result = ServiceResult.from_exception(
            NotFoundError("Payout missing", error_code="PAYOUT_NOT_FOUND")
        )

        assert result.error == "Payout missing"
        assert result.error_code == "PAYOUT_NOT_FOUND"

    def test_from_plain_exception_uses_class_name(self):
        result = ServiceResult.from_exception(KeyError("x"))

        assert result.error_code == "KEYERROR"

    def test_code_override(self):
        result = ServiceResult.from_exception(ValidationError("bad"), error_code="CUSTOM")

        assert result.error_code == "CUSTOM"

    def test_from_exception_keeps_field_errors(self):
        class FieldError(ValidationError):
            def __init__(self, message, errors):
                self.errors = errors
                super().__init__(message)

        result = ServiceResult.from_exception(FieldError("bad", {"amount_cents": ["Too low."]}))

        assert result.error_code == "VALIDATION_ERROR"
        assert result.errors == {"amount_cents": ["Too low."]}


class TestBaseService:
    def test_logger_named_after_class(self):
        assert ExampleService.get_logger().name.endswith("test_services.ExampleService")

    def test_handle_exception_logs_and_converts(self, caplog):
        with caplog.at_level(logging.WARNING):
            result = ExampleService.handle_exception(
                ConflictError("Concurrent update"),
                context="Approval failed",
                log_level=logging.WARNING,
            )

        assert result.error_code == "CONFLICT"
        assert "Approval failed: [CONFLICT] Concurrent update" in caplog.text

    @pytest.mark.django_db
    def test_atomic_rolls_back(self):
        from escrow.models import PlatformConfig

        with pytest.raises(RuntimeError):
            with ExampleService.atomic():
                PlatformConfig.objects.create()
                raise RuntimeError("boom")

        assert not PlatformConfig.objects.exists()


class TestExceptions:
    def test_default_codes(self):
        assert ValidationError("x").error_code == "VALIDATION_ERROR"
        assert NotFoundError("x").error_code == "NOT_FOUND"
        assert ConflictError("x").error_code == "CONFLICT"

    def test_to_dict(self):
        error = BaseApplicationError("Broken", error_code="E1", details={"id": "1"})

        assert error.to_dict() == {"error": "Broken", "error_code": "E1", "details": {"id": "1"}}
        assert str(error) == "[E1] Broken"

    def test_to_dict_without_details(self):
        assert ValidationError("Bad").to_dict() == {
            "error": "Bad",
            "error_code": "VALIDATION_ERROR",
        }
