"""Tests for shared/exceptions.py."""

from shared.exceptions import (
    ConflictError,
    ExternalServiceError,
    LedgerError,
    NotFoundError,
    ValidationError,
)


class TestLedgerError:
    def test_message_and_default_code(self):
        """Code should default to the class name."""
        error = LedgerError("Something broke")
        assert str(error) == "Something broke"
        assert error.message == "Something broke"
        assert error.code == "LedgerError"
        assert error.details == {}

    def test_custom_code_and_details(self):
        error = LedgerError("Oops", code="OOPS", details={"key": "value"})
        assert error.code == "OOPS"
        assert error.details == {"key": "value"}

    def test_to_dict(self):
        """Should convert to dict for API responses."""
        error = LedgerError("Test error", code="TEST", details={"key": "value"})
        assert error.to_dict() == {
            "error": "TEST",
            "message": "Test error",
            "details": {"key": "value"},
        }

    def test_subclass_default_code(self):
        assert NotFoundError("missing").code == "NotFoundError"
        assert ConflictError("stale").code == "ConflictError"


class TestValidationError:
    def test_records_field(self):
        """Should keep the offending field on the error and in details."""
        error = ValidationError("bad value", field="currency")
        assert error.field == "currency"
        assert error.details["field"] == "currency"

    def test_without_field(self):
        error = ValidationError("bad value")
        assert error.field is None
        assert "field" not in error.details

    def test_is_ledger_error(self):
        assert isinstance(ValidationError("x"), LedgerError)


class TestExternalServiceError:
    def test_records_service(self):
        error = ExternalServiceError("down", service="document_store", code="STORE_ERROR")
        assert error.service == "document_store"
        assert error.details["service"] == "document_store"
        assert error.code == "STORE_ERROR"
