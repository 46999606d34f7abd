# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for the Error Hierarchy and Handlers
# =============================================================================

from unittest.mock import MagicMock

import pytest

from ledger_core.errors import (
    ErrorContext,
    LedgerError,
    LocalStoreError,
    RemoteError,
    RemoteNotConfiguredError,
    RemoteUnavailableError,
    ValidationError,
    handle_error,
    user_facing_message,
)


class TestExceptions:
    """Codes, details and hierarchy"""

    def test_validation_error_details(self):
        error = ValidationError("amount must be a number", field="amount", value="abc")

        assert error.code == "DATA_001"
        assert error.details == {"field": "amount", "value": "abc"}
        assert str(error).startswith("[DATA_001] amount must be a number")

    def test_remote_errors_share_base(self):
        error = RemoteUnavailableError("timeout", table="customers", operation="select")

        assert isinstance(error, RemoteError)
        assert isinstance(error, LedgerError)
        assert error.code == "REMOTE_001"
        assert error.details == {"table": "customers", "operation": "select"}

    def test_not_configured_is_not_recoverable(self):
        error = RemoteNotConfiguredError()

        assert error.recoverable is False
        assert error.to_dict()["error_type"] == "RemoteNotConfiguredError"


class TestHandleError:
    """UI notification and logging"""

    def test_recoverable_message(self):
        notify = MagicMock()
        handle_error(ValidationError("name is required"), notify=notify, log_error=False)

        notify.assert_called_once_with("Error: name is required")

    def test_critical_message(self):
        notify = MagicMock()
        handle_error(LocalStoreError("disk full"), notify=notify, log_error=False)

        assert notify.call_args[0][0].startswith("Critical Error: disk full")

    def test_custom_user_message(self):
        notify = MagicMock()
        handle_error(ValueError("boom"), notify=notify, log_error=False, user_message="Could not save")

        notify.assert_called_once_with("Error: Could not save")


class TestUserFacingMessage:
    def test_ledger_error_uses_its_message(self):
        assert user_facing_message(ValidationError("bad date")) == "Error: bad date"

    def test_plain_exception(self):
        assert user_facing_message(KeyError("x"), user_message="Lookup failed") == "Error: Lookup failed"


class TestErrorContext:
    def test_suppresses_recoverable(self):
        notify = MagicMock()

        with ErrorContext("Recording installment", notify=notify) as ctx:
            raise ValidationError("amount must be greater than zero")

        assert isinstance(ctx.error, ValidationError)
        assert ctx.failed is True
        notify.assert_called_once()

    def test_propagates_when_not_recoverable(self):
        with pytest.raises(LocalStoreError):
            with ErrorContext("Saving", recoverable=False):
                raise LocalStoreError("disk full")
