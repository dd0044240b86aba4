"""
Tests for user-facing error messages.
"""

import pytest
from pydantic import ValidationError

from fintrack.models import Money
from fintrack.notifications import GENERIC_MESSAGE, user_message_for
from fintrack.reconciliation import (
    AccountNotFoundError,
    CurrencyConversionError,
    LoanClosedError,
    SagaFailedError,
)
from fintrack.services.storage import StorageConnectionError, StorageError


def saga_error(cause: Exception, failed_compensations=None) -> SagaFailedError:
    try:
        try:
            raise cause
        except Exception as e:
            raise SagaFailedError("create_expense", "debit_account", [], failed_compensations) from e
    except SagaFailedError as error:
        return error


class TestUserMessageFor:
    """Tests for mapping exceptions to short messages."""

    def test_conversion_error(self):
        message = user_message_for(CurrencyConversionError(100, "EUR", "CHF"))

        assert message == "Unable to convert currency. Please try again."

    def test_connection_error_before_generic_storage(self):
        """Test that the more specific storage error wins."""
        assert user_message_for(StorageConnectionError("down")) == (
            "Network error. Please check your connection and try again."
        )
        assert user_message_for(StorageError("disk")) == (
            "Your changes could not be saved. Please try again."
        )

    def test_domain_errors(self):
        assert user_message_for(AccountNotFoundError("x")) == "The selected account could not be found."
        assert user_message_for(LoanClosedError("x")) == "This loan is already fully repaid."

    def test_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            Money(amount=1, currency="EURO")

        assert user_message_for(exc_info.value) == "Some of the entered values are invalid."

    def test_saga_error_uses_cause(self):
        error = saga_error(StorageConnectionError("timeout"))

        assert user_message_for(error) == (
            "Network error. Please check your connection and try again."
        )

    def test_saga_error_with_failed_undo(self):
        error = saga_error(StorageError("disk"), failed_compensations=["insert_expense"])

        assert "could not be fully undone" in user_message_for(error)

    def test_unknown_error_is_generic(self):
        """Test that raw exception text never reaches the user."""
        message = user_message_for(RuntimeError("KeyError: 'balance' at line 42"))

        assert message == GENERIC_MESSAGE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
