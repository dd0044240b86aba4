"""
User Notifications

Every error that reaches the UI goes through user_message_for(), the
single notification surface. The user sees one short category message;
the raw exception is logged, never shown.
"""

import structlog
from pydantic import ValidationError

from fintrack.reconciliation.errors import (
    AccountNotFoundError,
    CurrencyConversionError,
    GoalAllocationError,
    InvalidAmountError,
    LoanClosedError,
    LoanNotFoundError,
    SagaFailedError,
    TransactionNotFoundError,
)
from fintrack.services.rates.source import RateSourceError
from fintrack.services.storage.interface import StorageConnectionError, StorageError
from fintrack.transfers.calculator import TransferValidationError


logger = structlog.get_logger(__name__)


GENERIC_MESSAGE = "Something went wrong. Please try again."

# Checked in order; the first matching class wins
_MESSAGES: tuple[tuple[type[BaseException], str], ...] = (
    (CurrencyConversionError, "Unable to convert currency. Please try again."),
    (RateSourceError, "Exchange rates are unavailable right now. Please try again later."),
    (AccountNotFoundError, "The selected account could not be found."),
    (LoanNotFoundError, "The selected loan could not be found."),
    (LoanClosedError, "This loan is already fully repaid."),
    (TransactionNotFoundError, "This record no longer exists."),
    (GoalAllocationError, "That amount is more than the goal still needs."),
    (InvalidAmountError, "Please enter a valid amount."),
    (TransferValidationError, "Please check the transfer amounts and fees."),
    (ValidationError, "Some of the entered values are invalid."),
    (StorageConnectionError, "Network error. Please check your connection and try again."),
    (StorageError, "Your changes could not be saved. Please try again."),
)


def user_message_for(exc: BaseException) -> str:
    """
    Map an exception to a short, user-facing message.

    A SagaFailedError is described by its underlying cause; if some
    steps could not be undone, the user is asked to check balances.
    """
    logger.error(
        "user_facing_error",
        error_type=type(exc).__name__,
        error=str(exc),
    )

    if isinstance(exc, SagaFailedError):
        if exc.failed_compensations:
            return (
                "The operation failed partway and could not be fully undone. "
                "Please check your account balances."
            )
        cause = exc.__cause__
        if cause is not None and not isinstance(cause, SagaFailedError):
            return _message_for(cause)
        return GENERIC_MESSAGE

    return _message_for(exc)


def _message_for(exc: BaseException) -> str:
    for exc_type, message in _MESSAGES:
        if isinstance(exc, exc_type):
            return message
    return GENERIC_MESSAGE
