"""
Reconciliation Errors

Raised by BalanceReconciliationService. Everything except
SagaFailedError is raised before the first write, so the store is
untouched when the caller sees it.
"""

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for balance reconciliation."""
    pass


class AccountNotFoundError(ReconciliationError):
    """A referenced bank account does not exist for this user."""
    pass


class TransactionNotFoundError(ReconciliationError):
    """The income, expense, investment, goal or transfer does not exist."""
    pass


class CurrencyConversionError(ReconciliationError):
    """A conversion the mutation depends on could not be computed."""

    def __init__(self, amount, from_currency: str, to_currency: str):
        self.amount = amount
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(
            f"Unable to convert {amount} {from_currency} to {to_currency}"
        )


class LoanNotFoundError(ReconciliationError):
    """The loan does not exist for this user."""
    pass


class LoanClosedError(ReconciliationError):
    """Repayment attempted on a loan that is already closed."""
    pass


class InvalidAmountError(ReconciliationError):
    """An amount is zero, negative or otherwise unusable."""
    pass


class GoalAllocationError(ReconciliationError):
    """An allocation would push a goal past its target."""
    pass


class SagaFailedError(ReconciliationError):
    """
    A step of a multi-step mutation failed.

    The original exception is chained as __cause__.

    Attributes:
        saga_name: Which mutation failed
        failed_step: Name of the step that raised
        compensated_steps: Steps whose effects were undone, in undo order
        failed_compensations: Steps whose undo itself failed; their
            effects are still in the store
    """

    def __init__(
        self,
        saga_name: str,
        failed_step: str,
        compensated_steps: Optional[list[str]] = None,
        failed_compensations: Optional[list[str]] = None,
    ):
        self.saga_name = saga_name
        self.failed_step = failed_step
        self.compensated_steps = list(compensated_steps or [])
        self.failed_compensations = list(failed_compensations or [])
        message = f"{saga_name} failed at step '{failed_step}'"
        if self.failed_compensations:
            message += f"; could not undo: {', '.join(self.failed_compensations)}"
        super().__init__(message)
