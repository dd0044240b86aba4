"""Balance reconciliation package."""

from fintrack.reconciliation.errors import (
    AccountNotFoundError,
    CurrencyConversionError,
    GoalAllocationError,
    InvalidAmountError,
    LoanClosedError,
    LoanNotFoundError,
    ReconciliationError,
    SagaFailedError,
    TransactionNotFoundError,
)
from fintrack.reconciliation.saga import MutationSaga, SagaStep
from fintrack.reconciliation.service import BalanceReconciliationService

__all__ = [
    "BalanceReconciliationService",
    "MutationSaga",
    "SagaStep",
    # Exceptions
    "AccountNotFoundError",
    "CurrencyConversionError",
    "GoalAllocationError",
    "InvalidAmountError",
    "LoanClosedError",
    "LoanNotFoundError",
    "ReconciliationError",
    "SagaFailedError",
    "TransactionNotFoundError",
]
