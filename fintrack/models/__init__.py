"""
Data Models Package

This package contains all Pydantic models used in Fintrack.
All data flowing through the system must conform to these schemas.
"""

from fintrack.models.money import (
    LEDGER_QUANTUM,
    RATE_QUANTUM,
    ROUNDING,
    Money,
    normalize_currency_code,
    round_money,
    round_rate,
    to_decimal,
)
from fintrack.models.currency import (
    CURRENCIES,
    CurrencyInfo,
    format_currency,
    get_currency_info,
    is_supported_currency,
)
from fintrack.models.rates import ConversionResult, ExchangeRateTable
from fintrack.models.transfer import TransferBreakdown, TransferCalculationResult
from fintrack.models.records import (
    BANK_FEES_CATEGORY,
    LOAN_REPAYMENT_CATEGORY,
    AccountType,
    BankAccount,
    Collection,
    ExchangeRateSnapshot,
    Expense,
    ExpenseType,
    Goal,
    GoalStatus,
    GoalType,
    Income,
    IncomeFrequency,
    Investment,
    InvestmentStatus,
    LedgerRecord,
    Loan,
    LoanRepayment,
    LoanStatus,
    PaymentStatus,
    SettlementStatus,
    TransactionConversion,
    TransactionType,
    Transfer,
    TransferType,
    UserSettings,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Money
    "LEDGER_QUANTUM",
    "RATE_QUANTUM",
    "ROUNDING",
    "Money",
    "normalize_currency_code",
    "round_money",
    "round_rate",
    "to_decimal",
    # Currency catalog
    "CURRENCIES",
    "CurrencyInfo",
    "format_currency",
    "get_currency_info",
    "is_supported_currency",
    # Rates and transfers
    "ConversionResult",
    "ExchangeRateTable",
    "TransferBreakdown",
    "TransferCalculationResult",
    # Ledger records
    "BANK_FEES_CATEGORY",
    "LOAN_REPAYMENT_CATEGORY",
    "AccountType",
    "BankAccount",
    "Collection",
    "ExchangeRateSnapshot",
    "Expense",
    "ExpenseType",
    "Goal",
    "GoalStatus",
    "GoalType",
    "Income",
    "IncomeFrequency",
    "Investment",
    "InvestmentStatus",
    "LedgerRecord",
    "Loan",
    "LoanRepayment",
    "LoanStatus",
    "PaymentStatus",
    "SettlementStatus",
    "TransactionConversion",
    "TransactionType",
    "Transfer",
    "TransferType",
    "UserSettings",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
