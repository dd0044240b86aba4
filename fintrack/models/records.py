"""
Ledger Record Models

These models are the single canonical shape of every record that
crosses the persistence boundary.

DESIGN DECISION: Records written by older clients carry camelCase
field names (bankName, accountId), newer ones snake_case (bank_name,
account_id). Both spellings are accepted on input and normalized
immediately; records are always dumped in snake_case. Business logic
never looks up a field under two names.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from fintrack.models.money import ZERO, normalize_currency_code, to_decimal


# =============================================================================
# ENUMS
# =============================================================================

class Collection(str, Enum):
    """Named collections in the record store."""
    BANK_ACCOUNTS = "bank_accounts"
    LOANS = "loans"
    LOAN_REPAYMENTS = "loan_repayments"
    INCOMES = "incomes"
    EXPENSES = "expenses"
    INVESTMENTS = "investments"
    GOALS = "goals"
    TRANSFERS = "transfers"
    TRANSACTION_CONVERSIONS = "transaction_conversions"
    EXCHANGE_RATES = "exchange_rates"
    USER_SETTINGS = "user_settings"
    AUDIT_EVENTS = "audit_events"


class AccountType(str, Enum):
    """
    Bank account types.

    Liability accounts store their balance as a negative number whose
    absolute value is the outstanding debt.
    """
    SAVINGS = "Savings"
    CHECKING = "Checking"
    CREDIT_CARD = "Credit Card"
    LOAN = "Loan"
    CASH = "Cash"
    OTHER = "Other"

    @property
    def is_liability(self) -> bool:
        return self in (AccountType.CREDIT_CARD, AccountType.LOAN)


class IncomeFrequency(str, Enum):
    MONTHLY = "Monthly"
    BI_WEEKLY = "Bi-Weekly"
    WEEKLY = "Weekly"
    YEARLY = "Yearly"
    ONE_TIME = "One-time"


class ExpenseType(str, Enum):
    MANDATORY = "Mandatory"
    NEED = "Need"
    WANT = "Want"


class PaymentStatus(str, Enum):
    """Payment status of an expense charged to an account."""
    UNPAID = "Unpaid"
    PAID = "Paid"


class SettlementStatus(str, Enum):
    """Whether the loan behind a loan-income record has been repaid."""
    NOT_SETTLED = "Not Settled"
    SETTLED = "Settled"


class LoanStatus(str, Enum):
    ACTIVE = "Active"
    CLOSED = "Closed"


class InvestmentStatus(str, Enum):
    ACTIVE = "Active"
    LIQUIDATED = "Liquidated"


class GoalStatus(str, Enum):
    ACTIVE = "Active"
    FULFILLED = "Fulfilled"


class GoalType(str, Enum):
    SHORT_TERM = "Short-term (<1 year)"
    MEDIUM_TERM = "Medium-term (1-5 years)"
    LONG_TERM = "Long-term (>5 years)"


class TransferType(str, Enum):
    SELF = "Self"
    EXTERNAL = "External"
    CASH_WITHDRAWAL = "Cash Withdrawal"
    DEBT_REPAYMENT = "Debt Repayment"
    INTERNATIONAL = "International"


class TransactionType(str, Enum):
    """Business transaction kinds a conversion audit record can belong to."""
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"
    GOAL = "goal"
    TRANSFER = "transfer"


LOAN_REPAYMENT_CATEGORY = "Loan Repayment"
BANK_FEES_CATEGORY = "Bank Fees"


# =============================================================================
# BASE RECORD
# =============================================================================

def _field_aliases(field_name: str) -> AliasChoices:
    return AliasChoices(field_name, to_camel(field_name))


class LedgerRecord(BaseModel):
    """
    Base for every persisted record.

    Accepts snake_case and legacy camelCase keys; ignores unknown keys
    so schema additions on the backend do not break reads.
    """
    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=_field_aliases),
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=False,
        extra="ignore",
    )

    id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: dict[str, Any]):
        """Normalize a raw store record into this model."""
        return cls.model_validate(record)

    def to_record(self) -> dict[str, Any]:
        """
        Dump to a store record (snake_case, enums as values).

        Identity and timestamp fields are left out while still None so
        the store can assign them on insert.
        """
        data = self.model_dump(mode="python")
        for key, value in list(data.items()):
            if isinstance(value, Enum):
                data[key] = value.value
        for key in ("id", "created_at", "updated_at"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


# =============================================================================
# ENTITIES
# =============================================================================

class BankAccount(LedgerRecord):
    """A bank, card, loan or cash account holding a signed balance."""

    bank_name: str = Field(..., min_length=1, max_length=200)
    account_type: AccountType = AccountType.SAVINGS
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    balance: Decimal = ZERO
    currency: str
    credit_limit: Optional[Decimal] = None
    notes: Optional[str] = None

    @field_validator('balance', mode='before')
    @classmethod
    def coerce_balance(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)

    @property
    def is_liability(self) -> bool:
        return self.account_type.is_liability

    @property
    def outstanding_debt(self) -> Decimal:
        """Absolute debt for liability accounts, zero for asset accounts."""
        return abs(self.balance) if self.is_liability else ZERO


class Income(LedgerRecord):
    date: date
    source: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    currency: str
    frequency: IncomeFrequency = IncomeFrequency.ONE_TIME
    notes: Optional[str] = None
    account_id: Optional[str] = None
    is_loan_income: bool = False
    linked_loan_id: Optional[str] = None
    settlement_status: Optional[SettlementStatus] = None

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)


class Expense(LedgerRecord):
    date: date
    category: str = Field(default="Other", max_length=100)
    description: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    currency: str
    type: ExpenseType = ExpenseType.NEED
    account_id: Optional[str] = None
    is_repayment_transfer: bool = False
    payment_status: Optional[PaymentStatus] = None
    payment_date: Optional[date] = None
    linked_transfer_id: Optional[str] = None

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)


class Investment(LedgerRecord):
    date: date
    type: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    original_amount: Decimal = Field(..., gt=0)
    currency: str
    current_value: Decimal = ZERO
    total_invested: Decimal = ZERO
    realized_gain: Decimal = ZERO
    notes: Optional[str] = None
    linked_account_id: Optional[str] = None
    status: InvestmentStatus = InvestmentStatus.ACTIVE
    liquidation_date: Optional[date] = None

    @field_validator('original_amount', 'current_value', 'total_invested', 'realized_gain', mode='before')
    @classmethod
    def coerce_amounts(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)


class Goal(LedgerRecord):
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., gt=0)
    target_currency: str
    saved_amount: Decimal = ZERO
    target_date: Optional[date] = None
    type: GoalType = GoalType.SHORT_TERM
    notes: Optional[str] = None
    status: GoalStatus = GoalStatus.ACTIVE

    @field_validator('target_amount', 'saved_amount', mode='before')
    @classmethod
    def coerce_amounts(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator('target_currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.target_amount - self.saved_amount, ZERO)


class Loan(LedgerRecord):
    """
    A loan taken by the user.

    currency defaults to the linked account's currency when omitted;
    the reconciliation service fills it in before the loan is stored.
    remaining_balance starts at principal_amount and only goes down.
    status becomes Closed exactly when remaining_balance reaches 0.
    """

    lender_name: str = Field(..., min_length=1, max_length=200)
    loan_type: str = Field(default="Personal", max_length=100)
    principal_amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = None
    interest_rate: Optional[Decimal] = None
    start_date: date
    term_months: Optional[int] = Field(default=None, ge=1)
    monthly_payment: Optional[Decimal] = None
    remaining_balance: Optional[Decimal] = None
    status: LoanStatus = LoanStatus.ACTIVE
    linked_account_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('principal_amount', 'remaining_balance', mode='before')
    @classmethod
    def coerce_amounts(cls, v: Any) -> Optional[Decimal]:
        return to_decimal(v) if v is not None else None

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return normalize_currency_code(v) if v is not None else None

    @model_validator(mode='after')
    def default_remaining_balance(self) -> 'Loan':
        if self.remaining_balance is None:
            self.remaining_balance = self.principal_amount
        return self

    @property
    def is_closed(self) -> bool:
        return self.status == LoanStatus.CLOSED


class LoanRepayment(LedgerRecord):
    loan_id: str
    amount: Decimal = Field(..., gt=0)
    currency: str
    payment_date: date
    account_id: Optional[str] = None
    transfer_id: Optional[str] = None
    remaining_balance_after: Decimal
    notes: Optional[str] = None

    @field_validator('amount', 'remaining_balance_after', mode='before')
    @classmethod
    def coerce_amounts(cls, v: Any) -> Decimal:
        return to_decimal(v)


class Transfer(LedgerRecord):
    from_account_id: str
    to_account_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    currency: str
    type: TransferType
    description: Optional[str] = None
    date: date
    loan_id: Optional[str] = None

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)


class TransactionConversion(LedgerRecord):
    """Persisted audit record of the conversion one transaction used."""

    transaction_id: str
    transaction_type: TransactionType
    original_amount: Decimal
    original_currency: str
    converted_amount: Decimal
    converted_currency: str
    exchange_rate: Decimal
    conversion_date: datetime

    @field_validator('original_amount', 'converted_amount', 'exchange_rate', mode='before')
    @classmethod
    def coerce_amounts(cls, v: Any) -> Decimal:
        return to_decimal(v)


class ExchangeRateSnapshot(LedgerRecord):
    """Persisted copy of a fetched rate table."""

    base_currency: str
    rates: dict[str, Decimal]
    fetch_date: datetime

    @field_validator('rates', mode='before')
    @classmethod
    def coerce_rates(cls, v: dict) -> dict[str, Decimal]:
        return {str(code): to_decimal(rate) for code, rate in dict(v).items()}


class UserSettings(LedgerRecord):
    default_currency: str = "INR"
    display_currency: str = "INR"

    @field_validator('default_currency', 'display_currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)
