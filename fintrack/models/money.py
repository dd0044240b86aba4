"""
Money Primitives

DESIGN DECISION: Every amount and rate is a decimal.Decimal.
Binary floats are converted through str() on the way in, so 0.1
stays 0.1 and not 0.1000000000000000055511151231257827.

Rounding happens only at defined boundaries:
- ledger values (balances, converted amounts, fees): 2 fraction digits
- exchange rates: 4 fraction digits
Both use ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


LEDGER_QUANTUM = Decimal("0.01")
RATE_QUANTUM = Decimal("0.0001")
ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
ONE = Decimal("1")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric | None) -> Decimal:
    """
    Normalize a numeric value to Decimal.

    None becomes zero. Floats go through str() to avoid carrying
    binary representation error into ledger arithmetic.

    Raises:
        ValueError: If the value is not a finite number
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a numeric amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return result


def round_money(value: Numeric) -> Decimal:
    """Round a ledger value to 2 decimal places (half-up)."""
    return to_decimal(value).quantize(LEDGER_QUANTUM, rounding=ROUNDING)


def round_rate(value: Numeric) -> Decimal:
    """Round an exchange rate to 4 decimal places (half-up)."""
    return to_decimal(value).quantize(RATE_QUANTUM, rounding=ROUNDING)


def normalize_currency_code(code: str) -> str:
    """Upper-case and validate a 3-letter currency code."""
    normalized = (code or "").strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError(f"Currency code must be exactly 3 letters, got '{code}'")
    return normalized


class Money(BaseModel):
    """An (amount, currency) pair."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(
        ...,
        description="Amount in the given currency"
    )
    currency: str = Field(
        ...,
        description="ISO-4217-like currency code"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Numeric) -> Decimal:
        return to_decimal(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)

    def rounded(self) -> "Money":
        """Return the same value rounded to ledger precision."""
        return Money(amount=round_money(self.amount), currency=self.currency)

    def __str__(self) -> str:
        return f"{round_money(self.amount)} {self.currency}"
