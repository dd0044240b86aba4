"""
Exchange Rate and Conversion Models

ExchangeRateTable is a snapshot of rates against one pivot currency.
ConversionResult is the immutable record of one conversion, stored
as an audit record next to the transaction that used it.

DESIGN DECISION: Both models are frozen. A table is superseded by the
next successful fetch, never mutated in place. A conversion result
records exactly what was applied, independent of later rate moves.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fintrack.models.money import ONE, normalize_currency_code, to_decimal


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExchangeRateTable(BaseModel):
    """
    Mapping of currency code to a rate relative to base_currency.

    Invariant: rates[base_currency] == 1. The base entry is synthesized
    when the source omits it (Frankfurter never lists the base).
    """
    model_config = ConfigDict(frozen=True)

    base_currency: str = Field(
        ...,
        description="Pivot currency all rates are relative to"
    )
    rates: dict[str, Decimal] = Field(
        ...,
        description="Units of each currency per one unit of base currency"
    )
    fetched_at: datetime = Field(
        default_factory=utc_now,
        description="When this table was obtained from the source"
    )

    @field_validator('base_currency')
    @classmethod
    def validate_base(cls, v: str) -> str:
        return normalize_currency_code(v)

    @field_validator('rates', mode='before')
    @classmethod
    def coerce_rates(cls, v: dict) -> dict[str, Decimal]:
        return {str(code).upper(): to_decimal(rate) for code, rate in dict(v).items()}

    @model_validator(mode='before')
    @classmethod
    def synthesize_base_rate(cls, data):
        if isinstance(data, dict) and data.get("base_currency") and data.get("rates") is not None:
            base = str(data["base_currency"]).strip().upper()
            rates = dict(data["rates"])
            if base not in rates:
                rates[base] = ONE
            data = {**data, "rates": rates}
        return data

    @model_validator(mode='after')
    def validate_base_rate(self) -> 'ExchangeRateTable':
        if self.rates.get(self.base_currency) != ONE:
            raise ValueError(
                f"Rate for base currency {self.base_currency} must be 1, "
                f"got {self.rates.get(self.base_currency)}"
            )
        return self

    def rate_for(self, currency: str) -> Optional[Decimal]:
        """Rate for a currency, or None when the table does not list it."""
        return self.rates.get((currency or "").upper())

    def age_seconds(self, now: datetime) -> float:
        return (now - self.fetched_at).total_seconds()

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        return self.age_seconds(now) < ttl_seconds


class ConversionResult(BaseModel):
    """
    Outcome of converting one amount between two currencies.

    Invariant: same-currency conversions carry the original amount
    unchanged and an exchange rate of exactly 1.
    """
    model_config = ConfigDict(frozen=True)

    original_amount: Decimal
    original_currency: str
    converted_amount: Decimal = Field(
        ...,
        description="Rounded to 2 decimal places"
    )
    converted_currency: str
    exchange_rate: Decimal = Field(
        ...,
        description="Units of converted currency per original unit, 4 decimal places"
    )
    conversion_date: datetime = Field(
        default_factory=utc_now
    )

    @model_validator(mode='after')
    def validate_identity(self) -> 'ConversionResult':
        if self.original_currency == self.converted_currency:
            if self.converted_amount != self.original_amount or self.exchange_rate != ONE:
                raise ValueError(
                    "Same-currency conversion must keep the amount and use rate 1"
                )
        return self

    @classmethod
    def identity(cls, amount: Decimal, currency: str, at: Optional[datetime] = None) -> 'ConversionResult':
        return cls(
            original_amount=amount,
            original_currency=currency,
            converted_amount=amount,
            converted_currency=currency,
            exchange_rate=ONE,
            conversion_date=at or utc_now(),
        )
