"""
Transfer Calculation Models

Results of the international transfer calculators. Both are
structured results: an invalid input produces is_valid=False with a
human-readable error_message and zeroed numbers, never an exception.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fintrack.models.money import ZERO


SOURCE_FEE_MARKER = "source"
DESTINATION_FEE_MARKER = "destination"


def is_source_fee_currency(fee_currency: str, source_currency: str) -> bool:
    """
    Whether an extra fee is stated in the transfer's source currency.

    fee_currency is either a currency code or one of the markers
    "source" / "destination".
    """
    normalized = (fee_currency or "").strip()
    if normalized.lower() == SOURCE_FEE_MARKER:
        return True
    return bool(normalized) and normalized.upper() == (source_currency or "").upper()


class TransferCalculationResult(BaseModel):
    """Fixed per-unit markup added directly to the rate."""
    model_config = ConfigDict(frozen=True)

    destination_amount: Decimal = ZERO
    effective_rate: Decimal = ZERO
    is_valid: bool
    error_message: Optional[str] = None


class TransferBreakdown(BaseModel):
    """
    Itemized economics of a single international transfer.

    All amounts after source_amount are in the destination currency.
    buffer_amount is a principal top-up and is excluded from total_fees.
    """
    model_config = ConfigDict(frozen=True)

    source_amount: Decimal = ZERO
    source_currency: str
    destination_currency: str
    base_exchange_rate: Decimal = ZERO
    effective_exchange_rate: Decimal = ZERO
    converted_amount: Decimal = ZERO
    percentage_markup: Decimal = Field(
        default=ZERO,
        description="Markup percentage as entered, e.g. 2 for 2%"
    )
    percentage_markup_amount: Decimal = ZERO
    fixed_markup_fee: Decimal = ZERO
    extra_fee: Decimal = Field(
        default=ZERO,
        description="Extra fee as entered, in extra_fee_currency"
    )
    extra_fee_currency: str = ""
    extra_fee_converted: Decimal = Field(
        default=ZERO,
        description="Extra fee in destination currency"
    )
    buffer_amount: Decimal = ZERO
    total_destination_amount: Decimal = ZERO
    total_fees: Decimal = ZERO
    is_valid: bool
    error_message: Optional[str] = None

    @property
    def extra_fee_in_source_currency(self) -> bool:
        """True when the extra fee was stated in the source currency."""
        return is_source_fee_currency(self.extra_fee_currency, self.source_currency)
