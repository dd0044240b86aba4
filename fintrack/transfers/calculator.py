"""
International Transfer Calculators

Two models of what a bank charges on a cross-currency transfer:

1. Complete breakdown: percentage markup on the converted amount, a fixed
   fee, an extra fee in either currency and a buffer top-up, all itemized.
2. Fixed markup: a per-unit fee added straight onto the exchange rate.

DESIGN DECISION: The structured calculators never raise. Invalid input
gives is_valid=False, zeroed numbers and a readable error_message, which
suits preview forms that re-run on every keystroke. The fail-fast
variants raise TransferValidationError for call sites that want an
exception instead.

Money outputs are rounded to 2 places, rates to 4, half-up.
"""

from decimal import Decimal

from fintrack.models.money import ZERO, Numeric, round_money, round_rate, to_decimal
from fintrack.models.transfer import (
    TransferBreakdown,
    TransferCalculationResult,
    is_source_fee_currency,
)


HUNDRED = Decimal("100")


def calculate_complete_transfer_breakdown(
    source_amount: Numeric,
    source_currency: str,
    destination_currency: str,
    base_exchange_rate: Numeric,
    percentage_markup: Numeric = 0,
    fixed_markup_fee: Numeric = 0,
    extra_fee: Numeric = 0,
    extra_fee_currency: str = "",
    buffer_amount: Numeric = 0,
) -> TransferBreakdown:
    """
    Itemize the economics of one international transfer.

    Args:
        source_amount: Amount sent, in source currency
        source_currency: Currency the money leaves in
        destination_currency: Currency the money arrives in
        base_exchange_rate: Destination units per source unit
        percentage_markup: Markup in percent of the converted amount
        fixed_markup_fee: Flat fee in destination currency
        extra_fee: Additional fee, in extra_fee_currency
        extra_fee_currency: A currency code, or "source" / "destination"
        buffer_amount: Top-up in destination currency, not a fee

    Returns:
        The breakdown. An extra fee stated in the source currency is
        converted with the transfer's own base rate; any other fee
        currency is taken as destination currency unchanged.
    """
    try:
        amount = to_decimal(source_amount)
        base_rate = to_decimal(base_exchange_rate)
        markup_pct = to_decimal(percentage_markup)
        fixed_fee = to_decimal(fixed_markup_fee)
        fee = to_decimal(extra_fee)
        buffer = to_decimal(buffer_amount)
    except ValueError:
        return _invalid_breakdown(
            source_currency, destination_currency, extra_fee_currency,
            "All inputs must be numeric values",
        )

    if amount <= ZERO or base_rate <= ZERO:
        return _invalid_breakdown(
            source_currency, destination_currency, extra_fee_currency,
            "Source amount and base exchange rate must be greater than zero",
        )

    converted_amount = amount * base_rate
    percentage_markup_amount = converted_amount * (markup_pct / HUNDRED)
    # Display only: the fixed fee spread over each source unit
    effective_rate = base_rate + (fixed_fee / amount)

    extra_fee_converted = fee
    if fee > ZERO and is_source_fee_currency(extra_fee_currency, source_currency):
        extra_fee_converted = fee * base_rate

    total_fees = percentage_markup_amount + fixed_fee + extra_fee_converted
    total_destination_amount = converted_amount + total_fees + buffer

    return TransferBreakdown(
        source_amount=round_money(amount),
        source_currency=source_currency,
        destination_currency=destination_currency,
        base_exchange_rate=round_rate(base_rate),
        effective_exchange_rate=round_rate(effective_rate),
        converted_amount=round_money(converted_amount),
        percentage_markup=markup_pct,
        percentage_markup_amount=round_money(percentage_markup_amount),
        fixed_markup_fee=round_money(fixed_fee),
        extra_fee=round_money(fee),
        extra_fee_currency=extra_fee_currency,
        extra_fee_converted=round_money(extra_fee_converted),
        buffer_amount=round_money(buffer),
        total_destination_amount=round_money(total_destination_amount),
        total_fees=round_money(total_fees),
        is_valid=True,
    )


def _invalid_breakdown(
    source_currency: str,
    destination_currency: str,
    extra_fee_currency: str,
    message: str,
) -> TransferBreakdown:
    return TransferBreakdown(
        source_currency=source_currency,
        destination_currency=destination_currency,
        extra_fee_currency=extra_fee_currency,
        is_valid=False,
        error_message=message,
    )


def calculate_international_transfer_amount(
    source_amount: Numeric,
    base_exchange_rate: Numeric,
    fixed_markup_fee: Numeric,
) -> TransferCalculationResult:
    """
    Destination amount when a fixed per-unit fee is added onto the rate.

    effective_rate = base_exchange_rate + fixed_markup_fee
    destination_amount = source_amount * effective_rate

    The fee may not exceed the base rate itself.
    """
    try:
        amount = to_decimal(source_amount)
        base_rate = to_decimal(base_exchange_rate)
        fee = to_decimal(fixed_markup_fee)
    except ValueError:
        return _invalid_result("All inputs must be numeric values")

    if amount <= ZERO:
        return _invalid_result("Source amount must be greater than zero")
    if base_rate <= ZERO:
        return _invalid_result("Base exchange rate must be greater than zero")
    if fee < ZERO:
        return _invalid_result("Fixed markup fee cannot be negative")
    if fee > base_rate:
        return _invalid_result("Fixed markup fee cannot be greater than the base exchange rate")

    effective_rate = base_rate + fee
    return TransferCalculationResult(
        destination_amount=round_money(amount * effective_rate),
        effective_rate=round_rate(effective_rate),
        is_valid=True,
    )


def _invalid_result(message: str) -> TransferCalculationResult:
    return TransferCalculationResult(is_valid=False, error_message=message)


# =============================================================================
# FAIL-FAST VARIANTS
# =============================================================================

def calculate_destination_amount(
    source_amount: Numeric,
    base_exchange_rate: Numeric,
    fixed_markup_fee: Numeric,
) -> Decimal:
    """
    Fixed-markup destination amount, raising on invalid input.

    Raises:
        TransferValidationError: If any input is out of range
    """
    amount = _require_decimal(source_amount)
    base_rate = _require_decimal(base_exchange_rate)
    fee = _require_decimal(fixed_markup_fee)

    if amount <= ZERO or base_rate <= ZERO or fee < ZERO:
        raise TransferValidationError(
            "Invalid input: All amounts must be positive, source amount must be > 0"
        )
    if fee > base_rate:
        raise TransferValidationError("Fixed markup fee cannot exceed base exchange rate")

    return round_money(amount * (base_rate + fee))


def calculate_international_transfer_amount_with_markup(
    source_amount: Numeric,
    base_exchange_rate: Numeric,
    fixed_markup_fee: Numeric,
) -> Decimal:
    """
    Fixed-markup destination amount with per-argument error messages.

    Raises:
        TransferValidationError: If any input is out of range
    """
    amount = _require_decimal(source_amount)
    base_rate = _require_decimal(base_exchange_rate)
    fee = _require_decimal(fixed_markup_fee)

    if amount <= ZERO:
        raise TransferValidationError("Source amount must be a positive number.")
    if base_rate <= ZERO:
        raise TransferValidationError("Base exchange rate must be a positive number.")
    if fee < ZERO:
        raise TransferValidationError("Fixed markup fee must be a non-negative number.")
    if fee > base_rate:
        raise TransferValidationError(
            "Fixed markup fee cannot be greater than the base exchange rate."
        )

    return round_money(amount * (base_rate + fee))


def get_effective_exchange_rate(
    base_exchange_rate: Numeric,
    fixed_markup_fee: Numeric,
) -> Decimal:
    """Base rate plus a fixed per-unit markup, unrounded."""
    base_rate = _require_decimal(base_exchange_rate)
    fee = _require_decimal(fixed_markup_fee)

    if base_rate <= ZERO:
        raise TransferValidationError("Base exchange rate must be a positive number.")
    if fee < ZERO:
        raise TransferValidationError("Fixed markup fee must be a non-negative number.")

    return base_rate + fee


def _require_decimal(value: Numeric) -> Decimal:
    try:
        return to_decimal(value)
    except ValueError as e:
        raise TransferValidationError(str(e)) from e


class TransferValidationError(ValueError):
    """Invalid input to a fail-fast transfer calculator."""
    pass
