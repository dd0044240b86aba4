"""
Currency Converter

Converts amounts between any two currencies listed in the rate table by
going through the table's pivot currency:

    amount_in_base = amount / from_rate
    converted      = amount_in_base * to_rate
    exchange_rate  = to_rate / from_rate

converted is rounded to 2 places and exchange_rate to 4, both half-up.

DESIGN DECISION: An unavailable rate table, a currency missing from the
table, or a zero rate all yield None instead of an exception. Callers
that must not proceed without a conversion (the reconciliation layer)
turn None into their own error.
"""

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Union

import structlog

from fintrack.models.money import (
    ONE,
    ZERO,
    Numeric,
    Money,
    round_money,
    round_rate,
    to_decimal,
)
from fintrack.models.rates import ConversionResult, ExchangeRateTable, utc_now
from fintrack.services.rates.provider import RateProvider


logger = structlog.get_logger(__name__)

RatesLike = Union[ExchangeRateTable, Mapping[str, Any]]


def _code(currency: str) -> str:
    return (currency or "").strip().upper()


def _lookup(rates: RatesLike, currency: str) -> Optional[Decimal]:
    if isinstance(rates, ExchangeRateTable):
        return rates.rate_for(currency)
    value = rates.get(currency)
    return to_decimal(value) if value is not None else None


def _pivot_rates(rates: RatesLike, from_currency: str, to_currency: str) -> Optional[tuple[Decimal, Decimal]]:
    from_rate = _lookup(rates, from_currency)
    to_rate = _lookup(rates, to_currency)
    if from_rate is None or to_rate is None:
        return None
    if from_rate == ZERO or to_rate == ZERO:
        return None
    return from_rate, to_rate


def convert_with_rates(
    amount: Numeric,
    from_currency: str,
    to_currency: str,
    rates: RatesLike,
) -> Optional[Decimal]:
    """
    Convert with an already-loaded rate table, without rounding.

    Used for aggregation, where rounding every addend would drift the
    totals. Returns None when either currency is missing or has rate 0.
    """
    value = to_decimal(amount)
    source, target = _code(from_currency), _code(to_currency)
    if source == target:
        return value
    pair = _pivot_rates(rates, source, target)
    if pair is None:
        return None
    from_rate, to_rate = pair
    return value / from_rate * to_rate


class CurrencyConverter:
    """
    Converts amounts using the shared RateProvider.

    Holds no rates itself; every call asks the provider, which answers
    from its cache whenever the cache is fresh.
    """

    def __init__(
        self,
        rate_provider: RateProvider,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._rates = rate_provider
        self._clock = clock or utc_now

    async def convert_amount(
        self,
        amount: Numeric,
        from_currency: str,
        to_currency: str,
    ) -> Optional[ConversionResult]:
        """
        Convert an amount between two currencies.

        Returns:
            The conversion, or None if the rate table is unavailable or
            does not support one of the currencies
        """
        value = to_decimal(amount)
        source, target = _code(from_currency), _code(to_currency)

        if source == target:
            return ConversionResult.identity(value, source, self._clock())

        table = await self._rates.get_rates()
        if table is None:
            logger.error("conversion_failed", reason="no_rates", from_currency=source, to_currency=target)
            return None

        return self._convert_with_table(value, source, target, table)

    def _convert_with_table(
        self,
        amount: Decimal,
        source: str,
        target: str,
        table: ExchangeRateTable,
    ) -> Optional[ConversionResult]:
        if source == target:
            return ConversionResult.identity(amount, source, self._clock())

        pair = _pivot_rates(table, source, target)
        if pair is None:
            logger.warning(
                "conversion_failed",
                reason="unsupported_currency",
                from_currency=source,
                to_currency=target,
            )
            return None

        from_rate, to_rate = pair
        amount_in_base = amount / from_rate
        return ConversionResult(
            original_amount=amount,
            original_currency=source,
            converted_amount=round_money(amount_in_base * to_rate),
            converted_currency=target,
            exchange_rate=round_rate(to_rate / from_rate),
            conversion_date=self._clock(),
        )

    async def get_exchange_rate(
        self,
        from_currency: str,
        to_currency: str,
    ) -> Optional[Decimal]:
        """Current rate between two currencies, 4 decimal places."""
        source, target = _code(from_currency), _code(to_currency)
        if source == target:
            return ONE

        table = await self._rates.get_rates()
        if table is None:
            return None

        pair = _pivot_rates(table, source, target)
        if pair is None:
            return None
        from_rate, to_rate = pair
        return round_rate(to_rate / from_rate)

    async def convert_multiple_amounts(
        self,
        amounts: Iterable[Union[Money, tuple[Numeric, str]]],
        target_currency: str,
    ) -> list[Optional[ConversionResult]]:
        """
        Convert several amounts with a single rate table lookup.

        Each item is independent: an unsupported currency yields None in
        its own slot and does not affect the others.
        """
        items = [
            (item.amount, item.currency) if isinstance(item, Money) else item
            for item in amounts
        ]
        target = _code(target_currency)

        needs_rates = any(_code(currency) != target for _, currency in items)
        table = await self._rates.get_rates() if needs_rates else None

        results: list[Optional[ConversionResult]] = []
        for amount, currency in items:
            source = _code(currency)
            if source == target:
                results.append(ConversionResult.identity(to_decimal(amount), source, self._clock()))
            elif table is None:
                results.append(None)
            else:
                results.append(self._convert_with_table(to_decimal(amount), source, target, table))
        return results

    async def convert_transaction(
        self,
        transaction: Any,
        target_currency: str,
    ) -> Optional[ConversionResult]:
        """
        Convert anything carrying an amount and a currency.

        Accepts ledger records (Income, Expense, Money, ...) as well as
        plain mappings with "amount" and "currency" keys.
        """
        if isinstance(transaction, Mapping):
            amount, currency = transaction["amount"], transaction["currency"]
        else:
            amount, currency = transaction.amount, transaction.currency
        return await self.convert_amount(amount, currency, target_currency)
