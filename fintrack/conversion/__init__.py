"""Currency conversion package."""

from fintrack.conversion.converter import CurrencyConverter, convert_with_rates

__all__ = ["CurrencyConverter", "convert_with_rates"]
