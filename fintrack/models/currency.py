"""
Currency Catalog

Static list of currencies the application knows how to display.

DESIGN DECISION: The catalog is NOT authoritative for conversion.
A conversion only succeeds for codes present in the live rate table;
the catalog exists to validate input and format amounts.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from fintrack.models.money import Numeric, round_money


class CurrencyInfo(BaseModel):
    """Display metadata for a currency."""
    model_config = ConfigDict(frozen=True)

    code: str
    symbol: str
    name: str


CURRENCIES: tuple[CurrencyInfo, ...] = (
    CurrencyInfo(code="INR", symbol="₹", name="Indian Rupee"),
    CurrencyInfo(code="USD", symbol="$", name="US Dollar"),
    CurrencyInfo(code="EUR", symbol="€", name="Euro"),
    CurrencyInfo(code="GBP", symbol="£", name="British Pound"),
    CurrencyInfo(code="JPY", symbol="¥", name="Japanese Yen"),
    CurrencyInfo(code="CAD", symbol="C$", name="Canadian Dollar"),
    CurrencyInfo(code="AUD", symbol="A$", name="Australian Dollar"),
    CurrencyInfo(code="CHF", symbol="Fr", name="Swiss Franc"),
    CurrencyInfo(code="CNY", symbol="¥", name="Chinese Yuan"),
    CurrencyInfo(code="ILS", symbol="₪", name="Israeli New Shekel"),
)

_BY_CODE = {currency.code: currency for currency in CURRENCIES}


def is_supported_currency(code: str) -> bool:
    """Check whether a code is in the display catalog."""
    return (code or "").upper() in _BY_CODE


def get_currency_info(code: str) -> CurrencyInfo:
    """
    Look up display metadata for a currency.

    Unknown codes fall back to the first catalog entry (INR).
    """
    return _BY_CODE.get((code or "").upper(), CURRENCIES[0])


def format_currency(amount: Numeric, currency_code: str) -> str:
    """
    Format an amount for display, e.g. format_currency(1234.5, "USD") -> "$1,234.50".
    """
    currency = get_currency_info(currency_code)
    value: Decimal = round_money(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{currency.symbol}{abs(value):,.2f}"
