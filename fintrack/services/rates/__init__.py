"""Exchange rate services."""

from fintrack.services.rates.provider import RateProvider
from fintrack.services.rates.source import (
    FrankfurterRateSource,
    RateSource,
    RateSourceError,
)

__all__ = [
    "FrankfurterRateSource",
    "RateProvider",
    "RateSource",
    "RateSourceError",
]
