"""
Exchange Rate Sources

A rate source turns one HTTP call into an ExchangeRateTable. It knows
nothing about caching or persistence; that is RateProvider's job.

DESIGN DECISION: Sources raise RateSourceError for every failure
(network, HTTP status, malformed body). RateProvider catches it and
degrades to cached data, so callers of get_rates never see it.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.models.rates import ExchangeRateTable, utc_now


logger = structlog.get_logger(__name__)


class RateSource(ABC):
    """Anything that can produce a live rate table for a base currency."""

    @abstractmethod
    async def fetch_rates(self, base_currency: str) -> ExchangeRateTable:
        """
        Fetch the latest rates against base_currency.

        Raises:
            RateSourceError: If no table could be obtained
        """
        pass


class FrankfurterRateSource(RateSource):
    """
    Rate source for Frankfurter-style endpoints.

    GET {endpoint}?from={BASE} -> {"base": "EUR", "rates": {"USD": 1.18, ...}}

    Transport errors are retried with exponential backoff; HTTP error
    statuses and malformed bodies fail immediately.
    """

    def __init__(
        self,
        endpoint: str = "https://api.frankfurter.app/latest",
        max_attempts: int = 3,
        timeout: float = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_wait=None,
    ):
        self._endpoint = endpoint
        self._max_attempts = max_attempts
        self._timeout = timeout
        self._clock = clock or utc_now
        self._transport = transport
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    async def fetch_rates(self, base_currency: str) -> ExchangeRateTable:
        base = base_currency.upper()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._retry_wait,
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    body = await self._get(base)
        except httpx.HTTPStatusError as e:
            logger.error(
                "rate_source_http_error",
                status_code=e.response.status_code,
                base_currency=base,
            )
            raise RateSourceError(f"Rate source returned HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("rate_source_request_failed", error=str(e), base_currency=base)
            raise RateSourceError(f"Rate source request failed: {e}")

        return self._parse(body, base)

    async def _get(self, base: str) -> str:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._endpoint, params={"from": base})
            response.raise_for_status()
            return response.text

    def _parse(self, body: str, base: str) -> ExchangeRateTable:
        try:
            data = json.loads(body, parse_float=Decimal)
            rates = data["rates"]
            if not isinstance(rates, dict):
                raise TypeError(f"rates is {type(rates).__name__}, expected object")
            # The base's own rate is synthesized by ExchangeRateTable
            return ExchangeRateTable(
                base_currency=base,
                rates=rates,
                fetched_at=self._clock(),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error("rate_source_invalid_response", error=str(e), base_currency=base)
            raise RateSourceError(f"Invalid response from rate source: {e}")


class RateSourceError(Exception):
    """The external rate source could not produce a rate table."""
    pass
