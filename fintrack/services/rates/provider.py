"""
Rate Provider

Owns the single cached exchange rate table of the application.

Lookup order for get_rates():
1. Fresh in-memory table (no I/O at all)
2. Fresh snapshot persisted in the exchange_rates collection
3. Live fetch from the rate source (then cached, and upserted per base)
4. Stale in-memory table, if one exists
5. Fresh persisted snapshot, when step 2 was skipped by force=True
6. None

DESIGN DECISION: The provider is an explicit instance, constructed once
by the composition root and shared by reference. The clock, source and
repository are injected so cache behaviour is testable without sleeping
or touching the network.

Concurrent get_rates() calls may both miss the cache and both fetch.
That race is accepted: both fetches yield equivalent tables and the
later write simply wins.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

import structlog

from fintrack.models.rates import ExchangeRateTable, utc_now
from fintrack.models.records import Collection, ExchangeRateSnapshot
from fintrack.services.rates.source import RateSource
from fintrack.services.storage.interface import RecordRepository

if TYPE_CHECKING:
    from fintrack.audit.logger import AuditLogger


logger = structlog.get_logger(__name__)


class RateProvider:
    """
    Cached access to the exchange rate table.

    get_rates() never raises for fetch or storage failures; it degrades
    to stale data or None and logs why.
    """

    def __init__(
        self,
        source: RateSource,
        repository: Optional[RecordRepository] = None,
        base_currency: str = "EUR",
        cache_ttl_seconds: float = 3600,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._source = source
        self._repository = repository
        self._base_currency = base_currency.upper()
        self._ttl = cache_ttl_seconds
        self._clock = clock or utc_now
        self._audit = audit_logger
        self._cache: Optional[ExchangeRateTable] = None

    @property
    def base_currency(self) -> str:
        return self._base_currency

    async def get_rates(self, force: bool = False) -> Optional[ExchangeRateTable]:
        """
        Get the current rate table.

        Args:
            force: Skip the in-memory cache and the persisted snapshot
                   and go straight to the live source. A fresh snapshot is
                   still served if the fetch fails and nothing is cached.

        Returns:
            A rate table, possibly stale, or None if none was ever obtained
        """
        now = self._clock()

        if not force and self._cache is not None and self._cache.is_fresh(now, self._ttl):
            return self._cache

        if not force:
            stored = await self._load_persisted(now)
            if stored is not None:
                self._cache = stored
                logger.debug(
                    "rates_loaded_from_store",
                    base_currency=self._base_currency,
                    age_seconds=stored.age_seconds(now),
                )
                return stored

        try:
            table = await self._source.fetch_rates(self._base_currency)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            logger.warning("rates_fetch_failed", base_currency=self._base_currency, reason=reason)
            if self._audit:
                await self._audit.log_external_service_error("exchange_rates", reason)
            return await self._fall_back(now, reason, check_store=force)

        self._cache = table
        logger.info(
            "rates_fetched",
            base_currency=self._base_currency,
            currency_count=len(table.rates),
        )
        if self._audit:
            await self._audit.log_rates_fetched(self._base_currency, len(table.rates))
        await self._persist(table)
        return table

    async def _fall_back(
        self,
        now: datetime,
        reason: str,
        check_store: bool = False,
    ) -> Optional[ExchangeRateTable]:
        if self._cache is not None:
            age = self._cache.age_seconds(now)
            logger.warning(
                "rates_served_stale",
                base_currency=self._base_currency,
                age_seconds=age,
                reason=reason,
            )
            if self._audit:
                await self._audit.log_rates_served_stale(self._base_currency, age, reason)
            return self._cache

        if check_store:
            stored = await self._load_persisted(now)
            if stored is not None:
                self._cache = stored
                logger.warning(
                    "rates_loaded_from_store_after_failure",
                    base_currency=self._base_currency,
                    reason=reason,
                )
                return stored

        logger.error("rates_unavailable", base_currency=self._base_currency, reason=reason)
        if self._audit:
            await self._audit.log_rates_unavailable(self._base_currency, reason)
        return None

    async def _load_persisted(self, now: datetime) -> Optional[ExchangeRateTable]:
        """Most recent persisted snapshot for the base currency, if still fresh."""
        if self._repository is None:
            return None
        try:
            records = await self._repository.select(
                Collection.EXCHANGE_RATES,
                filters={"base_currency": self._base_currency},
                order_by="fetch_date",
                descending=True,
                limit=1,
            )
            if not records:
                return None
            snapshot = ExchangeRateSnapshot.from_record(records[0])
            table = ExchangeRateTable(
                base_currency=snapshot.base_currency,
                rates=snapshot.rates,
                fetched_at=snapshot.fetch_date,
            )
        except Exception as e:
            logger.warning("rates_store_read_failed", error=str(e))
            return None

        return table if table.is_fresh(now, self._ttl) else None

    async def _persist(self, table: ExchangeRateTable) -> None:
        """Keep one snapshot row per base currency, replacing its rates in place."""
        if self._repository is None:
            return
        snapshot = ExchangeRateSnapshot(
            base_currency=table.base_currency,
            rates=table.rates,
            fetch_date=table.fetched_at,
        )
        try:
            existing = await self._repository.select(
                Collection.EXCHANGE_RATES,
                filters={"base_currency": table.base_currency},
                limit=1,
            )
            if existing:
                await self._repository.update(
                    Collection.EXCHANGE_RATES,
                    existing[0]["id"],
                    {"rates": snapshot.rates, "fetch_date": snapshot.fetch_date},
                )
            else:
                await self._repository.insert(Collection.EXCHANGE_RATES, snapshot.to_record())
        except Exception as e:
            # The table is already cached in memory
            logger.warning("rates_store_write_failed", error=str(e))
