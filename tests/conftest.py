"""
Shared fixtures.

No test touches the network: rates come from FakeRateSource and the
record store is the in-memory implementation.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest

from fintrack.conversion import CurrencyConverter
from fintrack.models.rates import ExchangeRateTable
from fintrack.models.records import AccountType, BankAccount, Collection
from fintrack.reconciliation import BalanceReconciliationService
from fintrack.services.rates import RateProvider, RateSource, RateSourceError
from fintrack.services.storage import InMemoryRecordStore, StorageError, collection_name


USER_ID = "user-1"

DEFAULT_RATES = {
    "USD": "1.18",
    "INR": "90",
    "GBP": "0.85",
    "JPY": "160",
}


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeRateSource(RateSource):
    """In-memory rate source that counts calls and can be told to fail."""

    def __init__(self, clock: FakeClock, rates: Optional[dict[str, Any]] = None):
        self.clock = clock
        self.rates = dict(rates or DEFAULT_RATES)
        self.calls = 0
        self.fail = False

    async def fetch_rates(self, base_currency: str) -> ExchangeRateTable:
        self.calls += 1
        if self.fail:
            raise RateSourceError("source down")
        return ExchangeRateTable(
            base_currency=base_currency,
            rates=self.rates,
            fetched_at=self.clock(),
        )


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store whose writes can be made to fail per collection."""

    def __init__(self, clock=None):
        super().__init__(clock)
        self.fail_inserts: set[str] = set()
        self.fail_updates: set[str] = set()
        self.fail_deletes: set[str] = set()

    async def insert(self, collection, record):
        if collection_name(collection) in self.fail_inserts:
            raise StorageError(f"insert into {collection_name(collection)} failed")
        return await super().insert(collection, record)

    async def update(self, collection, record_id, changes):
        if collection_name(collection) in self.fail_updates:
            raise StorageError(f"update of {collection_name(collection)} failed")
        return await super().update(collection, record_id, changes)

    async def delete(self, collection, record_id):
        if collection_name(collection) in self.fail_deletes:
            raise StorageError(f"delete from {collection_name(collection)} failed")
        return await super().delete(collection, record_id)

    def count(self, collection) -> int:
        return len(self._table(collection))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> FlakyRecordStore:
    return FlakyRecordStore(clock)


@pytest.fixture
def rate_source(clock) -> FakeRateSource:
    return FakeRateSource(clock)


@pytest.fixture
def provider(rate_source, store, clock) -> RateProvider:
    return RateProvider(
        source=rate_source,
        repository=store,
        base_currency="EUR",
        cache_ttl_seconds=3600,
        clock=clock,
    )


@pytest.fixture
def converter(provider, clock) -> CurrencyConverter:
    return CurrencyConverter(provider, clock=clock)


@pytest.fixture
def service(store, converter, clock) -> BalanceReconciliationService:
    return BalanceReconciliationService(
        repository=store,
        converter=converter,
        default_currency="INR",
        clock=clock,
    )


@pytest.fixture
def make_account(store):
    """Factory: await make_account("USD", "500") -> stored BankAccount."""

    async def _make(
        currency: str,
        balance: str = "0",
        account_type: AccountType = AccountType.SAVINGS,
        user_id: str = USER_ID,
        bank_name: str = "Test Bank",
    ) -> BankAccount:
        account = BankAccount(
            user_id=user_id,
            bank_name=bank_name,
            account_type=account_type,
            balance=Decimal(balance),
            currency=currency,
        )
        stored = await store.insert(Collection.BANK_ACCOUNTS, account.to_record())
        return BankAccount.from_record(stored)

    return _make


@pytest.fixture
def balance_of(store):
    """Await balance_of(account_id) -> current Decimal balance."""

    async def _balance(account_id: str) -> Decimal:
        record = await store.get(Collection.BANK_ACCOUNTS, account_id)
        return BankAccount.from_record(record).balance

    return _balance
