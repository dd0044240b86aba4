"""
Financial Snapshot

Aggregates accounts, incomes, expenses and investments into the totals
shown on the overview dashboard, all expressed in one target currency.

DESIGN DECISION: Aggregation uses the unrounded pivot conversion and
rounds only the final totals. An amount whose currency has no usable
rate is added unconverted rather than dropped, so a missing rate
distorts a total instead of silently hiding money.
"""

import asyncio
from collections.abc import Iterable
from decimal import Decimal
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from fintrack.conversion.converter import RatesLike, convert_with_rates
from fintrack.models.money import ZERO, round_money
from fintrack.models.records import (
    BankAccount,
    Collection,
    Expense,
    Income,
    Investment,
    InvestmentStatus,
)
from fintrack.services.rates.provider import RateProvider
from fintrack.services.storage.interface import RecordRepository


logger = structlog.get_logger(__name__)


class FinancialSnapshot(BaseModel):
    """Dashboard totals in a single currency, rounded to 2 places."""
    model_config = ConfigDict(frozen=True)

    currency: str
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_savings: Decimal = ZERO
    bank_balance: Decimal = Field(
        default=ZERO,
        description="Sum of asset account balances"
    )
    total_liabilities: Decimal = Field(
        default=ZERO,
        description="Outstanding debt on credit card and loan accounts"
    )
    total_investments: Decimal = Field(
        default=ZERO,
        description="Current value of active investments"
    )
    total_assets: Decimal = ZERO
    net_worth: Decimal = ZERO
    expenses_by_category: dict[str, Decimal] = Field(default_factory=dict)
    investments_by_type: dict[str, Decimal] = Field(default_factory=dict)
    unconverted_currencies: list[str] = Field(
        default_factory=list,
        description="Currencies summed without conversion for lack of a rate"
    )


class _Accumulator:
    def __init__(self, target_currency: str, rates: Optional[RatesLike]):
        self.target = target_currency.upper()
        self.rates = rates
        self.unconverted: set[str] = set()

    def convert(self, amount: Decimal, currency: str) -> Decimal:
        if currency.upper() == self.target:
            return amount
        converted = (
            convert_with_rates(amount, currency, self.target, self.rates)
            if self.rates is not None
            else None
        )
        if converted is None:
            self.unconverted.add(currency.upper())
            return amount
        return converted

    def total(self, items: Iterable[tuple[Decimal, str]]) -> Decimal:
        return sum((self.convert(amount, currency) for amount, currency in items), ZERO)


def build_financial_snapshot(
    accounts: list[BankAccount],
    incomes: list[Income],
    expenses: list[Expense],
    investments: list[Investment],
    target_currency: str,
    rates: Optional[RatesLike],
) -> FinancialSnapshot:
    """
    Compute dashboard totals in target_currency.

    Args:
        accounts: All of the user's accounts
        incomes: Incomes in the reporting period
        expenses: Expenses in the reporting period
        investments: All investments; only Active ones count
        target_currency: Currency to express every total in
        rates: Rate table, or None to sum everything unconverted
    """
    acc = _Accumulator(target_currency, rates)

    total_income = acc.total((income.amount, income.currency) for income in incomes)
    total_expenses = acc.total((expense.amount, expense.currency) for expense in expenses)
    bank_balance = acc.total(
        (account.balance, account.currency) for account in accounts if not account.is_liability
    )
    total_liabilities = acc.total(
        (abs(account.balance), account.currency) for account in accounts if account.is_liability
    )

    active = [inv for inv in investments if inv.status == InvestmentStatus.ACTIVE]
    total_investments = acc.total((inv.current_value, inv.currency) for inv in active)

    by_category: dict[str, Decimal] = {}
    for expense in expenses:
        by_category[expense.category] = (
            by_category.get(expense.category, ZERO) + acc.convert(expense.amount, expense.currency)
        )

    by_type: dict[str, Decimal] = {}
    for inv in active:
        by_type[inv.type] = by_type.get(inv.type, ZERO) + acc.convert(inv.current_value, inv.currency)

    total_assets = bank_balance + total_investments

    if acc.unconverted:
        logger.warning(
            "snapshot_missing_rates",
            target_currency=acc.target,
            currencies=sorted(acc.unconverted),
        )

    return FinancialSnapshot(
        currency=acc.target,
        total_income=round_money(total_income),
        total_expenses=round_money(total_expenses),
        net_savings=round_money(total_income - total_expenses),
        bank_balance=round_money(bank_balance),
        total_liabilities=round_money(total_liabilities),
        total_investments=round_money(total_investments),
        total_assets=round_money(total_assets),
        net_worth=round_money(total_assets - total_liabilities),
        expenses_by_category={k: round_money(v) for k, v in by_category.items()},
        investments_by_type={k: round_money(v) for k, v in by_type.items()},
        unconverted_currencies=sorted(acc.unconverted),
    )


class DashboardService:
    """Loads a user's records and builds their snapshot."""

    def __init__(self, repository: RecordRepository, rate_provider: RateProvider):
        self._repository = repository
        self._rates = rate_provider

    async def load_snapshot(self, user_id: str, currency: str) -> FinancialSnapshot:
        """
        Build the snapshot for one user.

        The four collections and the rate table are independent reads,
        so they are awaited together.
        """
        accounts, incomes, expenses, investments, rates = await asyncio.gather(
            self._repository.select(Collection.BANK_ACCOUNTS, user_id=user_id),
            self._repository.select(Collection.INCOMES, user_id=user_id),
            self._repository.select(Collection.EXPENSES, user_id=user_id),
            self._repository.select(Collection.INVESTMENTS, user_id=user_id),
            self._rates.get_rates(),
        )
        return build_financial_snapshot(
            accounts=[BankAccount.from_record(r) for r in accounts],
            incomes=[Income.from_record(r) for r in incomes],
            expenses=[Expense.from_record(r) for r in expenses],
            investments=[Investment.from_record(r) for r in investments],
            target_currency=currency,
            rates=rates,
        )
