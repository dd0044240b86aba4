"""
Tests for balance reconciliation of incomes, expenses and investments.

Rates (EUR base): USD 1.18, INR 90, GBP 0.85, JPY 160.
"""

from datetime import date
from decimal import Decimal

import pytest

from fintrack.audit import AuditLogger
from fintrack.models.records import (
    AccountType,
    Collection,
    Expense,
    PaymentStatus,
    TransactionConversion,
    UserSettings,
)
from fintrack.reconciliation import (
    AccountNotFoundError,
    BalanceReconciliationService,
    CurrencyConversionError,
    SagaFailedError,
    TransactionNotFoundError,
)

from conftest import USER_ID


def expense_data(account_id=None, amount="100", currency="EUR", **extra):
    return {
        "date": date(2024, 6, 1),
        "category": "Food",
        "amount": amount,
        "currency": currency,
        "account_id": account_id,
        **extra,
    }


class TestExpenses:
    """Tests for expense creation and deletion."""

    @pytest.mark.asyncio
    async def test_expense_debits_converted_amount(self, service, make_account, balance_of):
        """Test that a 100 EUR expense takes 118.00 from a USD account."""
        account = await make_account("USD", "500")

        expense = await service.create_expense(USER_ID, expense_data(account.id))

        assert await balance_of(account.id) == Decimal("382.00")
        assert expense.id is not None
        assert expense.user_id == USER_ID
        assert expense.payment_status == PaymentStatus.UNPAID

    @pytest.mark.asyncio
    async def test_conversion_record_in_default_currency(self, service, store, make_account):
        account = await make_account("USD", "500")

        expense = await service.create_expense(USER_ID, expense_data(account.id))

        records = await store.select(Collection.TRANSACTION_CONVERSIONS)
        assert len(records) == 1
        conversion = TransactionConversion.from_record(records[0])
        assert conversion.transaction_id == expense.id
        assert conversion.converted_currency == "INR"
        assert conversion.converted_amount == Decimal("9000.00")
        assert conversion.exchange_rate == Decimal("90.0000")

    @pytest.mark.asyncio
    async def test_delete_uses_fresh_rate(self, service, store, rate_source, clock, make_account, balance_of):
        """Test that deletion reverses at today's rate, not the stored one."""
        account = await make_account("USD", "500")
        expense = await service.create_expense(USER_ID, expense_data(account.id))

        rate_source.rates["USD"] = "1.20"
        clock.advance(7200)
        await service.delete_expense(USER_ID, expense.id)

        assert await balance_of(account.id) == Decimal("502.00")
        assert await store.get(Collection.EXPENSES, expense.id) is None
        assert await store.select(Collection.TRANSACTION_CONVERSIONS) == []

    @pytest.mark.asyncio
    async def test_delete_at_same_rate_restores_balance(self, service, make_account, balance_of):
        account = await make_account("USD", "500")
        expense = await service.create_expense(USER_ID, expense_data(account.id))

        await service.delete_expense(USER_ID, expense.id)

        assert await balance_of(account.id) == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_expense_without_account(self, service, store):
        expense = await service.create_expense(USER_ID, expense_data(None))

        assert expense.payment_status is None
        assert store.count(Collection.TRANSACTION_CONVERSIONS) == 1

    @pytest.mark.asyncio
    async def test_accepts_model_and_camel_case(self, service, make_account, balance_of):
        account = await make_account("EUR", "50")

        await service.create_expense(
            USER_ID,
            Expense(date=date(2024, 6, 1), amount="10", currency="EUR", account_id=account.id),
        )
        await service.create_expense(
            USER_ID,
            {"date": "2024-06-02", "amount": "5", "currency": "EUR", "accountId": account.id},
        )

        assert await balance_of(account.id) == Decimal("35.00")

    @pytest.mark.asyncio
    async def test_delete_with_missing_account_still_deletes(self, service, store, make_account):
        """Test that a dangling account link does not block deletion."""
        account = await make_account("USD", "500")
        expense = await service.create_expense(USER_ID, expense_data(account.id))
        await store.delete(Collection.BANK_ACCOUNTS, account.id)

        await service.delete_expense(USER_ID, expense.id)

        assert await store.get(Collection.EXPENSES, expense.id) is None

    @pytest.mark.asyncio
    async def test_delete_unknown_expense(self, service):
        with pytest.raises(TransactionNotFoundError):
            await service.delete_expense(USER_ID, "missing")

    @pytest.mark.asyncio
    async def test_other_users_expense_is_not_found(self, service, make_account):
        account = await make_account("USD", "500")
        expense = await service.create_expense(USER_ID, expense_data(account.id))

        with pytest.raises(TransactionNotFoundError):
            await service.delete_expense("someone-else", expense.id)

    @pytest.mark.asyncio
    async def test_other_users_account_is_not_found(self, service, make_account):
        account = await make_account("USD", "500", user_id="someone-else")

        with pytest.raises(AccountNotFoundError):
            await service.create_expense(USER_ID, expense_data(account.id))


class TestUserDefaultCurrency:
    """Tests that conversion records follow the owner's settings."""

    @pytest.mark.asyncio
    async def test_conversion_uses_user_default(self, service, store, make_account, balance_of):
        await store.insert(
            Collection.USER_SETTINGS,
            UserSettings(user_id=USER_ID, default_currency="USD").to_record(),
        )
        account = await make_account("USD", "500")

        await service.create_expense(USER_ID, expense_data(account.id))

        conversion = TransactionConversion.from_record(
            (await store.select(Collection.TRANSACTION_CONVERSIONS))[0]
        )
        assert conversion.converted_currency == "USD"
        assert conversion.converted_amount == Decimal("118.00")
        assert await balance_of(account.id) == Decimal("382.00")

    @pytest.mark.asyncio
    async def test_other_users_settings_are_ignored(self, service, store):
        await store.insert(
            Collection.USER_SETTINGS,
            UserSettings(user_id="someone-else", default_currency="USD").to_record(),
        )

        await service.create_expense(USER_ID, expense_data(None))

        records = await store.select(Collection.TRANSACTION_CONVERSIONS)
        assert records[0]["converted_currency"] == "INR"

    @pytest.mark.asyncio
    async def test_configured_default_need_not_be_in_table(self, service, store, rate_source, make_account):
        """Test that a user default in the table avoids the missing configured one."""
        del rate_source.rates["INR"]
        await store.insert(
            Collection.USER_SETTINGS,
            UserSettings(user_id=USER_ID, default_currency="GBP").to_record(),
        )
        account = await make_account("USD", "500")

        expense = await service.create_expense(USER_ID, expense_data(account.id))

        assert expense.id is not None
        assert store.count(Collection.TRANSACTION_CONVERSIONS) == 1


class TestIncomesAndInvestments:
    """Tests for income and investment balance effects."""

    @pytest.mark.asyncio
    async def test_income_credits_account(self, service, make_account, balance_of):
        account = await make_account("INR", "1000")

        income = await service.create_income(USER_ID, {
            "date": date(2024, 6, 1),
            "source": "Freelance",
            "amount": "50",
            "currency": "GBP",
            "account_id": account.id,
        })

        # 50 GBP -> 50 / 0.85 * 90 = 5294.117...
        assert await balance_of(account.id) == Decimal("6294.12")

        await service.delete_income(USER_ID, income.id)
        assert await balance_of(account.id) == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_investment_debits_linked_account(self, service, make_account, balance_of):
        account = await make_account("EUR", "1000")

        investment = await service.create_investment(USER_ID, {
            "date": date(2024, 6, 1),
            "type": "Stocks",
            "name": "Index fund",
            "original_amount": "236",
            "currency": "USD",
            "linked_account_id": account.id,
        })

        assert await balance_of(account.id) == Decimal("800.00")
        assert investment.total_invested == Decimal("236")
        assert investment.current_value == Decimal("236")

        await service.delete_investment(USER_ID, investment.id)
        assert await balance_of(account.id) == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_credit_card_goes_negative(self, service, make_account, balance_of):
        card = await make_account("EUR", "0", account_type=AccountType.CREDIT_CARD)

        await service.create_expense(USER_ID, expense_data(card.id, amount="40"))

        assert await balance_of(card.id) == Decimal("-40.00")


class TestFailureOrdering:
    """Tests that failures leave the store consistent."""

    @pytest.mark.asyncio
    async def test_unsupported_currency_writes_nothing(self, service, store, make_account, balance_of):
        """Test that a missing rate aborts before the first write."""
        account = await make_account("USD", "500")

        with pytest.raises(CurrencyConversionError):
            await service.create_expense(USER_ID, expense_data(account.id, currency="CHF"))

        assert store.count(Collection.EXPENSES) == 0
        assert store.count(Collection.TRANSACTION_CONVERSIONS) == 0
        assert await balance_of(account.id) == Decimal("500")

    @pytest.mark.asyncio
    async def test_no_rates_writes_nothing(self, service, store, rate_source, make_account):
        rate_source.fail = True
        account = await make_account("USD", "500")

        with pytest.raises(CurrencyConversionError):
            await service.create_expense(USER_ID, expense_data(account.id))

        assert store.count(Collection.EXPENSES) == 0

    @pytest.mark.asyncio
    async def test_failed_balance_write_is_compensated(self, service, store, make_account, balance_of):
        """Test that earlier inserts are undone when the debit fails."""
        account = await make_account("USD", "500")
        store.fail_updates.add("bank_accounts")

        with pytest.raises(SagaFailedError) as exc_info:
            await service.create_expense(USER_ID, expense_data(account.id))

        assert exc_info.value.failed_step == "debit_account"
        assert exc_info.value.compensated_steps == ["record_conversion", "insert_expense"]
        assert store.count(Collection.EXPENSES) == 0
        assert store.count(Collection.TRANSACTION_CONVERSIONS) == 0
        assert await balance_of(account.id) == Decimal("500")

    @pytest.mark.asyncio
    async def test_failed_delete_restores_records(self, service, store, make_account, balance_of):
        account = await make_account("USD", "500")
        expense = await service.create_expense(USER_ID, expense_data(account.id))
        store.fail_deletes.add("transaction_conversions")

        with pytest.raises(SagaFailedError):
            await service.delete_expense(USER_ID, expense.id)

        assert await store.get(Collection.EXPENSES, expense.id) is not None
        assert await balance_of(account.id) == Decimal("382.00")
        assert store.count(Collection.TRANSACTION_CONVERSIONS) == 1

    @pytest.mark.asyncio
    async def test_compensation_can_be_disabled(self, store, converter, clock, make_account, balance_of):
        service = BalanceReconciliationService(
            store, converter, default_currency="INR", compensate_on_failure=False, clock=clock,
        )
        account = await make_account("USD", "500")
        store.fail_updates.add("bank_accounts")

        with pytest.raises(SagaFailedError):
            await service.create_expense(USER_ID, expense_data(account.id))

        assert store.count(Collection.EXPENSES) == 1

    @pytest.mark.asyncio
    async def test_audit_trail(self, store, converter, clock, make_account):
        """Test that one correlation id ties the balance change to the creation."""
        service = BalanceReconciliationService(
            store, converter, audit_logger=AuditLogger(store), clock=clock,
        )
        account = await make_account("USD", "500")

        await service.create_expense(USER_ID, expense_data(account.id))

        events = await store.select(Collection.AUDIT_EVENTS)
        by_type = {event["event_type"]: event for event in events}
        assert by_type["balance_adjusted"]["details"]["new_balance"] == "382.00"
        assert by_type["transaction_created"]["entity_type"] == "expense"
        assert (
            by_type["balance_adjusted"]["correlation_id"]
            == by_type["transaction_created"]["correlation_id"]
        )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
