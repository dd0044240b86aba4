"""
Tests for domestic and international transfers.
"""

from datetime import date
from decimal import Decimal

import pytest

from fintrack.models.records import (
    AccountType,
    Collection,
    Expense,
    Loan,
    LoanRepayment,
    LoanStatus,
    PaymentStatus,
    TransactionConversion,
    TransferType,
)
from fintrack.reconciliation import (
    AccountNotFoundError,
    InvalidAmountError,
    ReconciliationError,
)
from fintrack.transfers import calculate_complete_transfer_breakdown

from conftest import USER_ID


def transfer_data(from_id, to_id=None, amount="100", currency="EUR", kind=TransferType.SELF, **extra):
    return {
        "from_account_id": from_id,
        "to_account_id": to_id,
        "amount": amount,
        "currency": currency,
        "type": kind,
        "date": date(2024, 6, 1),
        **extra,
    }


class TestDomesticTransfers:
    """Tests for Self, External and Debt Repayment transfers."""

    @pytest.mark.asyncio
    async def test_self_transfer_converts_each_side(self, service, make_account, balance_of):
        """Test that debit and credit are converted independently."""
        eur = await make_account("EUR", "500")
        usd = await make_account("USD", "0")

        transfer = await service.create_transfer(USER_ID, transfer_data(eur.id, usd.id))

        assert transfer.id is not None
        assert await balance_of(eur.id) == Decimal("400.00")
        assert await balance_of(usd.id) == Decimal("118.00")

    @pytest.mark.asyncio
    async def test_amount_in_third_currency(self, service, make_account, balance_of):
        eur = await make_account("EUR", "500")
        inr = await make_account("INR", "0")

        await service.create_transfer(USER_ID, transfer_data(eur.id, inr.id, amount="59", currency="USD"))

        assert await balance_of(eur.id) == Decimal("450.00")
        assert await balance_of(inr.id) == Decimal("4500.00")

    @pytest.mark.asyncio
    async def test_external_transfer_only_debits(self, service, store, make_account, balance_of):
        eur = await make_account("EUR", "500")

        await service.create_transfer(USER_ID, transfer_data(eur.id, kind=TransferType.EXTERNAL))

        assert await balance_of(eur.id) == Decimal("400.00")
        assert store.count(Collection.TRANSFERS) == 1

    @pytest.mark.asyncio
    async def test_self_transfer_needs_destination(self, service, store, make_account):
        eur = await make_account("EUR", "500")

        with pytest.raises(AccountNotFoundError):
            await service.create_transfer(USER_ID, transfer_data(eur.id))
        assert store.count(Collection.TRANSFERS) == 0

    @pytest.mark.asyncio
    async def test_same_account_rejected(self, service, make_account):
        eur = await make_account("EUR", "500")

        with pytest.raises(ReconciliationError):
            await service.create_transfer(USER_ID, transfer_data(eur.id, eur.id))

    @pytest.mark.asyncio
    async def test_international_type_needs_breakdown(self, service, make_account):
        eur = await make_account("EUR", "500")
        usd = await make_account("USD", "0")

        with pytest.raises(ReconciliationError):
            await service.create_transfer(
                USER_ID, transfer_data(eur.id, usd.id, kind=TransferType.INTERNATIONAL)
            )

    @pytest.mark.asyncio
    async def test_debt_repayment_settles_card_expenses(self, service, store, make_account, balance_of):
        """Test that paying a card marks its unpaid expenses as paid."""
        savings = await make_account("EUR", "500")
        card = await make_account("EUR", "0", account_type=AccountType.CREDIT_CARD)
        other_card = await make_account("EUR", "0", account_type=AccountType.CREDIT_CARD)
        for account_id in (card.id, card.id, other_card.id):
            await service.create_expense(USER_ID, {
                "date": date(2024, 5, 20),
                "category": "Shopping",
                "amount": "30",
                "currency": "EUR",
                "account_id": account_id,
            })

        transfer = await service.create_transfer(
            USER_ID,
            transfer_data(savings.id, card.id, amount="60", kind=TransferType.DEBT_REPAYMENT),
        )

        assert await balance_of(card.id) == Decimal("0.00")
        assert await balance_of(savings.id) == Decimal("440.00")
        expenses = [Expense.from_record(r) for r in await store.select(Collection.EXPENSES)]
        settled = [e for e in expenses if e.account_id == card.id]
        assert all(e.payment_status == PaymentStatus.PAID for e in settled)
        assert all(e.linked_transfer_id == transfer.id for e in settled)
        assert all(e.payment_date == date(2024, 6, 1) for e in settled)
        untouched = [e for e in expenses if e.account_id == other_card.id]
        assert untouched[0].payment_status == PaymentStatus.UNPAID

    @pytest.mark.asyncio
    async def test_debt_repayment_pays_down_loan(self, service, store, make_account, balance_of):
        """Test that a transfer naming a loan records a linked repayment."""
        savings = await make_account("USD", "2000")
        loan_account = await make_account("USD", "-1000", account_type=AccountType.LOAN)
        loan = await service.create_loan(USER_ID, {
            "lender_name": "City Bank",
            "principal_amount": "1000",
            "currency": "USD",
            "start_date": date(2024, 1, 1),
        })

        transfer = await service.create_transfer(
            USER_ID,
            transfer_data(
                savings.id, loan_account.id, amount="300", currency="USD",
                kind=TransferType.DEBT_REPAYMENT, loan_id=loan.id,
            ),
        )

        assert await balance_of(savings.id) == Decimal("1700.00")
        assert await balance_of(loan_account.id) == Decimal("-700.00")
        stored = Loan.from_record(await store.get(Collection.LOANS, loan.id))
        assert stored.remaining_balance == Decimal("700.00")
        assert stored.status == LoanStatus.ACTIVE
        repayment = LoanRepayment.from_record((await store.select(Collection.LOAN_REPAYMENTS))[0])
        assert repayment.transfer_id == transfer.id
        expense = Expense.from_record((await store.select(Collection.EXPENSES))[0])
        assert expense.is_repayment_transfer
        assert expense.linked_transfer_id == transfer.id


class TestInternationalTransfers:
    """Tests for committing a transfer breakdown."""

    @pytest.mark.asyncio
    async def test_breakdown_is_applied(self, service, store, make_account, balance_of):
        usd = await make_account("USD", "2000")
        inr = await make_account("INR", "0")
        breakdown = calculate_complete_transfer_breakdown(
            1000, "USD", "INR", 83, 2, 50, 10, "source", 20,
        )

        transfer = await service.create_international_transfer(
            USER_ID, usd.id, inr.id, breakdown, transfer_date=date(2024, 6, 1),
        )

        assert transfer.type == TransferType.INTERNATIONAL
        # Source pays the amount plus the source-currency extra fee
        assert await balance_of(usd.id) == Decimal("990.00")
        assert await balance_of(inr.id) == Decimal("85560.00")

        fee = Expense.from_record((await store.select(Collection.EXPENSES))[0])
        assert fee.category == "Bank Fees"
        assert fee.amount == Decimal("2540")
        assert fee.currency == "INR"
        assert fee.account_id == inr.id
        assert fee.payment_status == PaymentStatus.PAID
        assert fee.linked_transfer_id == transfer.id

        conversion = TransactionConversion.from_record(
            (await store.select(Collection.TRANSACTION_CONVERSIONS))[0]
        )
        assert conversion.transaction_id == transfer.id
        assert conversion.converted_amount == Decimal("85560")
        assert conversion.exchange_rate == Decimal("83.05")

    @pytest.mark.asyncio
    async def test_no_fees_no_expense(self, service, store, make_account):
        usd = await make_account("USD", "200")
        inr = await make_account("INR", "0")
        breakdown = calculate_complete_transfer_breakdown(100, "USD", "INR", 83)

        await service.create_international_transfer(USER_ID, usd.id, inr.id, breakdown)

        assert store.count(Collection.EXPENSES) == 0

    @pytest.mark.asyncio
    async def test_invalid_breakdown(self, service, store, make_account):
        usd = await make_account("USD", "200")
        inr = await make_account("INR", "0")
        breakdown = calculate_complete_transfer_breakdown(0, "USD", "INR", 83)

        with pytest.raises(InvalidAmountError):
            await service.create_international_transfer(USER_ID, usd.id, inr.id, breakdown)
        assert store.count(Collection.TRANSFERS) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
