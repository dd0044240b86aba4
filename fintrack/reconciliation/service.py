"""
Balance Reconciliation Service

The policy layer invoked for every financial event. It keeps account
balances, loan balances and linked records consistent across currencies:

- Income / expense / investment with an account: the amount is converted
  into the account's currency and applied to its balance; a conversion
  audit record in the default currency is written next to it.
- Deletion reverses the balance with a FRESH conversion (not the rate
  stored at creation), then removes the conversion audit records.
- Loans credit their account on creation and are paid down by
  repayments, closing at exactly zero and settling their loan income.
- Transfers convert each side independently; international transfers
  apply a TransferBreakdown and book its fees as a "Bank Fees" expense.

DESIGN DECISION: Every conversion a mutation needs is computed before
its first write. Conversion problems therefore raise before anything is
stored. Writes run as a MutationSaga, so a failing write undoes the
earlier ones (unless compensation is switched off) and surfaces as
SagaFailedError.

No optimistic locking: balances are read-modify-write, and a concurrent
writer to the same account can lose an update.
"""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog

from fintrack.audit.logger import AuditLogger, create_correlation_id
from fintrack.conversion.converter import CurrencyConverter
from fintrack.models.money import ONE, ZERO, Numeric, round_money, to_decimal
from fintrack.models.rates import ConversionResult, utc_now
from fintrack.models.records import (
    BANK_FEES_CATEGORY,
    LOAN_REPAYMENT_CATEGORY,
    AccountType,
    BankAccount,
    Collection,
    Expense,
    ExpenseType,
    Goal,
    GoalStatus,
    Income,
    IncomeFrequency,
    Investment,
    LedgerRecord,
    Loan,
    LoanRepayment,
    LoanStatus,
    PaymentStatus,
    SettlementStatus,
    TransactionConversion,
    TransactionType,
    Transfer,
    TransferType,
    UserSettings,
)
from fintrack.models.transfer import TransferBreakdown
from fintrack.reconciliation.errors import (
    AccountNotFoundError,
    CurrencyConversionError,
    GoalAllocationError,
    InvalidAmountError,
    LoanClosedError,
    LoanNotFoundError,
    ReconciliationError,
    TransactionNotFoundError,
)
from fintrack.reconciliation.saga import MutationSaga, SagaContext
from fintrack.services.storage.interface import RecordRepository


logger = structlog.get_logger(__name__)

RecordInput = Union[LedgerRecord, Mapping[str, Any]]


def _as_data(value: RecordInput) -> dict[str, Any]:
    if isinstance(value, LedgerRecord):
        return value.to_record()
    return dict(value)


class BalanceReconciliationService:
    """
    Applies financial events to the record store.

    Every public method takes the owning user's id; records belonging
    to another user are treated as not found.
    """

    def __init__(
        self,
        repository: RecordRepository,
        converter: CurrencyConverter,
        default_currency: str = "INR",
        compensate_on_failure: bool = True,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._repository = repository
        self._converter = converter
        self._default_currency = default_currency.upper()
        self._compensate = compensate_on_failure
        self._audit = audit_logger or AuditLogger()
        self._clock = clock or utc_now

    # =========================================================================
    # INCOME / EXPENSE / INVESTMENT / GOAL
    # =========================================================================

    async def create_income(self, user_id: str, income: RecordInput) -> Income:
        """Store an income and credit its account, if any."""
        item = Income.model_validate({**_as_data(income), "user_id": user_id})
        stored = await self._create_transaction(
            user_id=user_id,
            record=item,
            collection=Collection.INCOMES,
            transaction_type=TransactionType.INCOME,
            amount=item.amount,
            currency=item.currency,
            account_id=item.account_id,
            sign=ONE,
        )
        return Income.from_record(stored)

    async def create_expense(self, user_id: str, expense: RecordInput) -> Expense:
        """
        Store an expense and debit its account, if any.

        Expenses charged to an account start out Unpaid until a debt
        repayment transfer settles them.
        """
        item = Expense.model_validate({**_as_data(expense), "user_id": user_id})
        if item.account_id and item.payment_status is None:
            item.payment_status = PaymentStatus.UNPAID
        stored = await self._create_transaction(
            user_id=user_id,
            record=item,
            collection=Collection.EXPENSES,
            transaction_type=TransactionType.EXPENSE,
            amount=item.amount,
            currency=item.currency,
            account_id=item.account_id,
            sign=-ONE,
        )
        return Expense.from_record(stored)

    async def create_investment(self, user_id: str, investment: RecordInput) -> Investment:
        """Store an investment and debit the account it was paid from, if any."""
        item = Investment.model_validate({**_as_data(investment), "user_id": user_id})
        if item.total_invested == ZERO:
            item.total_invested = item.original_amount
        if item.current_value == ZERO:
            item.current_value = item.original_amount
        stored = await self._create_transaction(
            user_id=user_id,
            record=item,
            collection=Collection.INVESTMENTS,
            transaction_type=TransactionType.INVESTMENT,
            amount=item.original_amount,
            currency=item.currency,
            account_id=item.linked_account_id,
            sign=-ONE,
        )
        return Investment.from_record(stored)

    async def create_goal(self, user_id: str, goal: RecordInput) -> Goal:
        """Store a goal with the conversion audit record of its target."""
        item = Goal.model_validate({**_as_data(goal), "user_id": user_id})
        stored = await self._create_transaction(
            user_id=user_id,
            record=item,
            collection=Collection.GOALS,
            transaction_type=TransactionType.GOAL,
            amount=item.target_amount,
            currency=item.target_currency,
            account_id=None,
            sign=ZERO,
        )
        return Goal.from_record(stored)

    async def delete_income(self, user_id: str, income_id: str) -> None:
        """Delete an income and take its amount back out of the account."""
        original = await self._get_owned(Collection.INCOMES, income_id, user_id, TransactionNotFoundError)
        income = Income.from_record(original)
        await self._delete_transaction(
            user_id=user_id,
            original=original,
            collection=Collection.INCOMES,
            transaction_type=TransactionType.INCOME,
            amount=income.amount,
            currency=income.currency,
            account_id=income.account_id,
            sign=-ONE,
        )

    async def delete_expense(self, user_id: str, expense_id: str) -> None:
        """Delete an expense and put its amount back into the account."""
        original = await self._get_owned(Collection.EXPENSES, expense_id, user_id, TransactionNotFoundError)
        expense = Expense.from_record(original)
        await self._delete_transaction(
            user_id=user_id,
            original=original,
            collection=Collection.EXPENSES,
            transaction_type=TransactionType.EXPENSE,
            amount=expense.amount,
            currency=expense.currency,
            account_id=expense.account_id,
            sign=ONE,
        )

    async def delete_investment(self, user_id: str, investment_id: str) -> None:
        """Delete an investment and refund the account it was paid from."""
        original = await self._get_owned(Collection.INVESTMENTS, investment_id, user_id, TransactionNotFoundError)
        investment = Investment.from_record(original)
        await self._delete_transaction(
            user_id=user_id,
            original=original,
            collection=Collection.INVESTMENTS,
            transaction_type=TransactionType.INVESTMENT,
            amount=investment.original_amount,
            currency=investment.currency,
            account_id=investment.linked_account_id,
            sign=ONE,
        )

    async def delete_goal(self, user_id: str, goal_id: str) -> None:
        """Delete a goal and its conversion audit record."""
        original = await self._get_owned(Collection.GOALS, goal_id, user_id, TransactionNotFoundError)
        goal = Goal.from_record(original)
        await self._delete_transaction(
            user_id=user_id,
            original=original,
            collection=Collection.GOALS,
            transaction_type=TransactionType.GOAL,
            amount=goal.target_amount,
            currency=goal.target_currency,
            account_id=None,
            sign=ZERO,
        )

    async def allocate_to_goal(self, user_id: str, goal_id: str, amount: Numeric) -> Goal:
        """
        Add savings to a goal, in the goal's target currency.

        Raises:
            InvalidAmountError: If amount is not positive
            GoalAllocationError: If amount exceeds what the goal still needs
        """
        value = to_decimal(amount)
        if value <= ZERO:
            raise InvalidAmountError("Allocation amount must be greater than zero")

        goal = Goal.from_record(
            await self._get_owned(Collection.GOALS, goal_id, user_id, TransactionNotFoundError)
        )
        if value > goal.remaining_amount:
            raise GoalAllocationError(
                f"Allocation of {value} exceeds the remaining "
                f"{goal.remaining_amount} {goal.target_currency} for '{goal.name}'"
            )

        updated = await self._repository.update(
            Collection.GOALS,
            goal.id,
            {"saved_amount": round_money(goal.saved_amount + value)},
        )
        logger.info("goal_allocated", goal_id=goal.id, amount=str(value))
        return Goal.from_record(updated)

    async def mark_goal_fulfilled(self, user_id: str, goal_id: str) -> Goal:
        """Mark a goal as reached; saved amount becomes the target."""
        goal = Goal.from_record(
            await self._get_owned(Collection.GOALS, goal_id, user_id, TransactionNotFoundError)
        )
        updated = await self._repository.update(
            Collection.GOALS,
            goal.id,
            {"status": GoalStatus.FULFILLED.value, "saved_amount": goal.target_amount},
        )
        return Goal.from_record(updated)

    async def _create_transaction(
        self,
        *,
        user_id: str,
        record: LedgerRecord,
        collection: Collection,
        transaction_type: TransactionType,
        amount: Decimal,
        currency: str,
        account_id: Optional[str],
        sign: Decimal,
    ) -> dict[str, Any]:
        correlation_id = create_correlation_id()

        default_currency = await self._default_currency_for(user_id)
        audit_conversion = await self._convert_required(amount, currency, default_currency)
        account: Optional[BankAccount] = None
        delta = ZERO
        if account_id:
            account = await self._get_account(user_id, account_id)
            account_conversion = await self._convert_required(amount, currency, account.currency)
            delta = sign * account_conversion.converted_amount

        insert_step = f"insert_{transaction_type.value}"
        saga = self._saga(f"create_{transaction_type.value}", correlation_id)
        self._insert_step(saga, insert_step, collection, record.to_record())
        self._conversion_step(
            saga,
            "record_conversion",
            user_id,
            lambda ctx: ctx[insert_step]["id"],
            transaction_type,
            audit_conversion,
        )
        if account is not None:
            self._balance_step(
                saga,
                "credit_account" if sign > 0 else "debit_account",
                user_id,
                account.id,
                delta,
                f"{transaction_type.value} created",
                correlation_id,
            )

        ctx = await saga.run()
        stored = ctx[insert_step]
        await self._audit.log_transaction_created(
            transaction_type=transaction_type.value,
            transaction_id=stored["id"],
            amount=amount,
            currency=currency,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        return stored

    async def _delete_transaction(
        self,
        *,
        user_id: str,
        original: dict[str, Any],
        collection: Collection,
        transaction_type: TransactionType,
        amount: Decimal,
        currency: str,
        account_id: Optional[str],
        sign: Decimal,
    ) -> None:
        correlation_id = create_correlation_id()
        record_id = original["id"]

        account: Optional[BankAccount] = None
        delta = ZERO
        if account_id:
            account_record = await self._repository.get(Collection.BANK_ACCOUNTS, account_id)
            if account_record is None:
                logger.warning(
                    "linked_account_missing",
                    transaction_id=record_id,
                    account_id=account_id,
                )
            else:
                account = BankAccount.from_record(account_record)
                # Re-derived at today's rate, not the rate used at creation
                reversal = await self._convert_required(amount, currency, account.currency)
                delta = sign * reversal.converted_amount

        conversion_filters = {
            "transaction_id": record_id,
            "transaction_type": transaction_type.value,
        }
        conversions = await self._repository.select(
            Collection.TRANSACTION_CONVERSIONS, filters=conversion_filters,
        )

        saga = self._saga(f"delete_{transaction_type.value}", correlation_id)

        async def delete_record(ctx: SagaContext) -> bool:
            return await self._repository.delete(collection, record_id)

        async def restore_record(ctx: SagaContext) -> None:
            await self._repository.insert(collection, original)

        saga.add_step(f"delete_{transaction_type.value}", delete_record, restore_record)

        if account is not None:
            self._balance_step(
                saga,
                "revert_balance",
                user_id,
                account.id,
                delta,
                f"{transaction_type.value} deleted",
                correlation_id,
            )

        async def delete_conversions(ctx: SagaContext) -> int:
            return await self._repository.delete_where(
                Collection.TRANSACTION_CONVERSIONS, conversion_filters,
            )

        async def restore_conversions(ctx: SagaContext) -> None:
            for conversion in conversions:
                if await self._repository.get(Collection.TRANSACTION_CONVERSIONS, conversion["id"]) is None:
                    await self._repository.insert(Collection.TRANSACTION_CONVERSIONS, conversion)

        saga.add_step("delete_conversions", delete_conversions, restore_conversions)

        await saga.run()
        await self._audit.log_transaction_deleted(
            transaction_type=transaction_type.value,
            transaction_id=record_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # LOANS
    # =========================================================================

    async def create_loan(self, user_id: str, loan: RecordInput) -> Loan:
        """
        Store a loan.

        With a linked account, the principal is credited to it and a
        one-time loan income (Not Settled) is recorded alongside.
        """
        item = Loan.model_validate({**_as_data(loan), "user_id": user_id})
        correlation_id = create_correlation_id()

        account: Optional[BankAccount] = None
        if item.linked_account_id:
            account = await self._get_account(user_id, item.linked_account_id)
        if item.currency is None:
            item.currency = account.currency if account else await self._default_currency_for(user_id)
        if item.remaining_balance > item.principal_amount:
            raise InvalidAmountError("Remaining balance cannot exceed the principal amount")
        if item.remaining_balance == ZERO:
            item.status = LoanStatus.CLOSED

        saga = self._saga("create_loan", correlation_id)
        self._insert_step(saga, "insert_loan", Collection.LOANS, item.to_record())

        if account is not None:
            credit = await self._convert_required(item.principal_amount, item.currency, account.currency)
            self._balance_step(
                saga,
                "credit_account",
                user_id,
                account.id,
                credit.converted_amount,
                "loan disbursed",
                correlation_id,
            )

            def loan_income(ctx: SagaContext) -> dict[str, Any]:
                return Income(
                    user_id=user_id,
                    date=item.start_date,
                    source=f"Loan from {item.lender_name}",
                    amount=item.principal_amount,
                    currency=item.currency,
                    frequency=IncomeFrequency.ONE_TIME,
                    notes=f"{item.loan_type} loan disbursement",
                    account_id=account.id,
                    is_loan_income=True,
                    linked_loan_id=ctx["insert_loan"]["id"],
                    settlement_status=SettlementStatus.NOT_SETTLED,
                ).to_record()

            self._insert_step(saga, "insert_loan_income", Collection.INCOMES, loan_income)

        ctx = await saga.run()
        stored = ctx["insert_loan"]
        await self._audit.log_transaction_created(
            transaction_type="loan",
            transaction_id=stored["id"],
            amount=item.principal_amount,
            currency=item.currency,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        return Loan.from_record(stored)

    async def repay_loan(
        self,
        user_id: str,
        loan_id: str,
        amount: Numeric,
        payment_date: Optional[date] = None,
        account_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> LoanRepayment:
        """
        Record a manual loan repayment, in the loan's currency.

        The paying account (account_id, else the loan's linked account)
        is debited. The remaining balance never goes below zero.

        Raises:
            LoanNotFoundError: If the loan doesn't exist
            LoanClosedError: If the loan is already closed
            InvalidAmountError: If amount is not positive
        """
        correlation_id = create_correlation_id()
        saga = self._saga("repay_loan", correlation_id)
        await self._add_loan_repayment_steps(
            saga,
            user_id=user_id,
            loan_id=loan_id,
            amount=amount,
            currency=None,
            payment_date=payment_date or self._clock().date(),
            account_id=account_id,
            notes=notes,
            correlation_id=correlation_id,
            transfer_id_of=None,
        )
        ctx = await saga.run()
        return LoanRepayment.from_record(ctx["insert_loan_repayment"])

    async def _add_loan_repayment_steps(
        self,
        saga: MutationSaga,
        *,
        user_id: str,
        loan_id: str,
        amount: Numeric,
        currency: Optional[str],
        payment_date: date,
        account_id: Optional[str],
        notes: Optional[str],
        correlation_id: UUID,
        transfer_id_of: Optional[Callable[[SagaContext], str]],
    ) -> Loan:
        """
        Validate a repayment and append its steps to saga.

        When transfer_id_of is given the money already moved through a
        transfer, so no account is debited here.
        """
        value = to_decimal(amount)
        if value <= ZERO:
            raise InvalidAmountError("Repayment amount must be greater than zero")

        record = await self._repository.get(Collection.LOANS, loan_id)
        if record is None or record.get("user_id") != user_id:
            raise LoanNotFoundError(f"Loan not found: {loan_id}")
        loan = Loan.from_record(record)
        if loan.is_closed:
            raise LoanClosedError(f"Loan from {loan.lender_name} is already closed")
        loan_currency = loan.currency or await self._default_currency_for(user_id)

        if currency is not None:
            value = (await self._convert_required(value, currency, loan_currency)).converted_amount
        value = round_money(value)

        remaining = max(round_money(loan.remaining_balance - value), ZERO)
        closes = remaining == ZERO

        paying_account_id = account_id or loan.linked_account_id
        debit: Optional[Decimal] = None
        if paying_account_id and transfer_id_of is None:
            account = await self._get_account(user_id, paying_account_id)
            debit = (await self._convert_required(value, loan_currency, account.currency)).converted_amount

        def transfer_id(ctx: SagaContext) -> Optional[str]:
            return transfer_id_of(ctx) if transfer_id_of else None

        async def update_loan(ctx: SagaContext) -> dict[str, Any]:
            changes: dict[str, Any] = {"remaining_balance": remaining}
            if closes:
                changes["status"] = LoanStatus.CLOSED.value
            return await self._repository.update(Collection.LOANS, loan.id, changes)

        async def restore_loan(ctx: SagaContext) -> None:
            await self._repository.update(
                Collection.LOANS,
                loan.id,
                {"remaining_balance": loan.remaining_balance, "status": loan.status.value},
            )

        saga.add_step("update_loan", update_loan, restore_loan)

        self._insert_step(
            saga,
            "insert_loan_repayment",
            Collection.LOAN_REPAYMENTS,
            lambda ctx: LoanRepayment(
                user_id=user_id,
                loan_id=loan.id,
                amount=value,
                currency=loan_currency,
                payment_date=payment_date,
                account_id=paying_account_id,
                transfer_id=transfer_id(ctx),
                remaining_balance_after=remaining,
                notes=notes,
            ).to_record(),
        )
        self._insert_step(
            saga,
            "insert_repayment_expense",
            Collection.EXPENSES,
            lambda ctx: Expense(
                user_id=user_id,
                date=payment_date,
                category=LOAN_REPAYMENT_CATEGORY,
                description=f"Loan repayment - {loan.lender_name}",
                amount=value,
                currency=loan_currency,
                type=ExpenseType.MANDATORY,
                account_id=paying_account_id,
                is_repayment_transfer=transfer_id_of is not None,
                payment_status=PaymentStatus.PAID,
                payment_date=payment_date,
                linked_transfer_id=transfer_id(ctx),
            ).to_record(),
        )

        if debit is not None:
            self._balance_step(
                saga,
                "debit_account",
                user_id,
                paying_account_id,
                -debit,
                "loan repayment",
                correlation_id,
            )

        if closes:
            async def settle_loan_income(ctx: SagaContext) -> list[str]:
                incomes = await self._repository.select(
                    Collection.INCOMES,
                    user_id=user_id,
                    filters={"linked_loan_id": loan.id, "is_loan_income": True},
                )
                for income in incomes:
                    await self._repository.update(
                        Collection.INCOMES,
                        income["id"],
                        {"settlement_status": SettlementStatus.SETTLED.value},
                    )
                return [income["id"] for income in incomes]

            async def unsettle_loan_income(ctx: SagaContext) -> None:
                for income_id in ctx["settle_loan_income"]:
                    await self._repository.update(
                        Collection.INCOMES,
                        income_id,
                        {"settlement_status": SettlementStatus.NOT_SETTLED.value},
                    )

            saga.add_step("settle_loan_income", settle_loan_income, unsettle_loan_income)

        async def log_repayment(ctx: SagaContext) -> None:
            await self._audit.log_loan_repaid(loan.id, value, remaining, user_id, correlation_id)
            if closes:
                await self._audit.log_loan_closed(loan.id, user_id, correlation_id)

        saga.add_step("log_loan_repayment", log_repayment)
        return loan

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    async def create_transfer(self, user_id: str, transfer: RecordInput) -> Transfer:
        """
        Move money between accounts.

        The amount is entered in transfer.currency and converted
        separately for each side, so the debit and the credit need not
        be equal. External and Cash Withdrawal transfers only debit the
        source. A Debt Repayment into a Credit Card settles the card's
        Unpaid expenses; one naming a loan_id also pays down that loan.
        """
        item = Transfer.model_validate({**_as_data(transfer), "user_id": user_id})
        if item.type == TransferType.INTERNATIONAL:
            raise ReconciliationError(
                "International transfers need a breakdown; use create_international_transfer"
            )
        correlation_id = create_correlation_id()

        source = await self._get_account(user_id, item.from_account_id)
        debit = await self._convert_required(item.amount, item.currency, source.currency)

        destination: Optional[BankAccount] = None
        credit: Optional[ConversionResult] = None
        if item.type in (TransferType.SELF, TransferType.DEBT_REPAYMENT):
            if not item.to_account_id:
                raise AccountNotFoundError(f"{item.type.value} transfer needs a destination account")
            if item.to_account_id == item.from_account_id:
                raise ReconciliationError("Source and destination accounts must differ")
            destination = await self._get_account(user_id, item.to_account_id)
            credit = await self._convert_required(item.amount, item.currency, destination.currency)

        saga = self._saga(f"transfer_{item.type.value.lower().replace(' ', '_')}", correlation_id)
        self._insert_step(saga, "insert_transfer", Collection.TRANSFERS, item.to_record())
        self._balance_step(
            saga,
            "debit_source",
            user_id,
            source.id,
            -debit.converted_amount,
            f"{item.type.value} transfer out",
            correlation_id,
        )
        if destination is not None:
            self._balance_step(
                saga,
                "credit_destination",
                user_id,
                destination.id,
                credit.converted_amount,
                f"{item.type.value} transfer in",
                correlation_id,
            )

        if item.type == TransferType.DEBT_REPAYMENT:
            if destination.account_type == AccountType.CREDIT_CARD:
                self._settle_card_expenses_step(saga, user_id, destination.id, item.date)
            if item.loan_id:
                await self._add_loan_repayment_steps(
                    saga,
                    user_id=user_id,
                    loan_id=item.loan_id,
                    amount=item.amount,
                    currency=item.currency,
                    payment_date=item.date,
                    account_id=source.id,
                    notes=item.description,
                    correlation_id=correlation_id,
                    transfer_id_of=lambda ctx: ctx["insert_transfer"]["id"],
                )

        ctx = await saga.run()
        stored = ctx["insert_transfer"]
        await self._audit.log_transaction_created(
            transaction_type="transfer",
            transaction_id=stored["id"],
            amount=item.amount,
            currency=item.currency,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        return Transfer.from_record(stored)

    async def create_international_transfer(
        self,
        user_id: str,
        from_account_id: str,
        to_account_id: str,
        breakdown: TransferBreakdown,
        transfer_date: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Transfer:
        """
        Commit an international transfer previewed as a breakdown.

        Source is debited source_amount plus the extra fee when that fee
        was stated in the source currency. Destination is credited
        total_destination_amount. total_fees (buffer excluded) is booked
        as a "Bank Fees" expense on the destination account.
        """
        if not breakdown.is_valid:
            raise InvalidAmountError(breakdown.error_message or "Invalid transfer breakdown")
        if from_account_id == to_account_id:
            raise ReconciliationError("Source and destination accounts must differ")
        correlation_id = create_correlation_id()
        when = transfer_date or self._clock().date()

        source = await self._get_account(user_id, from_account_id)
        destination = await self._get_account(user_id, to_account_id)

        source_total = breakdown.source_amount
        if breakdown.extra_fee_in_source_currency:
            source_total += breakdown.extra_fee
        debit = await self._convert_required(source_total, breakdown.source_currency, source.currency)
        credit = await self._convert_required(
            breakdown.total_destination_amount, breakdown.destination_currency, destination.currency
        )

        item = Transfer(
            user_id=user_id,
            from_account_id=source.id,
            to_account_id=destination.id,
            amount=breakdown.source_amount,
            currency=breakdown.source_currency,
            type=TransferType.INTERNATIONAL,
            description=description,
            date=when,
        )

        saga = self._saga("transfer_international", correlation_id)
        self._insert_step(saga, "insert_transfer", Collection.TRANSFERS, item.to_record())
        self._balance_step(
            saga,
            "debit_source",
            user_id,
            source.id,
            -debit.converted_amount,
            "international transfer out",
            correlation_id,
        )
        self._balance_step(
            saga,
            "credit_destination",
            user_id,
            destination.id,
            credit.converted_amount,
            "international transfer in",
            correlation_id,
        )
        self._insert_step(
            saga,
            "record_conversion",
            Collection.TRANSACTION_CONVERSIONS,
            lambda ctx: TransactionConversion(
                user_id=user_id,
                transaction_id=ctx["insert_transfer"]["id"],
                transaction_type=TransactionType.TRANSFER,
                original_amount=breakdown.source_amount,
                original_currency=breakdown.source_currency,
                converted_amount=breakdown.total_destination_amount,
                converted_currency=breakdown.destination_currency,
                exchange_rate=breakdown.effective_exchange_rate,
                conversion_date=self._clock(),
            ).to_record(),
        )
        if breakdown.total_fees > ZERO:
            self._insert_step(
                saga,
                "insert_fee_expense",
                Collection.EXPENSES,
                lambda ctx: Expense(
                    user_id=user_id,
                    date=when,
                    category=BANK_FEES_CATEGORY,
                    description=(
                        f"International transfer fees "
                        f"({breakdown.source_currency} to {breakdown.destination_currency})"
                    ),
                    amount=breakdown.total_fees,
                    currency=breakdown.destination_currency,
                    type=ExpenseType.MANDATORY,
                    account_id=destination.id,
                    payment_status=PaymentStatus.PAID,
                    payment_date=when,
                    linked_transfer_id=ctx["insert_transfer"]["id"],
                ).to_record(),
            )

        ctx = await saga.run()
        stored = ctx["insert_transfer"]
        await self._audit.log_transaction_created(
            transaction_type="transfer",
            transaction_id=stored["id"],
            amount=breakdown.source_amount,
            currency=breakdown.source_currency,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        return Transfer.from_record(stored)

    def _settle_card_expenses_step(
        self,
        saga: MutationSaga,
        user_id: str,
        account_id: str,
        paid_on: date,
    ) -> None:
        async def settle(ctx: SagaContext) -> list[str]:
            transfer_id = ctx["insert_transfer"]["id"]
            unpaid = await self._repository.select(
                Collection.EXPENSES,
                user_id=user_id,
                filters={"account_id": account_id, "payment_status": PaymentStatus.UNPAID.value},
            )
            for expense in unpaid:
                await self._repository.update(
                    Collection.EXPENSES,
                    expense["id"],
                    {
                        "payment_status": PaymentStatus.PAID.value,
                        "payment_date": paid_on,
                        "linked_transfer_id": transfer_id,
                    },
                )
            logger.info("expenses_settled", account_id=account_id, count=len(unpaid))
            return [expense["id"] for expense in unpaid]

        async def unsettle(ctx: SagaContext) -> None:
            for expense_id in ctx["settle_card_expenses"]:
                await self._repository.update(
                    Collection.EXPENSES,
                    expense_id,
                    {
                        "payment_status": PaymentStatus.UNPAID.value,
                        "payment_date": None,
                        "linked_transfer_id": None,
                    },
                )

        saga.add_step("settle_card_expenses", settle, unsettle)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _saga(self, name: str, correlation_id: UUID) -> MutationSaga:
        return MutationSaga(
            name,
            compensate_on_failure=self._compensate,
            audit_logger=self._audit,
            correlation_id=correlation_id,
        )

    async def _get_owned(
        self,
        collection: Collection,
        record_id: str,
        user_id: str,
        error_cls: type[ReconciliationError],
    ) -> dict[str, Any]:
        record = await self._repository.get(collection, record_id)
        if record is None or record.get("user_id") != user_id:
            raise error_cls(f"Not found in {collection.value}: {record_id}")
        return record

    async def _get_account(self, user_id: str, account_id: str) -> BankAccount:
        record = await self._get_owned(Collection.BANK_ACCOUNTS, account_id, user_id, AccountNotFoundError)
        return BankAccount.from_record(record)

    async def _default_currency_for(self, user_id: str) -> str:
        """The user's own default currency, else the configured one."""
        records = await self._repository.select(
            Collection.USER_SETTINGS, filters={"user_id": user_id}, limit=1,
        )
        if records:
            return UserSettings.from_record(records[0]).default_currency
        return self._default_currency

    async def _convert_required(
        self,
        amount: Numeric,
        from_currency: str,
        to_currency: str,
    ) -> ConversionResult:
        result = await self._converter.convert_amount(amount, from_currency, to_currency)
        if result is None:
            raise CurrencyConversionError(amount, from_currency, to_currency)
        return result

    async def _adjust_balance(
        self,
        user_id: str,
        account_id: str,
        delta: Decimal,
        reason: str,
        correlation_id: UUID,
    ) -> Decimal:
        account = await self._get_account(user_id, account_id)
        new_balance = round_money(account.balance + delta)
        await self._repository.update(Collection.BANK_ACCOUNTS, account_id, {"balance": new_balance})
        await self._audit.log_balance_adjusted(
            account_id=account_id,
            delta=delta,
            new_balance=new_balance,
            currency=account.currency,
            reason=reason,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        return new_balance

    def _balance_step(
        self,
        saga: MutationSaga,
        name: str,
        user_id: str,
        account_id: str,
        delta: Decimal,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        delta = round_money(delta)

        async def apply(ctx: SagaContext) -> Decimal:
            return await self._adjust_balance(user_id, account_id, delta, reason, correlation_id)

        async def undo(ctx: SagaContext) -> None:
            await self._adjust_balance(user_id, account_id, -delta, f"undo {reason}", correlation_id)

        saga.add_step(name, apply, undo)

    def _insert_step(
        self,
        saga: MutationSaga,
        name: str,
        collection: Collection,
        record: Union[dict[str, Any], Callable[[SagaContext], dict[str, Any]]],
    ) -> None:
        async def insert(ctx: SagaContext) -> dict[str, Any]:
            data = record(ctx) if callable(record) else record
            return await self._repository.insert(collection, data)

        async def remove(ctx: SagaContext) -> None:
            await self._repository.delete(collection, ctx[name]["id"])

        saga.add_step(name, insert, remove)

    def _conversion_step(
        self,
        saga: MutationSaga,
        name: str,
        user_id: str,
        transaction_id_of: Callable[[SagaContext], str],
        transaction_type: TransactionType,
        conversion: ConversionResult,
    ) -> None:
        self._insert_step(
            saga,
            name,
            Collection.TRANSACTION_CONVERSIONS,
            lambda ctx: TransactionConversion(
                user_id=user_id,
                transaction_id=transaction_id_of(ctx),
                transaction_type=transaction_type,
                original_amount=conversion.original_amount,
                original_currency=conversion.original_currency,
                converted_amount=conversion.converted_amount,
                converted_currency=conversion.converted_currency,
                exchange_rate=conversion.exchange_rate,
                conversion_date=conversion.conversion_date,
            ).to_record(),
        )
