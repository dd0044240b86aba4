"""
Audit Logger

DESIGN DECISION: A failed audit write never fails the mutation it
describes. Events always reach the structured log; the audit_events
collection is best-effort.

All events of one mutation share a correlation id, so a half-applied
transfer can be reconstructed from the trail.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from fintrack.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from fintrack.models.records import Collection
from fintrack.services.storage.interface import RecordRepository


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """
    Route structlog output through the stdlib root logger at the given level.

    structlog renders the JSON line; stdlib only decides what passes.
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Writes AuditEvents to structlog and, when a store is given, to audit_events.
    """

    def __init__(
        self,
        repository: Optional[RecordRepository] = None,
    ):
        """
        Args:
            repository: Record store for persistence.
                        None keeps events in the structured log only.
        """
        self._repository = repository
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        The structured log line is written first, then the stored record.

        Returns False only when the store rejected the record.
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.CRITICAL:
            self._logger.critical("audit_event", **log_dict)
        elif event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._repository:
            try:
                await self._repository.insert(Collection.AUDIT_EVENTS, event.to_record())
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_rates_fetched(self, base_currency: str, currency_count: int) -> None:
        """Log a successful live rate fetch."""
        await self.log(AuditEventBuilder.rates_fetched(base_currency, currency_count))

    async def log_rates_served_stale(
        self,
        base_currency: str,
        age_seconds: float,
        reason: str,
    ) -> None:
        """Log a fallback to an expired rate table."""
        await self.log(
            AuditEventBuilder.rates_served_stale(base_currency, age_seconds, reason)
        )

    async def log_rates_unavailable(self, base_currency: str, reason: str) -> None:
        """Log that no rate table could be produced at all."""
        await self.log(AuditEventBuilder.rates_unavailable(base_currency, reason))

    async def log_transaction_created(
        self,
        transaction_type: str,
        transaction_id: str,
        amount: Decimal,
        currency: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log creation of an income, expense, investment, goal, loan or transfer."""
        event = AuditEventBuilder.transaction_created(
            transaction_type=transaction_type,
            transaction_id=transaction_id,
            amount=amount,
            currency=currency,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_type: str,
        transaction_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log deletion of a transaction."""
        event = AuditEventBuilder.transaction_deleted(
            transaction_type=transaction_type,
            transaction_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_adjusted(
        self,
        account_id: str,
        delta: Decimal,
        new_balance: Decimal,
        currency: str,
        reason: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a balance change."""
        event = AuditEventBuilder.balance_adjusted(
            account_id=account_id,
            delta=delta,
            new_balance=new_balance,
            currency=currency,
            reason=reason,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_repaid(
        self,
        loan_id: str,
        amount: Decimal,
        remaining_balance: Decimal,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a loan repayment."""
        event = AuditEventBuilder.loan_repaid(
            loan_id=loan_id,
            amount=amount,
            remaining_balance=remaining_balance,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_closed(
        self,
        loan_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log loan closure."""
        await self.log(AuditEventBuilder.loan_closed(loan_id, user_id, correlation_id))

    async def log_saga_compensated(
        self,
        saga_name: str,
        failed_step: str,
        compensated_steps: list[str],
        failed_compensations: list[str],
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a failed multi-step mutation and what was undone."""
        event = AuditEventBuilder.saga_compensated(
            saga_name=saga_name,
            failed_step=failed_step,
            compensated_steps=compensated_steps,
            failed_compensations=failed_compensations,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    New id shared by every event of one mutation.

    Use this at the start of a new user action (e.g., a transfer).
    """
    return uuid4()
