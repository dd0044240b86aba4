"""
Audit Models for Fintrack

An AuditEvent describes one balance change, one rate lookup outcome or one
saga rollback. Monetary details are stored as strings to keep Decimal
precision through JSON.

DESIGN DECISION: The audit_events collection is append-only.
Conversion audit records (TransactionConversion) are a different thing:
they belong to a transaction and are deleted with it.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Exchange rates
    RATES_FETCHED = "rates_fetched"
    RATES_SERVED_STALE = "rates_served_stale"
    RATES_UNAVAILABLE = "rates_unavailable"

    # Ledger
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"
    BALANCE_ADJUSTED = "balance_adjusted"

    # Loans
    LOAN_REPAID = "loan_repaid"
    LOAN_CLOSED = "loan_closed"

    # Multi-step mutations
    SAGA_COMPENSATED = "saga_compensated"

    # External services
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _json_default(value: Any) -> str:
    if isinstance(value, (Decimal, UUID, datetime)):
        return str(value)
    if isinstance(value, Enum):
        return str(value.value)
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


class AuditEvent(BaseModel):
    """
    One entry in the audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'bank_account', 'loan', 'expense')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all steps of one transfer)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Flatten to JSON-safe values for structlog.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": json.loads(json.dumps(self.details, default=_json_default)),
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_record(self) -> dict:
        """Convert to a record for the audit_events collection."""
        record = self.to_log_dict()
        record["id"] = record.pop("event_id")
        return record


class AuditEventBuilder:
    """
    Factories for the events the services emit.

    Usage:
        event = AuditEventBuilder.balance_adjusted(account_id, delta, ...)
        event = AuditEventBuilder.loan_closed(loan_id, correlation_id)
    """

    @staticmethod
    def rates_fetched(
        base_currency: str,
        currency_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_FETCHED,
            entity_type="exchange_rates",
            description=f"Fetched {currency_count} rates against {base_currency}",
            details={
                "base_currency": base_currency,
                "currency_count": currency_count,
            },
        )

    @staticmethod
    def rates_served_stale(
        base_currency: str,
        age_seconds: float,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_SERVED_STALE,
            severity=AuditSeverity.WARNING,
            entity_type="exchange_rates",
            description=f"Serving stale {base_currency} rates ({age_seconds:.0f}s old)",
            details={
                "base_currency": base_currency,
                "age_seconds": round(age_seconds),
            },
            error_message=reason,
        )

    @staticmethod
    def rates_unavailable(
        base_currency: str,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_UNAVAILABLE,
            severity=AuditSeverity.ERROR,
            entity_type="exchange_rates",
            description=f"No {base_currency} rates available",
            error_message=reason,
        )

    @staticmethod
    def transaction_created(
        transaction_type: str,
        transaction_id: str,
        amount: Decimal,
        currency: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type=transaction_type,
            entity_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} created: {amount} {currency}",
            details={
                "amount": str(amount),
                "currency": currency,
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction_type: str,
        transaction_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type=transaction_type,
            entity_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} deleted",
        )

    @staticmethod
    def balance_adjusted(
        account_id: str,
        delta: Decimal,
        new_balance: Decimal,
        currency: str,
        reason: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            entity_type="bank_account",
            entity_id=account_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Balance adjusted by {delta} {currency} ({reason})",
            details={
                "delta": str(delta),
                "new_balance": str(new_balance),
                "currency": currency,
                "reason": reason,
            },
        )

    @staticmethod
    def loan_repaid(
        loan_id: str,
        amount: Decimal,
        remaining_balance: Decimal,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_REPAID,
            entity_type="loan",
            entity_id=loan_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Loan repayment of {amount}, {remaining_balance} remaining",
            details={
                "amount": str(amount),
                "remaining_balance": str(remaining_balance),
            },
        )

    @staticmethod
    def loan_closed(
        loan_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_CLOSED,
            entity_type="loan",
            entity_id=loan_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Loan fully repaid and closed",
        )

    @staticmethod
    def saga_compensated(
        saga_name: str,
        failed_step: str,
        compensated_steps: list[str],
        failed_compensations: list[str],
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        severity = (
            AuditSeverity.CRITICAL if failed_compensations else AuditSeverity.ERROR
        )
        return AuditEvent(
            event_type=AuditEventType.SAGA_COMPENSATED,
            severity=severity,
            entity_type="saga",
            correlation_id=correlation_id,
            description=f"{saga_name} failed at '{failed_step}'",
            details={
                "saga": saga_name,
                "failed_step": failed_step,
                "compensated_steps": compensated_steps,
                "failed_compensations": failed_compensations,
            },
            error_message=error_message,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
