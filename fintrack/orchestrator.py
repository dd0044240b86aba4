"""
Composition Root for Fintrack

Builds the object graph once at application start:

    RateSource -> RateProvider -> CurrencyConverter
                                 -> BalanceReconciliationService
                                 -> DashboardService

DESIGN DECISION: This is the only place that reads settings. There is
exactly one RateProvider per application and every consumer receives
a reference to it, so all conversions share one rate cache.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from fintrack.audit import AuditLogger, configure_logging
from fintrack.config import Settings, get_settings
from fintrack.conversion import CurrencyConverter
from fintrack.dashboard import DashboardService
from fintrack.reconciliation import BalanceReconciliationService
from fintrack.services.rates import FrankfurterRateSource, RateProvider, RateSource
from fintrack.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    RecordRepository,
)


logger = structlog.get_logger(__name__)


class AppComponents:
    """The wired application services."""

    def __init__(
        self,
        repository: RecordRepository,
        audit_logger: AuditLogger,
        rate_provider: RateProvider,
        converter: CurrencyConverter,
        reconciliation: BalanceReconciliationService,
        dashboard: DashboardService,
    ):
        self.repository = repository
        self.audit_logger = audit_logger
        self.rate_provider = rate_provider
        self.converter = converter
        self.reconciliation = reconciliation
        self.dashboard = dashboard


def create_repository(settings: Settings) -> RecordRepository:
    """
    Create the configured record store.

    Falls back to the in-memory store when Google Sheets is selected
    but not configured.
    """
    if settings.storage.backend == "google_sheets":
        try:
            return GoogleSheetsRecordStore(GoogleSheetsClient(settings.google_sheets))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
    return InMemoryRecordStore()


def create_app_components(
    settings: Optional[Settings] = None,
    repository: Optional[RecordRepository] = None,
    rate_source: Optional[RateSource] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use. Defaults to get_settings().
        repository: Record store. Defaults to the configured backend.
        rate_source: Live rate source. Defaults to Frankfurter.
        clock: UTC clock shared by every component.

    Returns:
        The wired components
    """
    settings = settings or get_settings()
    rate_settings = settings.rates
    ledger_settings = settings.ledger

    configure_logging(settings.app.log_level)

    repository = repository or create_repository(settings)
    audit_logger = AuditLogger(repository)

    rate_source = rate_source or FrankfurterRateSource(
        endpoint=rate_settings.endpoint,
        max_attempts=rate_settings.max_fetch_attempts,
        clock=clock,
    )
    rate_provider = RateProvider(
        source=rate_source,
        repository=repository,
        base_currency=rate_settings.base_currency,
        cache_ttl_seconds=rate_settings.cache_ttl_seconds,
        clock=clock,
        audit_logger=audit_logger,
    )
    converter = CurrencyConverter(rate_provider, clock=clock)

    reconciliation = BalanceReconciliationService(
        repository=repository,
        converter=converter,
        default_currency=ledger_settings.default_currency,
        compensate_on_failure=ledger_settings.compensate_on_failure,
        audit_logger=audit_logger,
        clock=clock,
    )
    dashboard = DashboardService(repository, rate_provider)

    return AppComponents(
        repository=repository,
        audit_logger=audit_logger,
        rate_provider=rate_provider,
        converter=converter,
        reconciliation=reconciliation,
        dashboard=dashboard,
    )
