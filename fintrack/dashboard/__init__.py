"""Dashboard aggregation package."""

from fintrack.dashboard.snapshot import (
    DashboardService,
    FinancialSnapshot,
    build_financial_snapshot,
)

__all__ = ["DashboardService", "FinancialSnapshot", "build_financial_snapshot"]
