"""
Fintrack - Source Package

The calculation core of a personal-finance tracker: bank accounts,
loans, income, expenses, investments and goals across currencies.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. Conversions are audited exactly as they were applied
3. Every balance change is explained by a ledger record
4. Failures are reported, never silently absorbed
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Fintrack Team"
