"""
Tests for the international transfer calculators.
"""

from decimal import Decimal

import pytest

from fintrack.transfers import (
    TransferValidationError,
    calculate_complete_transfer_breakdown,
    calculate_destination_amount,
    calculate_international_transfer_amount,
    calculate_international_transfer_amount_with_markup,
    get_effective_exchange_rate,
)


class TestCompleteBreakdown:
    """Tests for the itemized breakdown."""

    def test_full_breakdown(self):
        """Test a transfer with every fee kind and a source-currency extra fee."""
        breakdown = calculate_complete_transfer_breakdown(
            1000, "USD", "INR", 83, 2, 50, 10, "source", 20,
        )

        assert breakdown.is_valid
        assert breakdown.converted_amount == Decimal("83000")
        assert breakdown.percentage_markup_amount == Decimal("1660")
        assert breakdown.extra_fee_converted == Decimal("830")
        assert breakdown.total_fees == Decimal("2540")
        assert breakdown.total_destination_amount == Decimal("85560")
        assert breakdown.effective_exchange_rate == Decimal("83.05")
        assert breakdown.extra_fee_in_source_currency

    def test_source_currency_code_counts_as_source(self):
        breakdown = calculate_complete_transfer_breakdown(
            1000, "USD", "INR", 83, extra_fee=10, extra_fee_currency="usd",
        )

        assert breakdown.extra_fee_converted == Decimal("830")

    def test_destination_fee_is_not_converted(self):
        breakdown = calculate_complete_transfer_breakdown(
            1000, "USD", "INR", 83, extra_fee=10, extra_fee_currency="destination",
        )

        assert breakdown.extra_fee_converted == Decimal("10")
        assert breakdown.total_fees == Decimal("10")

    def test_other_fee_currency_is_taken_as_destination(self):
        """Test that a third currency is not converted."""
        breakdown = calculate_complete_transfer_breakdown(
            1000, "USD", "INR", 83, extra_fee=10, extra_fee_currency="EUR",
        )

        assert breakdown.extra_fee_converted == Decimal("10")

    def test_buffer_is_not_a_fee(self):
        breakdown = calculate_complete_transfer_breakdown(
            100, "USD", "INR", 83, buffer_amount=5,
        )

        assert breakdown.total_fees == Decimal("0")
        assert breakdown.total_destination_amount == Decimal("8305")

    def test_rounding(self):
        breakdown = calculate_complete_transfer_breakdown(
            "10.005", "USD", "INR", "1", percentage_markup="0",
        )

        assert breakdown.converted_amount == Decimal("10.01")

    def test_zero_amount_is_invalid(self):
        """Test that invalid input zeroes every number."""
        breakdown = calculate_complete_transfer_breakdown(0, "USD", "INR", 83)

        assert not breakdown.is_valid
        assert breakdown.error_message == (
            "Source amount and base exchange rate must be greater than zero"
        )
        assert breakdown.converted_amount == Decimal("0")
        assert breakdown.total_destination_amount == Decimal("0")
        assert breakdown.total_fees == Decimal("0")
        assert breakdown.effective_exchange_rate == Decimal("0")

    def test_negative_rate_is_invalid(self):
        breakdown = calculate_complete_transfer_breakdown(100, "USD", "INR", -1)

        assert not breakdown.is_valid

    def test_non_numeric_is_invalid(self):
        breakdown = calculate_complete_transfer_breakdown("abc", "USD", "INR", 83)

        assert not breakdown.is_valid
        assert breakdown.error_message == "All inputs must be numeric values"


class TestFixedMarkupCalculators:
    """Tests for the per-unit markup calculators."""

    def test_structured_result(self):
        result = calculate_international_transfer_amount(100, 80, 2)

        assert result.is_valid
        assert result.destination_amount == Decimal("8200")
        assert result.effective_rate == Decimal("82")

    def test_structured_rejects_fee_above_rate(self):
        result = calculate_international_transfer_amount(100, 80, 85)

        assert not result.is_valid
        assert result.destination_amount == Decimal("0")
        assert "greater than the base exchange rate" in result.error_message

    def test_structured_rejects_zero_amount(self):
        result = calculate_international_transfer_amount(0, 80, 1)

        assert result.error_message == "Source amount must be greater than zero"

    def test_with_markup_raises_when_fee_exceeds_rate(self):
        with pytest.raises(TransferValidationError, match="cannot be greater than"):
            calculate_international_transfer_amount_with_markup(100, 80, 85)

    def test_with_markup_messages_per_argument(self):
        with pytest.raises(TransferValidationError, match="Source amount"):
            calculate_international_transfer_amount_with_markup(0, 80, 1)
        with pytest.raises(TransferValidationError, match="Base exchange rate"):
            calculate_international_transfer_amount_with_markup(1, 0, 0)
        with pytest.raises(TransferValidationError, match="non-negative"):
            calculate_international_transfer_amount_with_markup(1, 80, -1)

    def test_with_markup_value(self):
        assert calculate_international_transfer_amount_with_markup("10", "1.5", "0.25") == Decimal("17.50")

    def test_destination_amount(self):
        assert calculate_destination_amount(100, 80, 2) == Decimal("8200")

    def test_destination_amount_rejects_fee_above_rate(self):
        with pytest.raises(TransferValidationError, match="cannot exceed"):
            calculate_destination_amount(100, 80, 85)

    def test_destination_amount_rejects_negative(self):
        with pytest.raises(TransferValidationError, match="must be positive"):
            calculate_destination_amount(-1, 80, 1)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            calculate_destination_amount("abc", 80, 1)

    def test_effective_rate(self):
        assert get_effective_exchange_rate("83", "0.5") == Decimal("83.5")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
