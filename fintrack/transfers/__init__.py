"""International transfer calculators."""

from fintrack.transfers.calculator import (
    TransferValidationError,
    calculate_complete_transfer_breakdown,
    calculate_destination_amount,
    calculate_international_transfer_amount,
    calculate_international_transfer_amount_with_markup,
    get_effective_exchange_rate,
)

__all__ = [
    "TransferValidationError",
    "calculate_complete_transfer_breakdown",
    "calculate_destination_amount",
    "calculate_international_transfer_amount",
    "calculate_international_transfer_amount_with_markup",
    "get_effective_exchange_rate",
]
