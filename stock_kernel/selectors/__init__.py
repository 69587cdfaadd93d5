"""Read-only selectors over the stock ledger."""

from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.selectors.ledger_selector import LedgerSelector
from stock_kernel.selectors.position_selector import PositionSelector
from stock_kernel.selectors.report_selector import ReportSelector
from stock_kernel.selectors.reservation_selector import ReservationSelector
from stock_kernel.selectors.transfer_selector import TransferSelector

__all__ = [
    "BaseSelector",
    "BatchSelector",
    "LedgerSelector",
    "PositionSelector",
    "ReportSelector",
    "ReservationSelector",
    "TransferSelector",
]
