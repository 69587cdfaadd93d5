"""Write services for the stock kernel.  All flush; none commit."""

from stock_kernel.services.base import BaseService
from stock_kernel.services.batch_service import BatchService
from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.location_service import LocationService
from stock_kernel.services.transfer_service import TransferService

__all__ = [
    "BaseService",
    "BatchService",
    "LedgerService",
    "LocationService",
    "TransferService",
]
