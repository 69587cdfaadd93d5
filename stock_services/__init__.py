"""
Module: stock_services
Responsibility:
    Orchestration over the stock kernel: the StockLedger facade used by the
    surrounding application, FIFO attribution of consumption events, and
    the backlog runner that drains unprocessed events.

Architecture position:
    Services -- imports stock_kernel and stock_engines.  Nothing in the
    kernel or engines imports from here.
"""

from stock_services.attribution_runner import (
    AttributionFailure,
    AttributionRunner,
    AttributionRunSummary,
)
from stock_services.attribution_service import MOVEMENT_FOR_CONSUMPTION, AttributionService
from stock_services.inventory import StockLedger

__all__ = [
    "AttributionFailure",
    "AttributionRunSummary",
    "AttributionRunner",
    "AttributionService",
    "MOVEMENT_FOR_CONSUMPTION",
    "StockLedger",
]
