"""
Pure domain layer.

Immutable DTOs, cost arithmetic and the clock abstraction.  No ORM
sessions, no database access, no I/O (except SystemClock).
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.costing import extend_cost, weighted_average_cost
from stock_kernel.domain.dtos import (
    AttributionDrawRecord,
    AttributionResult,
    BatchFifoReportRow,
    CogsMovementRow,
    InventorySummary,
    LedgerEntryRecord,
    LedgerEntrySpec,
    LocationStock,
    PositionFilter,
    ProductCogsRow,
    ProductStock,
    ReceiptSpec,
    Reservation,
    StageHistoryRecord,
    StockAvailability,
    StockPosition,
    TransferLineInfo,
    TransferPlanInfo,
    UnattributedEventRow,
    UnattributedReport,
    UnattributedShortfall,
)

__all__ = [
    "AttributionDrawRecord",
    "AttributionResult",
    "BatchFifoReportRow",
    "Clock",
    "CogsMovementRow",
    "DeterministicClock",
    "InventorySummary",
    "LedgerEntryRecord",
    "LedgerEntrySpec",
    "LocationStock",
    "PositionFilter",
    "ProductCogsRow",
    "ProductStock",
    "ReceiptSpec",
    "Reservation",
    "StageHistoryRecord",
    "StockAvailability",
    "StockPosition",
    "SystemClock",
    "TransferLineInfo",
    "TransferPlanInfo",
    "UnattributedEventRow",
    "UnattributedReport",
    "UnattributedShortfall",
    "extend_cost",
    "weighted_average_cost",
]
