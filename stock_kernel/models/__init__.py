"""Persistence models for the stock kernel."""

from stock_kernel.models.attribution import AttributionDraw, ConsumptionEvent, ConsumptionType
from stock_kernel.models.batch import Batch, BatchStage, BatchStageHistory
from stock_kernel.models.ledger import (
    COGS_MOVEMENT_TYPES,
    MOVEMENT_DIRECTIONS,
    MovementDirection,
    MovementType,
    StockLedgerEntry,
    sign_matches_direction,
)
from stock_kernel.models.location import Location, LocationType
from stock_kernel.models.transfer import (
    LOGISTICS_TRANSITIONS,
    TransferLine,
    TransferPlan,
    TransferStatus,
)

__all__ = [
    "AttributionDraw",
    "Batch",
    "BatchStage",
    "BatchStageHistory",
    "COGS_MOVEMENT_TYPES",
    "ConsumptionEvent",
    "ConsumptionType",
    "LOGISTICS_TRANSITIONS",
    "Location",
    "LocationType",
    "MOVEMENT_DIRECTIONS",
    "MovementDirection",
    "MovementType",
    "StockLedgerEntry",
    "TransferLine",
    "TransferPlan",
    "TransferStatus",
    "sign_matches_direction",
]
