"""
DTOs -- immutable data transfer objects for the stock kernel.

Responsibility:
    Defines the value objects that cross the service/selector boundary:
    write specs (LedgerEntrySpec, ReceiptSpec), derived read models
    (StockPosition, StockAvailability, Reservation), attribution results
    (AttributionDrawRecord, AttributionResult, UnattributedShortfall) and
    report rows.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods are
    boundary converters invoked only from selectors and services.

Invariants enforced:
    - Callers never receive ORM instances from selectors; they receive these.
    - Derived quantities (StockPosition.quantity, reserved, available) are
      computed from ledger rows on read and never persisted.

Failure modes:
    - ValueError from UnattributedShortfall if shortfall is not positive.

Audit relevance:
    AttributionResult is the auditable output of FIFO attribution: the
    per-batch draws behind a COGS figure plus any unattributed remainder.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from stock_kernel.models.attribution import AttributionDraw as AttributionDrawModel
    from stock_kernel.models.batch import BatchStageHistory as BatchStageHistoryModel
    from stock_kernel.models.ledger import StockLedgerEntry as StockLedgerEntryModel
    from stock_kernel.models.transfer import TransferPlan as TransferPlanModel


def _enum_value(value):
    """Plain string for a str-Enum member or an already-loaded string."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


# ---------------------------------------------------------------------------
# Write specs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntrySpec:
    """
    Request to append one movement to the ledger.

    Contract:
        quantity is signed: positive adds units at the location, negative
        removes them.  unit_cost defaults to the batch's unit cost when None.
        Validation (zero quantity, sign vs. movement type, existence, stock
        sufficiency) is LedgerService's job, not this object's.
    """

    batch_id: UUID
    location_id: UUID
    quantity: int
    movement_type: str
    unit_cost: Decimal | None = None
    reason: str | None = None
    transfer_plan_id: UUID | None = None
    transfer_line_id: UUID | None = None
    consumption_event_id: UUID | None = None
    actor_id: UUID | None = None


@dataclass(frozen=True)
class ReceiptSpec:
    """Receipt of a new batch at a location."""

    sku: str
    product_name: str
    location_id: UUID
    quantity: int
    unit_cost: Decimal
    received_date: date | None = None
    source_reference: str | None = None
    ordered_date: date | None = None
    batch_number: str | None = None
    stage: str = "ordered"
    notes: str | None = None
    actor_id: UUID | None = None


@dataclass(frozen=True)
class PositionFilter:
    """
    Selection criteria for derived positions.

    All criteria are ANDed.  Positions with net quantity <= 0 are excluded
    unless include_depleted is set.
    """

    batch_id: UUID | None = None
    location_id: UUID | None = None
    sku: str | None = None
    include_depleted: bool = False


# ---------------------------------------------------------------------------
# Ledger and position read models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntryRecord:
    """Read-only view of one ledger entry."""

    id: int
    batch_id: UUID
    location_id: UUID
    quantity: int
    movement_type: str
    unit_cost: Decimal
    total_cost: Decimal
    reason: str | None
    created_at: datetime
    transfer_plan_id: UUID | None = None
    transfer_line_id: UUID | None = None
    consumption_event_id: UUID | None = None
    actor_id: UUID | None = None

    @classmethod
    def from_model(cls, model: StockLedgerEntryModel) -> LedgerEntryRecord:
        return cls(
            id=model.id,
            batch_id=model.batch_id,
            location_id=model.location_id,
            quantity=model.quantity,
            movement_type=_enum_value(model.movement_type),
            unit_cost=Decimal(model.unit_cost),
            total_cost=Decimal(model.total_cost),
            reason=model.reason,
            created_at=model.created_at,
            transfer_plan_id=model.transfer_plan_id,
            transfer_line_id=model.transfer_line_id,
            consumption_event_id=model.consumption_event_id,
            actor_id=model.actor_id,
        )


@dataclass(frozen=True)
class StockPosition:
    """
    Derived (batch, location) aggregate over ledger entries.

    Contract:
        quantity == total_in - total_out.  unit_cost is the quantity-weighted
        cost of the inbound entries, rounded to cents.  total_value is
        quantity * unit_cost.

    Non-goals:
        - Never stored.  Recomputed on every read.
    """

    batch_id: UUID
    batch_number: str
    sku: str
    product_name: str
    location_id: UUID
    location_code: str
    location_name: str
    location_type: str
    total_in: int
    total_out: int
    quantity: int
    unit_cost: Decimal
    total_value: Decimal
    first_received_at: datetime
    last_movement_at: datetime
    first_entry_id: int
    received_date: date
    stage: str

    @property
    def is_depleted(self) -> bool:
        return self.quantity <= 0

    @property
    def fifo_key(self) -> tuple[date, datetime, int]:
        """Oldest-first ordering key for FIFO attribution."""
        return (self.received_date, self.first_received_at, self.first_entry_id)


@dataclass(frozen=True)
class Reservation:
    """Units of a batch promised by draft transfer plans leaving one location."""

    batch_id: UUID
    location_id: UUID
    quantity: int
    plan_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class StockAvailability:
    """A position overlaid with draft-plan reservations."""

    position: StockPosition
    reserved: int

    @property
    def available(self) -> int:
        return max(0, self.position.quantity - self.reserved)

    @property
    def batch_id(self) -> UUID:
        return self.position.batch_id

    @property
    def location_id(self) -> UUID:
        return self.position.location_id

    @property
    def quantity(self) -> int:
        return self.position.quantity


@dataclass(frozen=True)
class StageHistoryRecord:
    batch_id: UUID
    from_stage: str | None
    stage: str
    note: str | None
    created_at: datetime
    actor_id: UUID | None = None

    @classmethod
    def from_model(cls, model: BatchStageHistoryModel) -> StageHistoryRecord:
        return cls(
            batch_id=model.batch_id,
            from_stage=_enum_value(model.from_stage),
            stage=_enum_value(model.stage),
            note=model.note,
            created_at=model.created_at,
            actor_id=model.created_by_id,
        )


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttributionDrawRecord:
    """One persisted FIFO draw."""

    draw_seq: int
    batch_id: UUID
    location_id: UUID
    ledger_entry_id: int
    quantity: int
    unit_cost: Decimal
    cogs: Decimal

    @classmethod
    def from_model(cls, model: AttributionDrawModel) -> AttributionDrawRecord:
        return cls(
            draw_seq=model.draw_seq,
            batch_id=model.batch_id,
            location_id=model.location_id,
            ledger_entry_id=model.ledger_entry_id,
            quantity=model.quantity,
            unit_cost=Decimal(model.unit_cost),
            cogs=Decimal(model.cogs),
        )


@dataclass(frozen=True)
class UnattributedShortfall:
    """
    Units of a consumption event that no on-hand batch could cover.

    A data-quality signal, not an error: the covered portion is still
    attributed and the remainder is reported here.
    """

    sku: str
    external_ref: str
    event_date: date
    requested: int
    attributed: int

    def __post_init__(self) -> None:
        if self.requested - self.attributed <= 0:
            raise ValueError("UnattributedShortfall requires requested > attributed")

    @property
    def shortfall(self) -> int:
        return self.requested - self.attributed


@dataclass(frozen=True)
class AttributionResult:
    """
    Outcome of attributing one consumption event.

    Guarantees:
        - attributed_quantity + unattributed_quantity == requested_quantity.
        - already_processed is True when the stored draws were returned
          without writing anything.
    """

    event_id: UUID
    external_ref: str
    sku: str
    event_type: str
    event_date: date
    requested_quantity: int
    draws: tuple[AttributionDrawRecord, ...] = ()
    shortfall: UnattributedShortfall | None = None
    already_processed: bool = False

    @property
    def attributed_quantity(self) -> int:
        return sum(d.quantity for d in self.draws)

    @property
    def unattributed_quantity(self) -> int:
        return self.requested_quantity - self.attributed_quantity

    @property
    def total_cogs(self) -> Decimal:
        return sum((d.cogs for d in self.draws), Decimal("0"))

    @property
    def is_fully_attributed(self) -> bool:
        return self.shortfall is None


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchFifoReportRow:
    """FIFO depletion profile of one batch."""

    batch_id: UUID
    batch_number: str
    sku: str
    product_name: str
    received_date: date
    stage: str
    original_quantity: int
    unit_cost: Decimal
    quantity_sold: int
    quantity_lost: int
    quantity_remaining: int
    cogs_recognized: Decimal
    first_sale_date: date | None
    last_sale_date: date | None
    days_to_deplete: int | None


@dataclass(frozen=True)
class UnattributedEventRow:
    event_id: UUID
    external_ref: str
    sku: str
    event_type: str
    event_date: date
    quantity: int
    unattributed_quantity: int


@dataclass(frozen=True)
class UnattributedReport:
    events: tuple[UnattributedEventRow, ...] = ()

    @property
    def event_count(self) -> int:
        return len(self.events)

    @property
    def total_unattributed(self) -> int:
        return sum(e.unattributed_quantity for e in self.events)


@dataclass(frozen=True)
class ProductStock:
    """Stock of one SKU summed over batches and locations."""

    sku: str
    product_name: str
    total_quantity: int
    reserved_quantity: int
    available_quantity: int
    total_value: Decimal
    batch_count: int
    location_count: int


@dataclass(frozen=True)
class LocationStock:
    """Stock held at one location summed over batches."""

    location_id: UUID
    location_code: str
    location_name: str
    location_type: str
    total_quantity: int
    reserved_quantity: int
    available_quantity: int
    total_value: Decimal
    product_count: int


@dataclass(frozen=True)
class InventorySummary:
    total_units: int
    total_value: Decimal
    unique_products: int
    unique_locations: int
    by_product: tuple[ProductStock, ...] = field(default_factory=tuple)
    by_location: tuple[LocationStock, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CogsMovementRow:
    """Outbound value of one movement type over a period."""

    movement_type: str
    quantity: int
    value: Decimal
    entry_count: int


@dataclass(frozen=True)
class ProductCogsRow:
    """
    Attributed cost of goods for one SKU over a period.

    Sales and losses are kept apart: product_cost is what sold units cost,
    inventory_losses what lost units cost.  avg_cogs_per_unit spreads the
    total over units sold and is zero when nothing sold.
    """

    sku: str
    product_name: str
    period_start: date
    period_end: date
    units_sold: int
    product_cost: Decimal
    units_lost: int
    inventory_losses: Decimal
    total_cogs: Decimal
    avg_cogs_per_unit: Decimal


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferLineInfo:
    line_id: UUID
    line_seq: int
    batch_id: UUID
    quantity: int
    out_entry_id: int | None = None
    in_entry_id: int | None = None


@dataclass(frozen=True)
class TransferPlanInfo:
    """Snapshot of a transfer plan and its lines."""

    plan_id: UUID
    source_location_id: UUID
    destination_location_id: UUID
    status: str
    note: str | None
    booked_at: datetime | None
    lines: tuple[TransferLineInfo, ...] = ()

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @classmethod
    def from_model(cls, model: TransferPlanModel) -> TransferPlanInfo:
        return cls(
            plan_id=model.id,
            source_location_id=model.source_location_id,
            destination_location_id=model.destination_location_id,
            status=_enum_value(model.status),
            note=model.note,
            booked_at=model.booked_at,
            lines=tuple(
                TransferLineInfo(
                    line_id=line.id,
                    line_seq=line.line_seq,
                    batch_id=line.batch_id,
                    quantity=line.quantity,
                    out_entry_id=line.out_entry_id,
                    in_entry_id=line.in_entry_id,
                )
                for line in model.lines
            ),
        )
