"""
Module: stock_kernel.models.ledger
Responsibility: ORM persistence for the append-only stock ledger -- the sole
    source of truth for where units are and what they cost.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    L1 -- Append-only: rows are never updated or deleted (ORM listeners in
          db/immutability.py).
    L2 -- quantity is a non-zero integer whose sign matches the movement
          type's direction (MOVEMENT_DIRECTIONS, checked by LedgerService).
    L3 -- total_cost == quantity * unit_cost (set by LedgerService).
    L4 -- id is a commit-ordered integer; FIFO ties within a batch/location
          are broken by the first entry id.

Failure modes:
    - ImmutabilityViolationError on any UPDATE or DELETE via the ORM.
    - IntegrityError on unknown batch_id/location_id (foreign keys).

Audit relevance:
    Every on-hand quantity, reservation availability, and COGS figure is a
    sum over these rows.  transfer_line_id and consumption_event_id link each
    movement back to the business event that produced it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import AutoIncrementBigInt, Base, UUIDString


class MovementType(str, Enum):
    """Closed set of ledger movement kinds."""

    INITIAL_RECEIPT = "initial_receipt"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    ADJUSTMENT_ADD = "adjustment_add"
    ADJUSTMENT_REMOVE = "adjustment_remove"
    RECONCILIATION = "reconciliation"
    ASSEMBLY_CONSUMPTION = "assembly_consumption"
    ASSEMBLY_OUTPUT = "assembly_output"
    BATCH_SPLIT_OUT = "batch_split_out"
    BATCH_SPLIT_IN = "batch_split_in"


class MovementDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    EITHER = "either"


MOVEMENT_DIRECTIONS: dict[MovementType, MovementDirection] = {
    MovementType.INITIAL_RECEIPT: MovementDirection.INBOUND,
    MovementType.TRANSFER_OUT: MovementDirection.OUTBOUND,
    MovementType.TRANSFER_IN: MovementDirection.INBOUND,
    MovementType.ADJUSTMENT_ADD: MovementDirection.INBOUND,
    MovementType.ADJUSTMENT_REMOVE: MovementDirection.OUTBOUND,
    MovementType.RECONCILIATION: MovementDirection.EITHER,
    MovementType.ASSEMBLY_CONSUMPTION: MovementDirection.OUTBOUND,
    MovementType.ASSEMBLY_OUTPUT: MovementDirection.INBOUND,
    MovementType.BATCH_SPLIT_OUT: MovementDirection.OUTBOUND,
    MovementType.BATCH_SPLIT_IN: MovementDirection.INBOUND,
}

# Outbound movements whose value is recognized as cost of goods.
COGS_MOVEMENT_TYPES: frozenset[MovementType] = frozenset({
    MovementType.TRANSFER_OUT,
    MovementType.ADJUSTMENT_REMOVE,
    MovementType.RECONCILIATION,
})


def sign_matches_direction(movement_type: MovementType, quantity: int) -> bool:
    """True if quantity's sign is allowed for movement_type.  Zero never is."""
    if quantity == 0:
        return False
    direction = MOVEMENT_DIRECTIONS[MovementType(movement_type)]
    if direction is MovementDirection.INBOUND:
        return quantity > 0
    if direction is MovementDirection.OUTBOUND:
        return quantity < 0
    return True


class StockLedgerEntry(Base):
    """
    One immutable movement of units of a batch at a location.

    Contract:
        Rows are created only by LedgerService.append / append_many.

    Guarantees:
        - id increases in commit order.
        - (batch_id, location_id) index supports position derivation.

    Non-goals:
        - Does NOT carry a running balance.  Balances are derived.
    """

    __tablename__ = "stock_ledger_entries"

    __table_args__ = (
        Index("idx_ledger_batch_location", "batch_id", "location_id"),
        Index("idx_ledger_location", "location_id"),
        Index("idx_ledger_movement_created", "movement_type", "created_at"),
        Index("idx_ledger_consumption_event", "consumption_event_id"),
    )

    # INVARIANT L4
    id: Mapped[int] = mapped_column(
        AutoIncrementBigInt,
        primary_key=True,
        autoincrement=True,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    # INVARIANT L2
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(String(30), nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # INVARIANT L3
    total_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    transfer_plan_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_plans.id"),
        nullable=True,
    )

    transfer_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_lines.id"),
        nullable=True,
    )

    consumption_event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("consumption_events.id"),
        nullable=True,
    )

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def is_inbound(self) -> bool:
        return self.quantity > 0

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry #{self.id} {self.movement_type} "
            f"batch={self.batch_id} loc={self.location_id} qty={self.quantity}>"
        )
