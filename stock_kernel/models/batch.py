"""
Module: stock_kernel.models.batch
Responsibility: ORM persistence for batches (receipt-traceable lots of one SKU)
    and their logistics stage history.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    B1 -- original_quantity > 0 (enforced by BatchService at creation).
    B2 -- unit_cost >= 0 and frozen after creation.  Split/merge create NEW
          batches with re-derived cost instead of editing this one.
    B3 -- received_date drives FIFO ordering.  Split children inherit the
          parent's date; merged batches take the earliest input date.
    B4 -- Remaining quantity is NOT stored.  It is the sum of this batch's
          StockLedgerEntry rows.

Audit relevance:
    parent_batch_ids records split/merge provenance, so every derived batch
    can be traced back to the receipts that funded it.  Stage history is
    append-only.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import AutoIncrementBigInt, TrackedBase, UUIDString


class BatchStage(str, Enum):
    """
    Logistics stage of a batch.

    Contract: Nominally ordered -> factory -> inspected -> ready_to_ship ->
    in-transit -> warehouse -> amazon, but any transition is accepted and
    recorded.  Stage never gates ledger operations.
    """

    ORDERED = "ordered"
    FACTORY = "factory"
    INSPECTED = "inspected"
    READY_TO_SHIP = "ready_to_ship"
    IN_TRANSIT = "in-transit"
    WAREHOUSE = "warehouse"
    AMAZON = "amazon"


class Batch(TrackedBase):
    """
    A traceable lot of one product from one receipt (or a split/merge derivative).

    Guarantees:
        - batch_number is unique.
        - (sku, received_date) index supports FIFO candidate selection.

    Non-goals:
        - Does NOT store remaining or on-hand quantity.
    """

    __tablename__ = "batches"

    __table_args__ = (
        UniqueConstraint("batch_number", name="uq_batch_number"),
        Index("idx_batch_sku_received", "sku", "received_date"),
        Index("idx_batch_stage", "stage"),
    )

    batch_number: Mapped[str] = mapped_column(String(40), nullable=False)

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # INVARIANT B1
    original_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # INVARIANT B2: immutable after creation
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # INVARIANT B3
    received_date: Mapped[date] = mapped_column(Date, nullable=False)

    ordered_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    stage: Mapped[BatchStage] = mapped_column(
        String(20),
        default=BatchStage.ORDERED,
        nullable=False,
    )

    source_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    parent_batch_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    stage_history: Mapped[list["BatchStageHistory"]] = relationship(
        back_populates="batch",
        order_by="BatchStageHistory.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Batch {self.batch_number}: sku={self.sku} "
            f"qty={self.original_quantity} @ {self.unit_cost}>"
        )


class BatchStageHistory(TrackedBase):
    """Append-only record of a batch's stage transitions."""

    __tablename__ = "batch_stage_history"

    __table_args__ = (
        Index("idx_stage_history_batch", "batch_id"),
    )

    # Commit-ordered key so transitions replay in the order they were made.
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

    from_stage: Mapped[BatchStage | None] = mapped_column(String(20), nullable=True)

    stage: Mapped[BatchStage] = mapped_column(String(20), nullable=False)

    note: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    batch: Mapped[Batch] = relationship(back_populates="stage_history")

    def __repr__(self) -> str:
        return f"<BatchStageHistory {self.batch_id}: {self.from_stage} -> {self.stage}>"
