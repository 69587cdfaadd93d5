"""
Module: stock_kernel.models.attribution
Responsibility: ORM persistence for consumption events (sales and losses
    awaiting FIFO attribution) and the immutable draws that attributed them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - external_ref is unique: an event is attributed at most once.
    - AttributionDraw rows are immutable once flushed (db/immutability.py).
    - cogs == quantity * unit_cost on every draw.
    - attributed_quantity + unattributed_quantity == quantity once processed.

Audit relevance:
    Draws are the per-batch breakdown behind every COGS figure.  Each draw
    references the outbound ledger entry it produced.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import AutoIncrementBigInt, TrackedBase, UUIDString


class ConsumptionType(str, Enum):
    SALE = "sale"
    LOSS = "loss"


class ConsumptionEvent(TrackedBase):
    """
    An external sale or loss of units of one SKU.

    Contract:
        Created by AttributionService.register_event.  processed_at and the
        attributed/unattributed split are written exactly once, when the
        event is attributed.
    """

    __tablename__ = "consumption_events"

    __table_args__ = (
        UniqueConstraint("external_ref", name="uq_consumption_external_ref"),
        Index("idx_consumption_unprocessed", "processed_at", "event_date"),
        Index("idx_consumption_sku", "sku"),
    )

    external_ref: Mapped[str] = mapped_column(String(255), nullable=False)

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    event_date: Mapped[date] = mapped_column(Date, nullable=False)

    event_type: Mapped[ConsumptionType] = mapped_column(String(20), nullable=False)

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    attributed_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    unattributed_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    draws: Mapped[list["AttributionDraw"]] = relationship(
        back_populates="event",
        order_by="AttributionDraw.draw_seq",
        lazy="selectin",
    )

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None

    def __repr__(self) -> str:
        return f"<ConsumptionEvent {self.external_ref}: {self.event_type} {self.sku} x{self.quantity}>"


class AttributionDraw(TrackedBase):
    """One slice of a consumption event drawn from a (batch, location) position."""

    __tablename__ = "attribution_draws"

    __table_args__ = (
        UniqueConstraint("consumption_event_id", "draw_seq", name="uq_draw_event_seq"),
        Index("idx_draw_batch", "batch_id"),
    )

    consumption_event_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("consumption_events.id"),
        nullable=False,
    )

    draw_seq: Mapped[int] = mapped_column(Integer, nullable=False)

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

    ledger_entry_id: Mapped[int] = mapped_column(
        AutoIncrementBigInt,
        ForeignKey("stock_ledger_entries.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    cogs: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    event_date: Mapped[date] = mapped_column(Date, nullable=False)

    event_type: Mapped[ConsumptionType] = mapped_column(String(20), nullable=False)

    event: Mapped[ConsumptionEvent] = relationship(back_populates="draws")

    def __repr__(self) -> str:
        return (
            f"<AttributionDraw {self.consumption_event_id}#{self.draw_seq}: "
            f"batch={self.batch_id} x{self.quantity} cogs={self.cogs}>"
        )
