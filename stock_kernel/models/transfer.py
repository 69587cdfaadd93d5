"""
Module: stock_kernel.models.transfer
Responsibility: ORM persistence for transfer plans and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A draft plan's lines are the only source of reservations.
    - Lines of a booked plan point at the transfer_out / transfer_in ledger
      entries that booking appended (out_entry_id / in_entry_id).
    - source_location_id != destination_location_id (TransferService).

Audit relevance:
    Booked lines tie ledger movements back to the plan that authorized them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString


class TransferStatus(str, Enum):
    """Lifecycle of a transfer plan."""

    DRAFT = "draft"
    BOOKED = "booked"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed status moves after booking.  Logistics only; no ledger effect.
LOGISTICS_TRANSITIONS: dict[TransferStatus, frozenset[TransferStatus]] = {
    TransferStatus.BOOKED: frozenset({TransferStatus.IN_TRANSIT, TransferStatus.DELIVERED}),
    TransferStatus.IN_TRANSIT: frozenset({TransferStatus.DELIVERED}),
    TransferStatus.DELIVERED: frozenset({TransferStatus.COMPLETED}),
}


class TransferPlan(TrackedBase):
    """A planned movement of one or more batches between two locations."""

    __tablename__ = "transfer_plans"

    __table_args__ = (
        Index("idx_transfer_plan_status_source", "status", "source_location_id"),
    )

    source_location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    destination_location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    status: Mapped[TransferStatus] = mapped_column(
        String(20),
        default=TransferStatus.DRAFT,
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    booked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    status_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    lines: Mapped[list["TransferLine"]] = relationship(
        back_populates="plan",
        order_by="TransferLine.line_seq",
        lazy="selectin",
    )

    @property
    def is_draft(self) -> bool:
        return self.status == TransferStatus.DRAFT

    def __repr__(self) -> str:
        return f"<TransferPlan {self.id}: {self.status}>"


class TransferLine(TrackedBase):
    """One batch quantity on a transfer plan."""

    __tablename__ = "transfer_lines"

    __table_args__ = (
        Index("idx_transfer_line_plan", "plan_id"),
        Index("idx_transfer_line_batch", "batch_id"),
    )

    plan_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_plans.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Set at booking.  Plain columns: the ledger table references this one.
    out_entry_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    in_entry_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    plan: Mapped[TransferPlan] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<TransferLine {self.plan_id}#{self.line_seq}: {self.batch_id} x{self.quantity}>"
