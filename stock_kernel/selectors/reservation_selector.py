"""
Module: stock_kernel.selectors.reservation_selector
Responsibility: Derive reservations (units promised by draft transfer plans)
    and the available quantity left after them.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only plans in status 'draft' reserve stock, keyed by
      (line batch, plan source location).
    - available = max(0, net - reserved).  Never negative, even when drafts
      jointly overcommit a position.
    - Reading reservations never writes to the ledger.

Audit relevance:
    Reservations are advisory.  The authoritative check happens when a plan
    is booked, under the batch row lock (TransferService.book).
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import Reservation
from stock_kernel.models.transfer import TransferLine, TransferPlan, TransferStatus
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.position_selector import PositionSelector


class ReservationSelector(BaseSelector[TransferLine]):
    """Read-only view of draft-plan reservations."""

    def _draft_lines(self):
        return (
            select(
                TransferLine.batch_id,
                TransferPlan.source_location_id,
                TransferLine.quantity,
                TransferPlan.id,
            )
            .join(TransferPlan, TransferPlan.id == TransferLine.plan_id)
            .where(TransferPlan.status == TransferStatus.DRAFT.value)
        )

    def reserved_quantity(self, batch_id: UUID, location_id: UUID) -> int:
        """Units of batch_id at location_id held by draft plans."""
        stmt = (
            select(func.coalesce(func.sum(TransferLine.quantity), 0))
            .join(TransferPlan, TransferPlan.id == TransferLine.plan_id)
            .where(
                TransferPlan.status == TransferStatus.DRAFT.value,
                TransferLine.batch_id == batch_id,
                TransferPlan.source_location_id == location_id,
            )
        )
        return int(self.session.scalar(stmt) or 0)

    def reserved_by_location(self, batch_id: UUID) -> dict[UUID, int]:
        """{source location: reserved} for one batch, over every draft plan."""
        stmt = (
            select(TransferPlan.source_location_id, func.sum(TransferLine.quantity))
            .join(TransferPlan, TransferPlan.id == TransferLine.plan_id)
            .where(
                TransferPlan.status == TransferStatus.DRAFT.value,
                TransferLine.batch_id == batch_id,
            )
            .group_by(TransferPlan.source_location_id)
        )
        return {location_id: int(qty) for location_id, qty in self.session.execute(stmt)}

    def available_quantity(self, batch_id: UUID, location_id: UUID) -> int:
        """max(0, net position - reserved)."""
        net = PositionSelector(self.session).net_position(batch_id, location_id)
        return max(0, net - self.reserved_quantity(batch_id, location_id))

    def reservations(self) -> list[Reservation]:
        """Every draft reservation, aggregated per (batch, source location)."""
        totals: dict[tuple[UUID, UUID], int] = defaultdict(int)
        plans: dict[tuple[UUID, UUID], list[UUID]] = defaultdict(list)
        for batch_id, location_id, quantity, plan_id in self.session.execute(self._draft_lines()):
            key = (batch_id, location_id)
            totals[key] += int(quantity)
            if plan_id not in plans[key]:
                plans[key].append(plan_id)

        return [
            Reservation(
                batch_id=batch_id,
                location_id=location_id,
                quantity=quantity,
                plan_ids=tuple(plans[(batch_id, location_id)]),
            )
            for (batch_id, location_id), quantity in totals.items()
        ]

    def reservation_map(self) -> dict[tuple[UUID, UUID], int]:
        """{(batch_id, location_id): reserved} for overlaying positions."""
        return {(r.batch_id, r.location_id): r.quantity for r in self.reservations()}
