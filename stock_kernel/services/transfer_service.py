"""
TransferService -- draft, book, advance and cancel transfer plans.

Responsibility:
    Manages the plan lifecycle.  A draft plan reserves stock (advisory, via
    ReservationSelector).  Booking converts every line into a transfer_out at
    the source and a transfer_in at the destination, atomically.

Architecture position:
    Kernel > Services.  Composes LedgerService.

Invariants enforced:
    - Only draft plans accept lines, can be booked, or can be cancelled.
    - Booking re-checks each line against the net on-hand position after
      the batch row lock is taken.  Other drafts' reservations are not
      subtracted: they are advisory, and whichever plan books first wins.
    - Booking is all-or-nothing: if any line fails, no entries are written
      and the plan stays draft.
    - Post-booking statuses (in-transit, delivered, completed) are logistics
      only and never touch the ledger.

Failure modes:
    - TransferPlanNotFoundError, TransferPlanStateError.
    - InsufficientStock at booking ("only N units now available").
    - InvalidMovement for non-positive line quantities or identical
      source/destination.

Audit relevance:
    Booked lines record the ids of the ledger entries they produced, and
    those entries carry transfer_plan_id / transfer_line_id back.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import LedgerEntrySpec
from stock_kernel.exceptions import (
    BatchNotFoundError,
    InvalidMovement,
    LocationNotFoundError,
    StockLedgerError,
    TransferPlanError,
    TransferPlanNotFoundError,
    TransferPlanStateError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch
from stock_kernel.models.ledger import MovementType
from stock_kernel.models.location import Location
from stock_kernel.models.transfer import (
    LOGISTICS_TRANSITIONS,
    TransferLine,
    TransferPlan,
    TransferStatus,
)
from stock_kernel.selectors.reservation_selector import ReservationSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import LedgerService

logger = get_logger("services.transfer")


class TransferService(BaseService[TransferPlan]):
    """
    Transfer plan lifecycle.

    Contract:
        draft -> booked -> in-transit -> delivered -> completed, with
        draft -> cancelled as the only exit before booking.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        ledger: LedgerService | None = None,
    ):
        super().__init__(session, clock, actor_id)
        self.ledger = ledger or LedgerService(session, self.clock, actor_id)

    def draft(
        self,
        source_location_id: UUID,
        destination_location_id: UUID,
        note: str | None = None,
    ) -> UUID:
        """Create an empty draft plan.  Returns its id."""
        if source_location_id == destination_location_id:
            raise InvalidMovement(
                "transfer source and destination must differ",
                location_id=str(source_location_id),
            )
        for location_id in (source_location_id, destination_location_id):
            location = self.session.get(Location, location_id)
            if location is None or not location.is_active:
                raise LocationNotFoundError(str(location_id))

        plan = TransferPlan(
            source_location_id=source_location_id,
            destination_location_id=destination_location_id,
            status=TransferStatus.DRAFT.value,
            note=note,
            created_by_id=self.actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(plan)
        self.session.flush()

        logger.info(
            "transfer_plan_drafted",
            extra={
                "plan_id": str(plan.id),
                "source_location_id": str(source_location_id),
                "destination_location_id": str(destination_location_id),
            },
        )
        return plan.id

    def add_line(self, plan_id: UUID, batch_id: UUID, quantity: int) -> UUID:
        """
        Add a batch quantity to a draft plan.

        The line reserves stock immediately.  Over-reservation is allowed
        and logged; booking decides who gets the units.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidMovement(
                f"transfer line quantity must be a positive whole number, got {quantity!r}",
                quantity=quantity,
            )
        plan = self._get_plan(plan_id)
        if plan.status != TransferStatus.DRAFT:
            raise TransferPlanStateError(str(plan_id), str(plan.status), "add a line to")
        if self.session.get(Batch, batch_id) is None:
            raise BatchNotFoundError(str(batch_id))

        next_seq = (
            self.session.scalar(
                select(func.max(TransferLine.line_seq)).where(TransferLine.plan_id == plan_id)
            )
            or 0
        ) + 1
        line = TransferLine(
            plan=plan,
            line_seq=next_seq,
            batch_id=batch_id,
            quantity=quantity,
            created_by_id=self.actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(line)
        self.session.flush()

        available = ReservationSelector(self.session).available_quantity(
            batch_id, plan.source_location_id
        )
        if available == 0:
            logger.warning(
                "transfer_line_overcommits",
                extra={
                    "plan_id": str(plan_id),
                    "batch_id": str(batch_id),
                    "quantity": quantity,
                },
            )
        logger.info(
            "transfer_line_added",
            extra={
                "plan_id": str(plan_id),
                "line_id": str(line.id),
                "batch_id": str(batch_id),
                "quantity": quantity,
            },
        )
        return line.id

    def book(self, plan_id: UUID) -> list[int]:
        """
        Book a draft plan into the ledger.

        Returns:
            The ids of the appended entries (out, in per line, in line order).

        Raises:
            InsufficientStock: a line exceeds what is on hand at the source
                once the batch lock is held.
        """
        plan = self._get_plan(plan_id, for_update=True)
        if plan.status != TransferStatus.DRAFT:
            raise TransferPlanStateError(str(plan_id), str(plan.status), "book")
        lines = list(
            self.session.scalars(
                select(TransferLine)
                .where(TransferLine.plan_id == plan_id)
                .order_by(TransferLine.line_seq)
            )
        )
        if not lines:
            raise TransferPlanError(f"Transfer plan {plan_id} has no lines to book")

        reason = plan.note or f"transfer plan {plan_id}"
        try:
            with self.session.begin_nested():
                self.ledger.lock_batches([line.batch_id for line in lines])
                specs = []
                for line in lines:
                    specs.append(
                        LedgerEntrySpec(
                            batch_id=line.batch_id,
                            location_id=plan.source_location_id,
                            quantity=-line.quantity,
                            movement_type=MovementType.TRANSFER_OUT.value,
                            reason=reason,
                            transfer_plan_id=plan.id,
                            transfer_line_id=line.id,
                        )
                    )
                    specs.append(
                        LedgerEntrySpec(
                            batch_id=line.batch_id,
                            location_id=plan.destination_location_id,
                            quantity=line.quantity,
                            movement_type=MovementType.TRANSFER_IN.value,
                            reason=reason,
                            transfer_plan_id=plan.id,
                            transfer_line_id=line.id,
                        )
                    )
                entry_ids = self.ledger.append_many(specs)

                for i, line in enumerate(lines):
                    line.out_entry_id = entry_ids[2 * i]
                    line.in_entry_id = entry_ids[2 * i + 1]
                now = self.clock.now()
                plan.status = TransferStatus.BOOKED.value
                plan.booked_at = now
                plan.status_changed_at = now
                self.session.flush()
        except StockLedgerError as exc:
            logger.warning(
                "transfer_booking_rejected",
                extra={"plan_id": str(plan_id), "error_code": exc.code},
            )
            raise

        logger.info(
            "transfer_plan_booked",
            extra={
                "plan_id": str(plan_id),
                "line_count": len(lines),
                "quantity": sum(line.quantity for line in lines),
            },
        )
        return entry_ids

    def advance(self, plan_id: UUID, status: TransferStatus | str) -> None:
        """
        Move a booked plan along its logistics path.

        Raises:
            TransferPlanStateError: transition not allowed from the current status.
        """
        try:
            target = TransferStatus(status)
        except ValueError:
            raise TransferPlanStateError(str(plan_id), str(status), "advance") from None

        plan = self._get_plan(plan_id, for_update=True)
        current = TransferStatus(plan.status)
        if target not in LOGISTICS_TRANSITIONS.get(current, frozenset()):
            raise TransferPlanStateError(str(plan_id), current.value, f"advance to {target.value}")

        plan.status = target.value
        plan.status_changed_at = self.clock.now()
        self.session.flush()
        logger.info(
            "transfer_plan_advanced",
            extra={"plan_id": str(plan_id), "from_status": current.value, "status": target.value},
        )

    def cancel(self, plan_id: UUID) -> None:
        """
        Cancel a draft plan, releasing its reservation.

        Booked plans cannot be cancelled; reverse them with offsetting
        adjustments instead.
        """
        plan = self._get_plan(plan_id, for_update=True)
        if plan.status != TransferStatus.DRAFT:
            raise TransferPlanStateError(str(plan_id), str(plan.status), "cancel")

        plan.status = TransferStatus.CANCELLED.value
        plan.status_changed_at = self.clock.now()
        self.session.flush()
        logger.info("transfer_plan_cancelled", extra={"plan_id": str(plan_id)})

    def _get_plan(self, plan_id: UUID, for_update: bool = False) -> TransferPlan:
        stmt = select(TransferPlan).where(TransferPlan.id == plan_id)
        if for_update:
            stmt = stmt.with_for_update()
        plan = self.session.execute(stmt).scalar_one_or_none()
        if plan is None:
            raise TransferPlanNotFoundError(str(plan_id))
        return plan
