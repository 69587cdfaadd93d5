"""
StockLedger -- the single entry point the surrounding application calls.

Responsibility:
    Wires the kernel services, selectors and the attribution service around
    one caller-owned Session, and exposes receipt, transfer, adjustment,
    split/merge, attribution, read and report operations under the names the
    receiving, transfer-planning and channel-sales code uses.

Architecture position:
    Services -- the outer seam.  Holds no state beyond its collaborators.

Invariants enforced:
    - Every mutation is delegated to LedgerService (directly or through
      BatchService / TransferService / AttributionService).  The facade never
      writes rows itself.
    - A direct transfer_out is checked against available quantity
      (on hand minus draft reservations) under the batch lock.

Failure modes:
    - Propagates the typed errors of stock_kernel.exceptions unchanged.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
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
    StageHistoryRecord,
    StockAvailability,
    StockPosition,
    TransferPlanInfo,
    UnattributedReport,
)
from stock_kernel.exceptions import InsufficientStock, InvalidMovement
from stock_kernel.models.attribution import ConsumptionType
from stock_kernel.models.batch import BatchStage
from stock_kernel.models.ledger import MovementType
from stock_kernel.models.transfer import TransferStatus
from stock_kernel.selectors import (
    BatchSelector,
    LedgerSelector,
    PositionSelector,
    ReportSelector,
    ReservationSelector,
    TransferSelector,
)
from stock_kernel.services import BatchService, LedgerService, TransferService
from stock_services.attribution_service import AttributionService


class StockLedger:
    """
    Inventory accounting facade bound to one Session.

    Contract:
        Methods flush; the caller commits (typically via session_scope).

    Non-goals:
        - Purchase orders, inspections and channel imports live outside and
          call in through these methods.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.actor_id = actor_id

        self.ledger = LedgerService(session, self.clock, actor_id)
        self.batches = BatchService(session, self.clock, actor_id, ledger=self.ledger)
        self.transfers = TransferService(session, self.clock, actor_id, ledger=self.ledger)
        self.attribution = AttributionService(session, self.clock, actor_id, ledger=self.ledger)

        self._positions = PositionSelector(session)
        self._reservations = ReservationSelector(session)
        self._entries = LedgerSelector(session)
        self._reports = ReportSelector(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_receipt(
        self,
        sku: str,
        product_name: str,
        location_id: UUID,
        quantity: int,
        unit_cost: Decimal,
        source_reference: str | None = None,
        received_date: date | None = None,
        stage: BatchStage | str = BatchStage.ORDERED,
    ) -> UUID:
        """Create a batch with its initial_receipt entry.  Returns the batch id."""
        return self.batches.receive(
            ReceiptSpec(
                sku=sku,
                product_name=product_name,
                location_id=location_id,
                quantity=quantity,
                unit_cost=Decimal(unit_cost),
                received_date=received_date,
                source_reference=source_reference,
                stage=BatchStage(stage).value,
                actor_id=self.actor_id,
            )
        )

    def record_transfer_out(
        self,
        batch_id: UUID,
        from_location_id: UUID,
        quantity: int,
        reason: str | None = None,
    ) -> int:
        """
        Remove units from a location outside any transfer plan.

        Draft reservations at the location are honoured: the quantity must
        fit in what is available, not merely on hand.

        Raises:
            InsufficientStock: quantity exceeds available units.
        """
        _require_positive(quantity)
        with self.session.begin_nested():
            self.ledger.lock_batch(batch_id)
            available = self._reservations.available_quantity(batch_id, from_location_id)
            if quantity > available:
                raise InsufficientStock(
                    batch_id=str(batch_id),
                    location_id=str(from_location_id),
                    requested=quantity,
                    available=available,
                )
            return self.ledger.append(
                LedgerEntrySpec(
                    batch_id=batch_id,
                    location_id=from_location_id,
                    quantity=-quantity,
                    movement_type=MovementType.TRANSFER_OUT.value,
                    reason=reason,
                    actor_id=self.actor_id,
                )
            )

    def record_transfer_in(
        self,
        batch_id: UUID,
        to_location_id: UUID,
        quantity: int,
        reason: str | None = None,
    ) -> int:
        _require_positive(quantity)
        return self.ledger.append(
            LedgerEntrySpec(
                batch_id=batch_id,
                location_id=to_location_id,
                quantity=quantity,
                movement_type=MovementType.TRANSFER_IN.value,
                reason=reason,
                actor_id=self.actor_id,
            )
        )

    def record_adjustment(
        self,
        batch_id: UUID,
        location_id: UUID,
        signed_quantity: int,
        reason: str,
    ) -> int:
        """
        Manual correction: positive adds (adjustment_add), negative removes
        (adjustment_remove).
        """
        if isinstance(signed_quantity, bool) or not isinstance(signed_quantity, int):
            raise InvalidMovement(
                f"adjustment quantity must be a whole number, got {signed_quantity!r}",
                quantity=signed_quantity,
            )
        movement_type = (
            MovementType.ADJUSTMENT_ADD if signed_quantity > 0 else MovementType.ADJUSTMENT_REMOVE
        )
        return self.ledger.append(
            LedgerEntrySpec(
                batch_id=batch_id,
                location_id=location_id,
                quantity=signed_quantity,
                movement_type=movement_type.value,
                reason=reason,
                actor_id=self.actor_id,
            )
        )

    def split(
        self,
        batch_id: UUID,
        quantity: int,
        destination_location_id: UUID | None = None,
        note: str | None = None,
    ) -> UUID:
        return self.batches.split(batch_id, quantity, destination_location_id, note=note)

    def merge(
        self,
        batch_ids: Sequence[UUID],
        note: str | None = None,
        location_id: UUID | None = None,
    ) -> UUID:
        return self.batches.merge(batch_ids, note=note, location_id=location_id)

    def attribute(
        self,
        sku: str,
        quantity: int,
        event_date: date,
        event_type: ConsumptionType | str = ConsumptionType.SALE,
        external_ref: str | None = None,
    ) -> AttributionResult:
        return self.attribution.attribute(sku, quantity, event_date, event_type, external_ref)

    def record_consumption(
        self,
        sku: str,
        quantity: int,
        event_date: date,
        event_type: ConsumptionType | str = ConsumptionType.SALE,
        external_ref: str | None = None,
    ) -> UUID:
        """Queue a sale or loss for the next attribution run."""
        return self.attribution.register_event(sku, quantity, event_date, event_type, external_ref)

    def change_stage(
        self,
        batch_id: UUID,
        stage: BatchStage | str,
        note: str | None = None,
    ) -> StageHistoryRecord:
        return self.batches.change_stage(batch_id, stage, note=note)

    # ------------------------------------------------------------------
    # Transfer plans
    # ------------------------------------------------------------------

    def draft_transfer(
        self,
        source_location_id: UUID,
        destination_location_id: UUID,
        note: str | None = None,
    ) -> UUID:
        return self.transfers.draft(source_location_id, destination_location_id, note=note)

    def add_transfer_line(self, plan_id: UUID, batch_id: UUID, quantity: int) -> UUID:
        return self.transfers.add_line(plan_id, batch_id, quantity)

    def book_transfer(self, plan_id: UUID) -> list[int]:
        return self.transfers.book(plan_id)

    def advance_transfer(self, plan_id: UUID, status: TransferStatus | str) -> None:
        self.transfers.advance(plan_id, status)

    def cancel_transfer(self, plan_id: UUID) -> None:
        self.transfers.cancel(plan_id)

    def get_transfer(self, plan_id: UUID) -> TransferPlanInfo:
        return TransferSelector(self.session).get_plan(plan_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def positions_for(self, position_filter: PositionFilter | None = None) -> list[StockPosition]:
        return self._positions.positions_for(position_filter)

    def available_quantity(self, batch_id: UUID, location_id: UUID) -> int:
        return self._reservations.available_quantity(batch_id, location_id)

    def reserved_quantity(self, batch_id: UUID, location_id: UUID) -> int:
        return self._reservations.reserved_quantity(batch_id, location_id)

    def ledger_for(self, batch_id: UUID) -> list[LedgerEntryRecord]:
        return self._entries.entries_for_batch(batch_id)

    def stock_positions(self, position_filter: PositionFilter | None = None) -> list[StockAvailability]:
        """On-hand positions with draft reservations overlaid."""
        reserved = self._reservations.reservation_map()
        return [
            StockAvailability(
                position=p,
                reserved=reserved.get((p.batch_id, p.location_id), 0),
            )
            for p in self._positions.positions_for(position_filter)
        ]

    def stage_history(self, batch_id: UUID) -> list[StageHistoryRecord]:
        return BatchSelector(self.session).stage_history(batch_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def batch_fifo_report(self, sku: str | None = None) -> list[BatchFifoReportRow]:
        return self._reports.batch_fifo_report(sku)

    def unattributed_events(self) -> UnattributedReport:
        return self._reports.unattributed_events()

    def stock_by_product(self) -> list[ProductStock]:
        return self._reports.stock_by_product()

    def stock_by_location(self) -> list[LocationStock]:
        return self._reports.stock_by_location()

    def inventory_summary(self) -> InventorySummary:
        return self._reports.inventory_summary()

    def cogs_by_movement(self, start: date | datetime, end: date | datetime) -> list[CogsMovementRow]:
        return self._reports.cogs_by_movement(start, end)

    def product_cogs(self, start: date, end: date, sku: str | None = None) -> list[ProductCogsRow]:
        return self._reports.product_cogs(start, end, sku)


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidMovement(
            f"transfer quantity must be a positive whole number, got {quantity!r}",
            quantity=quantity,
        )
