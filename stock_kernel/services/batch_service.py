"""
BatchService -- batch lifecycle: receipt, split, merge and stage changes.

Responsibility:
    Creates batches and moves their units between batches while keeping cost
    provenance intact.  Every unit movement is a ledger append; batches
    themselves never store quantities.

Architecture position:
    Kernel > Services.  Composes LedgerService, PositionSelector and
    ReservationSelector.

Invariants enforced:
    - Split conservation: net(source_after) + net(new) == net(source_before),
      and the new batch's unit cost equals the source's exactly.
    - Merge conservation: net(new) == sum(net(inputs)); the new unit cost is
      the quantity-weighted average of the inputs rounded half-up to cents.
    - FIFO date: split children inherit the source's received_date; a merged
      batch takes the earliest input received_date.
    - Reservations hold: a split only takes units no draft transfer plan has
      reserved, and a batch with draft reservations cannot be merged.
    - All-or-nothing: each operation runs in one SAVEPOINT.

Failure modes:
    - InvalidMovement: non-positive split quantity, unknown stage.
    - InsufficientStock: split quantity >= net or above the unreserved
      units; merge input with net <= 0 or with draft reservations.
    - EmptyMergeSet: fewer than two distinct batches to merge.
    - MixedProduct: merge inputs with different SKUs.

Audit relevance:
    parent_batch_ids on derived batches plus the paired batch_split_out /
    batch_split_in entries let an auditor trace any unit back to its receipt.
"""

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.costing import weighted_average_cost
from stock_kernel.domain.dtos import LedgerEntrySpec, PositionFilter, ReceiptSpec, StageHistoryRecord
from stock_kernel.exceptions import (
    BatchNotFoundError,
    EmptyMergeSet,
    InsufficientStock,
    InvalidMovement,
    MixedProduct,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.batch import Batch, BatchStage, BatchStageHistory
from stock_kernel.models.ledger import MovementType
from stock_kernel.selectors.position_selector import PositionSelector
from stock_kernel.selectors.reservation_selector import ReservationSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import LedgerService

logger = get_logger("services.batch")


def _parse_stage(stage: BatchStage | str) -> BatchStage:
    try:
        return BatchStage(stage)
    except ValueError:
        raise InvalidMovement(f"unknown batch stage '{stage}'", stage=str(stage)) from None


class BatchService(BaseService[Batch]):
    """
    Receipt, split, merge and stage transitions for batches.

    Contract:
        Methods flush but never commit.  Each returns the id of the batch it
        created (or None for stage changes).

    Non-goals:
        - Stage does not gate ledger operations; any transition is recorded.
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
        self._positions = PositionSelector(session)
        self._reservations = ReservationSelector(session)

    # ------------------------------------------------------------------
    # Receipt
    # ------------------------------------------------------------------

    def receive(self, spec: ReceiptSpec) -> UUID:
        """
        Create a batch and its initial_receipt entry.

        Raises:
            InvalidMovement: quantity <= 0 or negative unit cost.
            LocationNotFoundError: unknown or inactive location.
        """
        if isinstance(spec.quantity, bool) or not isinstance(spec.quantity, int) or spec.quantity <= 0:
            raise InvalidMovement(
                f"receipt quantity must be a positive whole number, got {spec.quantity!r}",
                quantity=spec.quantity,
            )
        unit_cost = Decimal(spec.unit_cost)
        if unit_cost < 0:
            raise InvalidMovement("unit cost must be non-negative", unit_cost=str(unit_cost))
        stage = _parse_stage(spec.stage)
        received_date = spec.received_date or self.clock.today()

        with self.session.begin_nested():
            batch = Batch(
                batch_number=spec.batch_number or self._generate_batch_number("B", received_date),
                sku=spec.sku,
                product_name=spec.product_name,
                original_quantity=spec.quantity,
                unit_cost=unit_cost,
                received_date=received_date,
                ordered_date=spec.ordered_date,
                stage=stage.value,
                source_reference=spec.source_reference,
                notes=spec.notes,
                created_by_id=spec.actor_id or self.actor_id,
                created_at=self.clock.now(),
            )
            self.session.add(batch)
            self.session.flush()

            self._record_stage(batch, None, stage, note="received")
            self.ledger.append(
                LedgerEntrySpec(
                    batch_id=batch.id,
                    location_id=spec.location_id,
                    quantity=spec.quantity,
                    movement_type=MovementType.INITIAL_RECEIPT.value,
                    unit_cost=unit_cost,
                    reason=spec.source_reference,
                    actor_id=spec.actor_id,
                )
            )

        logger.info(
            "batch_received",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch.batch_number,
                "sku": batch.sku,
                "quantity": spec.quantity,
                "unit_cost": str(unit_cost),
                "location_id": str(spec.location_id),
            },
        )
        return batch.id

    # ------------------------------------------------------------------
    # Split
    # ------------------------------------------------------------------

    def split(
        self,
        batch_id: UUID,
        quantity: int,
        destination_location_id: UUID | None = None,
        note: str | None = None,
    ) -> UUID:
        """
        Carve ``quantity`` units out of a batch into a new batch.

        Units are drawn from the batch's positions oldest first; when the
        destination already holds some of the batch, that position is drawn
        first.  Units reserved by draft transfer plans are left in place.
        Each draw is a batch_split_out on the source paired with a
        batch_split_in on the new batch at the same unit cost.

        Returns:
            The new batch's id.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidMovement(
                f"split quantity must be a positive whole number, got {quantity!r}",
                quantity=quantity,
            )

        with LogContext.bind(batch_id=str(batch_id)), self.session.begin_nested():
            source = self.ledger.lock_batch(batch_id)
            positions = self._positions.positions_for(PositionFilter(batch_id=batch_id))
            reserved = self._reservations.reserved_by_location(batch_id)
            free = {
                p.location_id: max(0, p.quantity - reserved.get(p.location_id, 0)) for p in positions
            }
            net = sum(p.quantity for p in positions)
            # A split leaves at least one unit on the source and never takes
            # units a draft transfer plan has reserved.
            allowed = min(net - 1, sum(free.values()))
            if quantity > allowed:
                raise InsufficientStock(
                    batch_id=str(batch_id),
                    location_id=None,
                    requested=quantity,
                    available=max(0, allowed),
                )

            if destination_location_id is not None:
                positions.sort(key=lambda p: p.location_id != destination_location_id)

            child = Batch(
                batch_number=self._child_batch_number(source.batch_number),
                sku=source.sku,
                product_name=source.product_name,
                original_quantity=quantity,
                unit_cost=source.unit_cost,
                received_date=source.received_date,
                ordered_date=source.ordered_date,
                stage=str(source.stage),
                source_reference=source.source_reference,
                parent_batch_ids=[str(source.id)],
                notes=note,
                created_by_id=self.actor_id,
                created_at=self.clock.now(),
            )
            self.session.add(child)
            self.session.flush()
            self._record_stage(child, None, BatchStage(source.stage), note=f"split from {source.batch_number}")

            reason = note or f"split {source.batch_number} -> {child.batch_number}"
            specs: list[LedgerEntrySpec] = []
            remaining = quantity
            for position in positions:
                if remaining == 0:
                    break
                take = min(remaining, free[position.location_id])
                if take == 0:
                    continue
                remaining -= take
                specs.append(
                    LedgerEntrySpec(
                        batch_id=source.id,
                        location_id=position.location_id,
                        quantity=-take,
                        movement_type=MovementType.BATCH_SPLIT_OUT.value,
                        unit_cost=source.unit_cost,
                        reason=reason,
                    )
                )
                specs.append(
                    LedgerEntrySpec(
                        batch_id=child.id,
                        location_id=destination_location_id or position.location_id,
                        quantity=take,
                        movement_type=MovementType.BATCH_SPLIT_IN.value,
                        unit_cost=source.unit_cost,
                        reason=reason,
                    )
                )
            self.ledger.append_many(specs)

        logger.info(
            "batch_split",
            extra={
                "source_batch_id": str(source.id),
                "new_batch_id": str(child.id),
                "quantity": quantity,
                "draw_count": len(specs) // 2,
            },
        )
        return child.id

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(
        self,
        batch_ids: Sequence[UUID],
        note: str | None = None,
        location_id: UUID | None = None,
    ) -> UUID:
        """
        Combine the on-hand units of several batches of one SKU into a new batch.

        Every input position is zeroed with a batch_split_out.  The new batch
        receives one batch_split_in per destination: all at ``location_id``
        when given, otherwise one per input location.

        Returns:
            The merged batch's id.
        """
        distinct_ids = list(dict.fromkeys(batch_ids))
        if len(distinct_ids) < 2:
            raise EmptyMergeSet(len(distinct_ids))

        with self.session.begin_nested():
            locked = self.ledger.lock_batches(distinct_ids)
            inputs = [locked[bid] for bid in distinct_ids]

            skus = {b.sku for b in inputs}
            if len(skus) > 1:
                raise MixedProduct(sorted(skus))

            positions_by_batch = {}
            layers = []
            for batch in inputs:
                positions = self._positions.positions_for(PositionFilter(batch_id=batch.id))
                net = sum(p.quantity for p in positions)
                if net <= 0:
                    raise InsufficientStock(
                        batch_id=str(batch.id),
                        location_id=None,
                        requested=1,
                        available=max(0, net),
                    )
                # Merging zeroes every input position, so no draft may hold its units.
                reserved = sum(self._reservations.reserved_by_location(batch.id).values())
                if reserved > 0:
                    raise InsufficientStock(
                        batch_id=str(batch.id),
                        location_id=None,
                        requested=net,
                        available=max(0, net - reserved),
                    )
                positions_by_batch[batch.id] = positions
                layers.append((net, Decimal(batch.unit_cost)))

            total = sum(q for q, _ in layers)
            unit_cost = weighted_average_cost(layers)
            oldest = min(inputs, key=lambda b: (b.received_date, b.batch_number))
            ordered_dates = [b.ordered_date for b in inputs if b.ordered_date is not None]

            merged = Batch(
                batch_number=self._generate_batch_number("M", oldest.received_date),
                sku=oldest.sku,
                product_name=oldest.product_name,
                original_quantity=total,
                unit_cost=unit_cost,
                received_date=oldest.received_date,
                ordered_date=min(ordered_dates) if ordered_dates else None,
                stage=str(oldest.stage),
                source_reference=oldest.source_reference,
                parent_batch_ids=[str(b.id) for b in inputs],
                notes=note,
                created_by_id=self.actor_id,
                created_at=self.clock.now(),
            )
            self.session.add(merged)
            self.session.flush()
            self._record_stage(
                merged, None, BatchStage(oldest.stage),
                note="merged from " + ", ".join(b.batch_number for b in inputs),
            )

            reason = note or f"merge into {merged.batch_number}"
            specs: list[LedgerEntrySpec] = []
            destinations: dict[UUID, int] = {}
            for batch in inputs:
                for position in positions_by_batch[batch.id]:
                    specs.append(
                        LedgerEntrySpec(
                            batch_id=batch.id,
                            location_id=position.location_id,
                            quantity=-position.quantity,
                            movement_type=MovementType.BATCH_SPLIT_OUT.value,
                            unit_cost=batch.unit_cost,
                            reason=reason,
                        )
                    )
                    target = location_id or position.location_id
                    destinations[target] = destinations.get(target, 0) + position.quantity

            for target, qty in destinations.items():
                specs.append(
                    LedgerEntrySpec(
                        batch_id=merged.id,
                        location_id=target,
                        quantity=qty,
                        movement_type=MovementType.BATCH_SPLIT_IN.value,
                        unit_cost=unit_cost,
                        reason=reason,
                    )
                )
            self.ledger.append_many(specs)

        logger.info(
            "batches_merged",
            extra={
                "new_batch_id": str(merged.id),
                "input_batch_ids": [str(b.id) for b in inputs],
                "quantity": total,
                "unit_cost": str(unit_cost),
            },
        )
        return merged.id

    # ------------------------------------------------------------------
    # Stage
    # ------------------------------------------------------------------

    def change_stage(
        self,
        batch_id: UUID,
        stage: BatchStage | str,
        note: str | None = None,
    ) -> StageHistoryRecord:
        """Record a stage transition.  Any transition is accepted."""
        new_stage = _parse_stage(stage)
        batch = self.session.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))

        previous = BatchStage(batch.stage)
        history = self._record_stage(batch, previous, new_stage, note=note)
        batch.stage = new_stage.value
        self.session.flush()

        logger.info(
            "batch_stage_changed",
            extra={
                "batch_id": str(batch_id),
                "from_stage": previous.value,
                "stage": new_stage.value,
            },
        )
        return StageHistoryRecord.from_model(history)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record_stage(
        self,
        batch: Batch,
        from_stage: BatchStage | None,
        stage: BatchStage,
        note: str | None = None,
    ) -> BatchStageHistory:
        history = BatchStageHistory(
            batch_id=batch.id,
            from_stage=from_stage.value if from_stage is not None else None,
            stage=stage.value,
            note=note,
            created_by_id=self.actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(history)
        self.session.flush()
        return history

    def _generate_batch_number(self, prefix: str, on: date) -> str:
        return f"{prefix}-{on:%Y%m%d}-{uuid4().hex[:6].upper()}"

    def _child_batch_number(self, parent_number: str) -> str:
        existing = self.session.scalar(
            select(func.count(Batch.id)).where(Batch.batch_number.like(f"{parent_number}-S%"))
        ) or 0
        return f"{parent_number}-S{existing + 1}"
