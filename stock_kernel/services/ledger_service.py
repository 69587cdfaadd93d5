"""
LedgerService -- the only writer of stock ledger entries.

Responsibility:
    Validates and appends movements to ``stock_ledger_entries``.  Every other
    write path (receipt, split, merge, transfer booking, attribution) goes
    through ``append`` / ``append_many``.

Architecture position:
    Kernel > Services -- imperative shell, owns ledger persistence.

Invariants enforced:
    - Non-zero integer quantity whose sign matches the movement type.
    - Batch and location must exist; the location must be active.
    - An outbound movement never drives its (batch, location) position -- and
      therefore the batch -- below zero.  The check runs after locking the
      batch row (SELECT ... FOR UPDATE on PostgreSQL; BEGIN IMMEDIATE
      serializes writers on SQLite), so concurrent outbound appends against
      one batch cannot both pass on a stale read.
    - An inbound movement other than initial_receipt never lifts the batch's
      net position above its original_quantity.  A paired transfer_out /
      transfer_in in one append_many passes because the outbound leg lands
      first.
    - total_cost == quantity * unit_cost.
    - append_many() is all-or-nothing (SAVEPOINT).

Failure modes:
    - InvalidMovement / BatchNotFoundError / LocationNotFoundError for
      structurally invalid requests, and InvalidMovement for an inbound
      movement that would exceed original_quantity.
    - InsufficientStock when an outbound quantity exceeds the position.

Audit relevance:
    Each append logs ``ledger_entry_appended`` with the entry id; each
    rejection logs ``ledger_append_rejected`` with its error code.
"""

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.costing import extend_cost
from stock_kernel.domain.dtos import LedgerEntrySpec
from stock_kernel.exceptions import (
    BatchNotFoundError,
    InsufficientStock,
    InvalidMovement,
    LocationNotFoundError,
    StockLedgerError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch
from stock_kernel.models.ledger import MovementType, StockLedgerEntry, sign_matches_direction
from stock_kernel.models.location import Location
from stock_kernel.selectors.position_selector import PositionSelector
from stock_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class LedgerService(BaseService[StockLedgerEntry]):
    """
    Append-only persistence for stock movements.

    Contract:
        append(spec) -> entry id.  The entry is flushed, not committed.

    Guarantees:
        - Rejected specs leave no rows behind.
        - Entry ids increase in append order.

    Non-goals:
        - Does NOT know about transfer plans, splits or attribution.  Callers
          compose those from appends.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        super().__init__(session, clock, actor_id)
        self._positions = PositionSelector(session)

    def append(self, spec: LedgerEntrySpec) -> int:
        """
        Validate and append one movement.

        Returns:
            The new entry's id.

        Raises:
            InvalidMovement: zero quantity, wrong sign, unknown movement type,
                or an inbound movement above the batch's original_quantity.
            BatchNotFoundError / LocationNotFoundError: missing references.
            InsufficientStock: outbound quantity exceeds the position.
        """
        try:
            with self.session.begin_nested():
                entry = self._append(spec)
        except StockLedgerError as exc:
            logger.warning(
                "ledger_append_rejected",
                extra={
                    "error_code": exc.code,
                    "batch_id": str(spec.batch_id),
                    "location_id": str(spec.location_id),
                    "quantity": spec.quantity,
                    "movement_type": str(spec.movement_type),
                },
            )
            raise
        return entry.id

    def append_many(self, specs: Sequence[LedgerEntrySpec]) -> list[int]:
        """
        Append a group of movements atomically.

        Later specs see the effect of earlier ones, so a transfer_out followed
        by a transfer_in of the same units validates correctly.
        """
        try:
            with self.session.begin_nested():
                ids = [self._append(spec).id for spec in specs]
        except StockLedgerError as exc:
            logger.warning(
                "ledger_append_many_rejected",
                extra={"error_code": exc.code, "spec_count": len(specs)},
            )
            raise
        return ids

    def lock_batch(self, batch_id: UUID) -> Batch:
        """
        Fetch a batch with a row lock held until the transaction ends.

        Raises:
            BatchNotFoundError: If the batch does not exist.
        """
        batch = self.session.execute(
            select(Batch).where(Batch.id == batch_id).with_for_update()
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def lock_batches(self, batch_ids: Sequence[UUID]) -> dict[UUID, Batch]:
        """Lock several batches in a stable order so lockers cannot deadlock."""
        return {bid: self.lock_batch(bid) for bid in sorted(set(batch_ids), key=str)}

    def _append(self, spec: LedgerEntrySpec) -> StockLedgerEntry:
        try:
            movement_type = MovementType(spec.movement_type)
        except ValueError:
            raise InvalidMovement(
                f"unknown movement type '{spec.movement_type}'",
                movement_type=str(spec.movement_type),
            ) from None

        if isinstance(spec.quantity, bool) or not isinstance(spec.quantity, int):
            raise InvalidMovement(
                f"quantity must be a whole number, got {spec.quantity!r}",
                quantity=spec.quantity,
            )
        if spec.quantity == 0:
            raise InvalidMovement("quantity must be non-zero", quantity=0)
        if not sign_matches_direction(movement_type, spec.quantity):
            raise InvalidMovement(
                f"quantity {spec.quantity} has the wrong sign for {movement_type.value}",
                quantity=spec.quantity,
                movement_type=movement_type.value,
            )

        batch = self.lock_batch(spec.batch_id)

        location = self.session.get(Location, spec.location_id)
        if location is None or not location.is_active:
            raise LocationNotFoundError(str(spec.location_id))

        if spec.quantity < 0:
            on_hand = self._positions.net_position(spec.batch_id, spec.location_id)
            if on_hand + spec.quantity < 0:
                raise InsufficientStock(
                    batch_id=str(spec.batch_id),
                    location_id=str(spec.location_id),
                    requested=-spec.quantity,
                    available=max(0, on_hand),
                )
        elif movement_type is not MovementType.INITIAL_RECEIPT:
            # Only a receipt creates units; other inbound movements return units.
            net = self._positions.net_position(spec.batch_id)
            if net + spec.quantity > batch.original_quantity:
                raise InvalidMovement(
                    f"{movement_type.value} of {spec.quantity} would raise batch "
                    f"{batch.batch_number} to {net + spec.quantity} units, "
                    f"above its original quantity of {batch.original_quantity}",
                    batch_id=str(spec.batch_id),
                    quantity=spec.quantity,
                    net_position=net,
                    original_quantity=batch.original_quantity,
                )

        unit_cost = Decimal(spec.unit_cost) if spec.unit_cost is not None else Decimal(batch.unit_cost)
        if unit_cost < 0:
            raise InvalidMovement("unit cost must be non-negative", unit_cost=str(unit_cost))

        entry = StockLedgerEntry(
            batch_id=spec.batch_id,
            location_id=spec.location_id,
            quantity=spec.quantity,
            movement_type=movement_type.value,
            unit_cost=unit_cost,
            total_cost=extend_cost(spec.quantity, unit_cost),
            reason=spec.reason,
            transfer_plan_id=spec.transfer_plan_id,
            transfer_line_id=spec.transfer_line_id,
            consumption_event_id=spec.consumption_event_id,
            actor_id=spec.actor_id or self.actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "entry_id": entry.id,
                "batch_id": str(entry.batch_id),
                "location_id": str(entry.location_id),
                "movement_type": movement_type.value,
                "quantity": entry.quantity,
                "unit_cost": str(unit_cost),
            },
        )
        return entry
