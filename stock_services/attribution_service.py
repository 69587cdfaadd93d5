"""
AttributionService -- FIFO attribution of sales and losses to batches.

Responsibility:
    Registers consumption events, plans FIFO draws with the pure
    ``stock_engines.fifo`` engine, and persists each draw as an outbound
    ledger entry plus an immutable AttributionDraw row carrying its COGS.

Architecture position:
    Services -- stateful orchestration over kernel services and engines.
    Imports stock_kernel and stock_engines; never imported by them.

Invariants enforced:
    - Idempotent: an event is attributed at most once, keyed by its
      external_ref.  Re-attributing returns the stored draws and writes
      nothing.
    - Oldest first: draws follow (batch received_date, first movement,
      first entry id).
    - COGS per draw == quantity * batch unit cost.
    - attributed + unattributed == event quantity.
    - All-or-nothing per event (SAVEPOINT), and every candidate batch row is
      locked before positions are re-read.

Failure modes:
    - InvalidMovement for a non-positive quantity or unknown event type.
    - ConsumptionEventConflictError when an external_ref is re-submitted
      with a different payload.
    - ConsumptionEventNotFoundError when process_event gets an unknown id.
    - A shortfall is NOT an error: it is returned as UnattributedShortfall
      and logged at WARNING.

Audit relevance:
    Every COGS figure traces to AttributionDraw rows, each of which
    references the ledger entry that removed the units.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_engines.fifo import DrawCandidate, plan_draws
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    AttributionDrawRecord,
    AttributionResult,
    LedgerEntrySpec,
    PositionFilter,
    UnattributedShortfall,
)
from stock_kernel.exceptions import (
    ConsumptionEventConflictError,
    ConsumptionEventNotFoundError,
    InvalidMovement,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.attribution import AttributionDraw, ConsumptionEvent, ConsumptionType
from stock_kernel.models.ledger import MovementType
from stock_kernel.selectors.position_selector import PositionSelector
from stock_kernel.services.ledger_service import LedgerService

logger = get_logger("services.attribution")

# Outbound movement type recorded for each kind of consumption.
MOVEMENT_FOR_CONSUMPTION: dict[ConsumptionType, MovementType] = {
    ConsumptionType.SALE: MovementType.RECONCILIATION,
    ConsumptionType.LOSS: MovementType.ADJUSTMENT_REMOVE,
}


def _parse_event_type(event_type: ConsumptionType | str) -> ConsumptionType:
    try:
        return ConsumptionType(event_type)
    except ValueError:
        raise InvalidMovement(
            f"unknown consumption type '{event_type}'",
            event_type=str(event_type),
        ) from None


class AttributionService:
    """
    Attribute consumption events to on-hand batches, oldest first.

    Contract:
        attribute() and process_event() flush but never commit.  The caller
        (or AttributionRunner) owns the transaction.

    Guarantees:
        - Calling attribute() twice with the same external_ref produces one
          set of draws and one set of ledger entries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        ledger: LedgerService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._ledger = ledger or LedgerService(session, self._clock, actor_id)
        self._positions = PositionSelector(session)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def attribute(
        self,
        sku: str,
        quantity: int,
        event_date: date,
        event_type: ConsumptionType | str = ConsumptionType.SALE,
        external_ref: str | None = None,
    ) -> AttributionResult:
        """
        Register (or find) a consumption event and attribute it.

        Returns:
            AttributionResult with draws, total COGS and any shortfall.
            already_processed is True when the event had been attributed
            before and nothing was written.
        """
        event = self._register(sku, quantity, event_date, event_type, external_ref)
        return self.process_event(event.id)

    def register_event(
        self,
        sku: str,
        quantity: int,
        event_date: date,
        event_type: ConsumptionType | str = ConsumptionType.SALE,
        external_ref: str | None = None,
    ) -> UUID:
        """Record an event for later attribution by AttributionRunner."""
        return self._register(sku, quantity, event_date, event_type, external_ref).id

    def process_event(self, event_id: UUID) -> AttributionResult:
        """
        Attribute a registered event.  No-op for an already processed event.
        """
        event = self._session.execute(
            select(ConsumptionEvent).where(ConsumptionEvent.id == event_id).with_for_update()
        ).scalar_one_or_none()
        if event is None:
            raise ConsumptionEventNotFoundError(str(event_id))

        if event.processed_at is not None:
            logger.info(
                "attribution_already_processed",
                extra={"event_id": str(event.id), "external_ref": event.external_ref},
            )
            return self._stored_result(event, already_processed=True)

        event_type = ConsumptionType(event.event_type)
        movement_type = MOVEMENT_FOR_CONSUMPTION[event_type]
        reason = f"{event_type.value} {event.external_ref}"

        with LogContext.bind(correlation_id=event.external_ref), self._session.begin_nested():
            candidates = self._locked_candidates(event.sku)
            plan = plan_draws(candidates, quantity=event.quantity)

            for seq, draw in enumerate(plan.draws, start=1):
                entry_id = self._ledger.append(
                    LedgerEntrySpec(
                        batch_id=draw.batch_id,
                        location_id=draw.location_id,
                        quantity=-draw.quantity,
                        movement_type=movement_type.value,
                        unit_cost=draw.unit_cost,
                        reason=reason,
                        consumption_event_id=event.id,
                        actor_id=self._actor_id,
                    )
                )
                self._session.add(
                    AttributionDraw(
                        event=event,
                        draw_seq=seq,
                        batch_id=draw.batch_id,
                        location_id=draw.location_id,
                        ledger_entry_id=entry_id,
                        quantity=draw.quantity,
                        unit_cost=draw.unit_cost,
                        cogs=draw.cogs,
                        event_date=event.event_date,
                        event_type=event_type.value,
                        created_by_id=self._actor_id,
                        created_at=self._clock.now(),
                    )
                )

            event.processed_at = self._clock.now()
            event.attributed_quantity = plan.attributed
            event.unattributed_quantity = plan.shortfall
            self._session.flush()

        result = self._stored_result(event, already_processed=False)

        if result.shortfall is not None:
            logger.warning(
                "attribution_shortfall",
                extra={
                    "event_id": str(event.id),
                    "external_ref": event.external_ref,
                    "sku": event.sku,
                    "requested": event.quantity,
                    "attributed": plan.attributed,
                    "shortfall": plan.shortfall,
                },
            )
        logger.info(
            "consumption_event_attributed",
            extra={
                "event_id": str(event.id),
                "external_ref": event.external_ref,
                "sku": event.sku,
                "event_type": event_type.value,
                "draw_count": len(plan.draws),
                "attributed": plan.attributed,
                "cogs": str(plan.total_cogs),
            },
        )
        return result

    def pending_event_ids(self, limit: int | None = None) -> list[UUID]:
        """Unprocessed events, oldest event_date first."""
        stmt = (
            select(ConsumptionEvent.id)
            .where(ConsumptionEvent.processed_at.is_(None))
            .order_by(ConsumptionEvent.event_date, ConsumptionEvent.created_at, ConsumptionEvent.external_ref)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _register(
        self,
        sku: str,
        quantity: int,
        event_date: date,
        event_type: ConsumptionType | str,
        external_ref: str | None,
    ) -> ConsumptionEvent:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidMovement(
                f"consumption quantity must be a positive whole number, got {quantity!r}",
                quantity=quantity,
            )
        kind = _parse_event_type(event_type)
        ref = external_ref or f"{kind.value}-{uuid4()}"

        existing = self._find_event(ref)
        if existing is not None:
            self._check_same_payload(existing, sku, quantity, event_date, kind)
            return existing

        event = ConsumptionEvent(
            external_ref=ref,
            sku=sku,
            quantity=quantity,
            event_date=event_date,
            event_type=kind.value,
            created_by_id=self._actor_id,
            created_at=self._clock.now(),
        )
        try:
            with self._session.begin_nested():
                self._session.add(event)
                self._session.flush()
        except IntegrityError:
            # Registered concurrently under the same external_ref.
            existing = self._find_event(ref)
            if existing is None:
                raise
            self._check_same_payload(existing, sku, quantity, event_date, kind)
            return existing

        logger.info(
            "consumption_event_registered",
            extra={
                "event_id": str(event.id),
                "external_ref": ref,
                "sku": sku,
                "quantity": quantity,
                "event_type": kind.value,
            },
        )
        return event

    def _find_event(self, external_ref: str) -> ConsumptionEvent | None:
        return self._session.execute(
            select(ConsumptionEvent).where(ConsumptionEvent.external_ref == external_ref)
        ).scalar_one_or_none()

    @staticmethod
    def _check_same_payload(
        existing: ConsumptionEvent,
        sku: str,
        quantity: int,
        event_date: date,
        kind: ConsumptionType,
    ) -> None:
        for field, stored, submitted in (
            ("sku", existing.sku, sku),
            ("quantity", existing.quantity, quantity),
            ("event_date", existing.event_date, event_date),
            ("event_type", existing.event_type, kind.value),
        ):
            if stored != submitted:
                raise ConsumptionEventConflictError(existing.external_ref, field)

    def _locked_candidates(self, sku: str) -> list[DrawCandidate]:
        """
        Lock every batch with stock of ``sku`` and re-read its positions.

        The first read only discovers which batches to lock; the second,
        taken under the locks, is the one the plan uses.
        """
        discovered = self._positions.positions_for(PositionFilter(sku=sku))
        batches = self._ledger.lock_batches([p.batch_id for p in discovered])
        positions = self._positions.positions_for(PositionFilter(sku=sku))
        return [
            DrawCandidate.from_position(p, unit_cost=Decimal(batches[p.batch_id].unit_cost))
            for p in positions
            if p.batch_id in batches
        ]

    def _stored_result(self, event: ConsumptionEvent, already_processed: bool) -> AttributionResult:
        draws = self._session.scalars(
            select(AttributionDraw)
            .where(AttributionDraw.consumption_event_id == event.id)
            .order_by(AttributionDraw.draw_seq)
        )
        records = tuple(AttributionDrawRecord.from_model(d) for d in draws)
        attributed = sum(r.quantity for r in records)

        shortfall = None
        if attributed < event.quantity:
            shortfall = UnattributedShortfall(
                sku=event.sku,
                external_ref=event.external_ref,
                event_date=event.event_date,
                requested=event.quantity,
                attributed=attributed,
            )

        return AttributionResult(
            event_id=event.id,
            external_ref=event.external_ref,
            sku=event.sku,
            event_type=str(event.event_type),
            event_date=event.event_date,
            requested_quantity=event.quantity,
            draws=records,
            shortfall=shortfall,
            already_processed=already_processed,
        )
