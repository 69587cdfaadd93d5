"""
ORM-level immutability of ledger history.

Ledger entries, attribution draws and stage history are append-only.  A
batch's cost and identity fields are frozen; its stage is not.  A consumption
event may be marked processed once and is frozen afterwards.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.models.attribution import AttributionDraw, ConsumptionEvent
from stock_kernel.models.batch import Batch, BatchStageHistory
from stock_kernel.models.ledger import StockLedgerEntry


def _first_entry(session, batch_id) -> StockLedgerEntry:
    return session.scalars(
        select(StockLedgerEntry).where(StockLedgerEntry.batch_id == batch_id).order_by(StockLedgerEntry.id)
    ).first()


class TestLedgerEntryImmutability:
    def test_update_blocked(self, session, receive):
        entry = _first_entry(session, receive(quantity=10))

        entry.quantity = 11
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockLedgerEntry"

    def test_delete_blocked(self, session, receive):
        entry = _first_entry(session, receive(quantity=10))

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestBatchImmutability:
    def test_unit_cost_frozen(self, session, receive, captured_logs):
        batch = session.get(Batch, receive(unit_cost="2.00"))

        batch.unit_cost = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["field"] == "unit_cost"

    def test_received_date_frozen(self, session, receive):
        batch = session.get(Batch, receive())

        batch.received_date = date(2023, 1, 1)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_stage_and_notes_may_change(self, session, stock, receive):
        batch_id = receive()

        stock.change_stage(batch_id, "factory", note="picked up")
        session.get(Batch, batch_id).notes = "checked"
        session.flush()

        assert str(session.get(Batch, batch_id).stage) == "factory"

    def test_delete_blocked(self, session, receive):
        session.delete(session.get(Batch, receive()))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAttributionImmutability:
    @pytest.fixture
    def attributed(self, stock, receive):
        receive(quantity=10, unit_cost="5.00")
        return stock.attribute("SKU-1", 4, date(2024, 2, 1), external_ref="ORDER-1")

    def test_draw_update_blocked(self, session, attributed):
        draw = session.scalars(
            select(AttributionDraw).where(AttributionDraw.consumption_event_id == attributed.event_id)
        ).one()

        draw.cogs = Decimal("0")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_processed_event_frozen(self, session, attributed):
        event = session.get(ConsumptionEvent, attributed.event_id)

        event.quantity = 5
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_processed_event_delete_blocked(self, session, attributed):
        session.delete(session.get(ConsumptionEvent, attributed.event_id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_pending_event_may_be_processed(self, session, stock, receive):
        receive(quantity=10)
        event_id = stock.record_consumption("SKU-1", 2, date(2024, 2, 1), external_ref="ORDER-2")

        result = stock.attribution.process_event(event_id)

        assert result.attributed_quantity == 2
        assert session.get(ConsumptionEvent, event_id).is_processed


class TestStageHistoryImmutability:
    def test_update_blocked(self, session, stock, receive):
        batch_id = receive()
        stock.change_stage(batch_id, "factory")
        row = session.scalars(select(BatchStageHistory).where(BatchStageHistory.batch_id == batch_id)).first()

        row.note = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
