"""
FIFO attribution of sales and losses to batches.

Covers ordering, COGS, shortfall reporting and idempotency by external_ref.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import PositionFilter
from stock_kernel.exceptions import (
    ConsumptionEventConflictError,
    ConsumptionEventNotFoundError,
    InvalidMovement,
)
from stock_kernel.models.attribution import AttributionDraw, ConsumptionEvent
from stock_kernel.selectors.ledger_selector import LedgerSelector
from stock_kernel.selectors.position_selector import PositionSelector


@pytest.fixture
def two_batches(receive):
    """B1: 10 @ 5 received day 1; B2: 10 @ 6 received day 2."""
    b1 = receive(quantity=10, unit_cost="5.00", received_date=date(2024, 1, 1))
    b2 = receive(quantity=10, unit_cost="6.00", received_date=date(2024, 1, 2))
    return b1, b2


class TestFifoOrdering:
    def test_sale_draws_oldest_batch_first(self, stock, two_batches):
        b1, b2 = two_batches

        result = stock.attribute("SKU-1", 15, date(2024, 2, 1), "sale", external_ref="ORDER-1")

        assert [(d.batch_id, d.quantity) for d in result.draws] == [(b1, 10), (b2, 5)]
        assert result.total_cogs == Decimal("80")
        assert [d.cogs for d in result.draws] == [Decimal("50"), Decimal("30")]
        assert result.is_fully_attributed
        assert result.shortfall is None

    def test_receipt_date_wins_over_recording_order(self, stock, receive):
        recorded_first = receive(quantity=5, unit_cost="9.00", received_date=date(2024, 3, 1))
        recorded_second = receive(quantity=5, unit_cost="1.00", received_date=date(2024, 1, 1))

        result = stock.attribute("SKU-1", 5, date(2024, 4, 1))

        assert [d.batch_id for d in result.draws] == [recorded_second]
        assert recorded_first not in {d.batch_id for d in result.draws}

    def test_split_child_keeps_parent_receipt_date(self, stock, receive):
        old = receive(quantity=10, unit_cost="2.00", received_date=date(2024, 1, 1))
        newer = receive(quantity=10, unit_cost="3.00", received_date=date(2024, 1, 20))
        child = stock.split(old, 4)

        result = stock.attribute("SKU-1", 10, date(2024, 2, 1))

        drawn = [d.batch_id for d in result.draws]
        assert newer not in drawn
        assert set(drawn) == {old, child}

    def test_merged_batch_competes_with_earliest_input_date(self, stock, receive):
        a = receive(quantity=5, unit_cost="4.00", received_date=date(2024, 1, 1))
        b = receive(quantity=5, unit_cost="4.00", received_date=date(2024, 3, 1))
        middle = receive(quantity=5, unit_cost="1.00", received_date=date(2024, 2, 1))
        merged = stock.merge([a, b])

        result = stock.attribute("SKU-1", 10, date(2024, 4, 1))

        assert [(d.batch_id, d.quantity) for d in result.draws] == [(merged, 10)]
        assert middle not in {d.batch_id for d in result.draws}

    def test_draws_span_locations(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        stock.record_transfer_out(batch_id, locations["WH1"], 4)
        stock.record_transfer_in(batch_id, locations["FBA"], 4)

        result = stock.attribute("SKU-1", 10, date(2024, 2, 1))

        assert sorted(d.quantity for d in result.draws) == [4, 6]
        assert stock.positions_for(PositionFilter(batch_id=batch_id)) == []

    def test_only_matching_sku_is_drawn(self, stock, receive):
        receive(sku="SKU-OTHER", quantity=50)
        mine = receive(sku="SKU-1", quantity=5)

        result = stock.attribute("SKU-1", 5, date(2024, 2, 1))

        assert [d.batch_id for d in result.draws] == [mine]


class TestLedgerEffects:
    def test_sale_appends_reconciliation_entries(self, session, stock, two_batches):
        result = stock.attribute("SKU-1", 15, date(2024, 2, 1), "sale")

        entries = LedgerSelector(session).entries_for_consumption_event(result.event_id)

        assert [e.movement_type for e in entries] == ["reconciliation", "reconciliation"]
        assert [e.quantity for e in entries] == [-10, -5]
        assert [d.ledger_entry_id for d in result.draws] == [e.id for e in entries]

    def test_loss_appends_adjustment_remove(self, session, stock, two_batches):
        result = stock.attribute("SKU-1", 3, date(2024, 2, 1), "loss", external_ref="LOSS-1")

        [entry] = LedgerSelector(session).entries_for_consumption_event(result.event_id)
        assert entry.movement_type == "adjustment_remove"
        assert entry.quantity == -3

    def test_positions_reduced(self, session, stock, two_batches):
        b1, b2 = two_batches
        stock.attribute("SKU-1", 15, date(2024, 2, 1))

        net = PositionSelector(session).net_position
        assert net(b1) == 0
        assert net(b2) == 5


class TestShortfall:
    def test_shortfall_reported_not_raised(self, session, stock, two_batches, captured_logs):
        result = stock.attribute("SKU-1", 25, date(2024, 2, 1), external_ref="ORDER-BIG")

        assert result.attributed_quantity == 20
        assert result.unattributed_quantity == 5
        assert result.shortfall is not None
        assert result.shortfall.shortfall == 5
        assert result.shortfall.external_ref == "ORDER-BIG"
        assert result.total_cogs == Decimal("110")

        event = session.get(ConsumptionEvent, result.event_id)
        assert event.unattributed_quantity == 5
        assert event.is_processed

        warnings = [r for r in captured_logs() if r["message"] == "attribution_shortfall"]
        assert warnings and warnings[0]["level"] == "WARNING"
        assert warnings[0]["shortfall"] == 5

    def test_no_stock_at_all(self, stock):
        result = stock.attribute("SKU-NONE", 3, date(2024, 2, 1))

        assert result.draws == ()
        assert result.unattributed_quantity == 3


class TestIdempotency:
    def test_rerun_does_not_draw_twice(self, session, stock, two_batches):
        first = stock.attribute("SKU-1", 15, date(2024, 2, 1), external_ref="ORDER-7")
        entries_after_first = LedgerSelector(session).entry_count()

        second = stock.attribute("SKU-1", 15, date(2024, 2, 1), external_ref="ORDER-7")

        assert second.already_processed
        assert not first.already_processed
        assert second.event_id == first.event_id
        assert second.draws == first.draws
        assert LedgerSelector(session).entry_count() == entries_after_first
        assert session.query(AttributionDraw).count() == 2

    def test_changed_payload_conflicts(self, stock, two_batches):
        stock.attribute("SKU-1", 2, date(2024, 2, 1), external_ref="ORDER-8")

        with pytest.raises(ConsumptionEventConflictError) as exc_info:
            stock.attribute("SKU-1", 3, date(2024, 2, 1), external_ref="ORDER-8")
        assert exc_info.value.field == "quantity"

    def test_generated_refs_are_distinct_events(self, session, stock, two_batches):
        first = stock.attribute("SKU-1", 1, date(2024, 2, 1))
        second = stock.attribute("SKU-1", 1, date(2024, 2, 1))

        assert first.event_id != second.event_id
        assert session.query(ConsumptionEvent).count() == 2


class TestValidation:
    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, stock, quantity):
        with pytest.raises(InvalidMovement):
            stock.attribute("SKU-1", quantity, date(2024, 2, 1))

    def test_unknown_event_type(self, stock):
        with pytest.raises(InvalidMovement):
            stock.attribute("SKU-1", 1, date(2024, 2, 1), "refund")

    def test_process_unknown_event(self, stock):
        missing = uuid4()
        with pytest.raises(ConsumptionEventNotFoundError) as exc_info:
            stock.attribution.process_event(missing)
        assert exc_info.value.code == "CONSUMPTION_EVENT_NOT_FOUND"
        assert exc_info.value.event_id == str(missing)

    def test_record_consumption_defers_attribution(self, session, stock, two_batches):
        event_id = stock.record_consumption("SKU-1", 4, date(2024, 2, 1), external_ref="ORDER-Q")

        assert not session.get(ConsumptionEvent, event_id).is_processed
        assert stock.attribution.pending_event_ids() == [event_id]
