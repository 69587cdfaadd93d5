"""
Draft transfer plans reserve stock without touching the ledger; booking
re-checks on-hand stock under the batch lock.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.exceptions import (
    InsufficientStock,
    InvalidMovement,
    LocationNotFoundError,
    TransferPlanError,
    TransferPlanNotFoundError,
    TransferPlanStateError,
)
from stock_kernel.models.transfer import TransferStatus
from stock_kernel.selectors.ledger_selector import LedgerSelector
from stock_kernel.selectors.position_selector import PositionSelector
from stock_kernel.selectors.reservation_selector import ReservationSelector


class TestReservationScenario:
    def test_receive_draft_book(self, session, stock, receive, locations):
        """
        Receive 100 @ $2, draft 30 -> available 70 with net still 100;
        book -> net 70 and nothing reserved.
        """
        wh1, fba = locations["WH1"], locations["FBA"]
        batch_id = receive(quantity=100, unit_cost="2.00")
        positions = PositionSelector(session)

        assert stock.available_quantity(batch_id, wh1) == 100

        plan_id = stock.draft_transfer(wh1, fba, note="restock FBA")
        stock.add_transfer_line(plan_id, batch_id, 30)

        assert stock.available_quantity(batch_id, wh1) == 70
        assert stock.reserved_quantity(batch_id, wh1) == 30
        assert positions.net_position(batch_id, wh1) == 100

        stock.book_transfer(plan_id)

        assert positions.net_position(batch_id, wh1) == 70
        assert positions.net_position(batch_id, fba) == 30
        assert stock.reserved_quantity(batch_id, wh1) == 0
        assert stock.available_quantity(batch_id, wh1) == 70

    def test_available_never_negative(self, stock, receive, locations):
        wh1, fba = locations["WH1"], locations["FBA"]
        batch_id = receive(quantity=10)

        for _ in range(2):
            plan_id = stock.draft_transfer(wh1, fba)
            stock.add_transfer_line(plan_id, batch_id, 8)

        assert stock.reserved_quantity(batch_id, wh1) == 16
        assert stock.available_quantity(batch_id, wh1) == 0

    def test_reservation_keyed_by_source_location(self, stock, receive, locations):
        batch_id = receive(quantity=10, location="WH1")
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 4)

        assert stock.reserved_quantity(batch_id, locations["FBA"]) == 0

    def test_computing_availability_appends_nothing(self, session, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 4)
        before = LedgerSelector(session).entry_count()

        stock.available_quantity(batch_id, locations["WH1"])
        ReservationSelector(session).reservations()
        stock.stock_positions()

        assert LedgerSelector(session).entry_count() == before

    def test_stock_positions_overlay_reservations(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 3)

        [row] = stock.stock_positions()

        assert row.batch_id == batch_id
        assert row.quantity == 10
        assert row.reserved == 3
        assert row.available == 7

    def test_reservations_list_plans(self, session, stock, receive, locations):
        batch_id = receive(quantity=10)
        p1 = stock.draft_transfer(locations["WH1"], locations["FBA"])
        p2 = stock.draft_transfer(locations["WH1"], locations["FAC"])
        stock.add_transfer_line(p1, batch_id, 2)
        stock.add_transfer_line(p2, batch_id, 3)

        [reservation] = ReservationSelector(session).reservations()

        assert reservation.quantity == 5
        assert set(reservation.plan_ids) == {p1, p2}

    def test_overcommitting_line_is_logged(self, stock, receive, locations, captured_logs):
        batch_id = receive(quantity=5)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 5)

        assert any(r["message"] == "transfer_line_overcommits" for r in captured_logs())


class TestBooking:
    def test_booking_fails_when_stock_left_meanwhile(self, stock, receive, locations):
        wh1, fba = locations["WH1"], locations["FBA"]
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(wh1, fba)
        stock.add_transfer_line(plan_id, batch_id, 8)

        stock.record_adjustment(batch_id, wh1, -5, "water damage")

        with pytest.raises(InsufficientStock) as exc_info:
            stock.book_transfer(plan_id)

        assert exc_info.value.available == 5
        assert "only 5 units now available" in str(exc_info.value)
        assert stock.get_transfer(plan_id).status == TransferStatus.DRAFT.value

    def test_failed_booking_writes_nothing(self, session, stock, receive, locations):
        wh1, fba = locations["WH1"], locations["FBA"]
        a = receive(quantity=10)
        b = receive(quantity=2)
        plan_id = stock.draft_transfer(wh1, fba)
        stock.add_transfer_line(plan_id, a, 5)
        stock.add_transfer_line(plan_id, b, 3)
        before = LedgerSelector(session).entry_count()

        with pytest.raises(InsufficientStock):
            stock.book_transfer(plan_id)

        assert LedgerSelector(session).entry_count() == before
        assert PositionSelector(session).net_position(a, wh1) == 10

    def test_first_booking_wins_over_competing_draft(self, stock, receive, locations):
        wh1, fba, fac = locations["WH1"], locations["FBA"], locations["FAC"]
        batch_id = receive(quantity=10)
        first = stock.draft_transfer(wh1, fba)
        second = stock.draft_transfer(wh1, fac)
        stock.add_transfer_line(first, batch_id, 6)
        stock.add_transfer_line(second, batch_id, 6)

        stock.book_transfer(first)
        with pytest.raises(InsufficientStock):
            stock.book_transfer(second)

    def test_booked_lines_reference_entries(self, stock, receive, locations):
        batch_id = receive(quantity=10, unit_cost="4.00")
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 4)

        out_id, in_id = stock.book_transfer(plan_id)

        plan = stock.get_transfer(plan_id)
        assert plan.status == TransferStatus.BOOKED.value
        assert plan.booked_at is not None
        assert plan.lines[0].out_entry_id == out_id
        assert plan.lines[0].in_entry_id == in_id
        entries = {e.id: e for e in stock.ledger_for(batch_id)}
        assert entries[out_id].quantity == -4
        assert entries[out_id].unit_cost == Decimal("4.00")
        assert entries[in_id].transfer_plan_id == plan_id

    def test_empty_plan_cannot_be_booked(self, stock, locations):
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        with pytest.raises(TransferPlanError):
            stock.book_transfer(plan_id)

    def test_booked_plan_cannot_be_booked_again(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 1)
        stock.book_transfer(plan_id)

        with pytest.raises(TransferPlanStateError):
            stock.book_transfer(plan_id)
        with pytest.raises(TransferPlanStateError):
            stock.add_transfer_line(plan_id, batch_id, 1)


class TestPlanLifecycle:
    def test_logistics_path_does_not_touch_ledger(self, session, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 2)
        stock.book_transfer(plan_id)
        after_booking = LedgerSelector(session).entry_count()

        for status in ("in-transit", "delivered", "completed"):
            stock.advance_transfer(plan_id, status)

        assert stock.get_transfer(plan_id).status == TransferStatus.COMPLETED.value
        assert LedgerSelector(session).entry_count() == after_booking

    def test_cannot_skip_to_completed(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 2)
        stock.book_transfer(plan_id)

        with pytest.raises(TransferPlanStateError):
            stock.advance_transfer(plan_id, TransferStatus.COMPLETED)

    def test_draft_cannot_be_advanced(self, stock, locations):
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        with pytest.raises(TransferPlanStateError):
            stock.advance_transfer(plan_id, "in-transit")

    def test_cancel_releases_reservation(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 7)

        stock.cancel_transfer(plan_id)

        assert stock.available_quantity(batch_id, locations["WH1"]) == 10
        assert stock.get_transfer(plan_id).status == TransferStatus.CANCELLED.value

    def test_booked_plan_cannot_be_cancelled(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 1)
        stock.book_transfer(plan_id)

        with pytest.raises(TransferPlanStateError):
            stock.cancel_transfer(plan_id)

    def test_same_source_and_destination_rejected(self, stock, locations):
        with pytest.raises(InvalidMovement):
            stock.draft_transfer(locations["WH1"], locations["WH1"])

    def test_unknown_location_rejected(self, stock, locations):
        with pytest.raises(LocationNotFoundError):
            stock.draft_transfer(locations["WH1"], uuid4())

    def test_unknown_plan(self, stock):
        with pytest.raises(TransferPlanNotFoundError):
            stock.get_transfer(uuid4())

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_line_quantity_must_be_positive(self, stock, receive, locations, quantity):
        batch_id = receive()
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        with pytest.raises(InvalidMovement):
            stock.add_transfer_line(plan_id, batch_id, quantity)


class TestDirectTransfers:
    def test_transfer_out_honours_reservations(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        plan_id = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan_id, batch_id, 8)

        with pytest.raises(InsufficientStock) as exc_info:
            stock.record_transfer_out(batch_id, locations["WH1"], 3)
        assert exc_info.value.available == 2

        stock.record_transfer_out(batch_id, locations["WH1"], 2)
