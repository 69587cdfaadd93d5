"""
Stock positions are derived from the ledger on read, never stored.
"""

from datetime import date
from decimal import Decimal

from stock_kernel.domain.dtos import PositionFilter
from stock_kernel.selectors.position_selector import PositionSelector


class TestPositionsFor:
    def test_position_after_receipt(self, stock, receive, locations):
        batch_id = receive(quantity=100, unit_cost="2.00")

        [position] = stock.positions_for(PositionFilter(batch_id=batch_id))

        assert position.location_id == locations["WH1"]
        assert position.location_code == "WH1"
        assert position.total_in == 100
        assert position.total_out == 0
        assert position.quantity == 100
        assert position.unit_cost == Decimal("2.00")
        assert position.total_value == Decimal("200.00")
        assert position.received_date == date(2024, 1, 1)

    def test_transfer_moves_quantity_between_locations(self, stock, receive, locations):
        batch_id = receive(quantity=100)
        stock.record_transfer_out(batch_id, locations["WH1"], 30)
        stock.record_transfer_in(batch_id, locations["FBA"], 30)

        by_location = {
            p.location_code: p for p in stock.positions_for(PositionFilter(batch_id=batch_id))
        }

        assert by_location["WH1"].quantity == 70
        assert by_location["WH1"].total_out == 30
        assert by_location["FBA"].quantity == 30

    def test_depleted_positions_hidden_by_default(self, stock, receive, locations):
        batch_id = receive(quantity=5)
        stock.record_adjustment(batch_id, locations["WH1"], -5, "count correction")

        assert stock.positions_for(PositionFilter(batch_id=batch_id)) == []

        [depleted] = stock.positions_for(PositionFilter(batch_id=batch_id, include_depleted=True))
        assert depleted.quantity == 0
        assert depleted.is_depleted
        assert depleted.total_in == 5 and depleted.total_out == 5

    def test_filter_by_sku_and_location(self, stock, receive, locations):
        receive(sku="SKU-A", location="WH1")
        receive(sku="SKU-B", location="WH1")
        receive(sku="SKU-A", location="FBA")

        assert {p.sku for p in stock.positions_for(PositionFilter(sku="SKU-A"))} == {"SKU-A"}
        assert len(stock.positions_for(PositionFilter(sku="SKU-A"))) == 2
        wh1 = stock.positions_for(PositionFilter(location_id=locations["WH1"]))
        assert {p.sku for p in wh1} == {"SKU-A", "SKU-B"}

    def test_positions_ordered_oldest_received_first(self, stock, receive):
        newer = receive(received_date=date(2024, 3, 1))
        older = receive(received_date=date(2024, 1, 15))

        ordered = [p.batch_id for p in stock.positions_for(PositionFilter(sku="SKU-1"))]

        assert ordered == [older, newer]

    def test_reading_positions_writes_nothing(self, session, stock, receive):
        receive()
        session.flush()

        stock.positions_for()
        stock.stock_positions()

        assert not session.new and not session.dirty


class TestNetPosition:
    def test_net_over_all_locations(self, session, stock, receive, locations):
        batch_id = receive(quantity=40)
        stock.record_transfer_out(batch_id, locations["WH1"], 15)
        stock.record_transfer_in(batch_id, locations["FBA"], 15)

        selector = PositionSelector(session)
        assert selector.net_position(batch_id) == 40
        assert selector.net_position(batch_id, locations["FBA"]) == 15
        assert selector.net_by_location(batch_id) == {locations["WH1"]: 25, locations["FBA"]: 15}

    def test_ledger_for_lists_movements_in_order(self, stock, receive, locations):
        batch_id = receive(quantity=10)
        stock.record_adjustment(batch_id, locations["WH1"], -3, "damaged")
        stock.record_adjustment(batch_id, locations["WH1"], 2, "found in recount")

        entries = stock.ledger_for(batch_id)

        assert [e.movement_type for e in entries] == [
            "initial_receipt",
            "adjustment_remove",
            "adjustment_add",
        ]
        assert sum(e.quantity for e in entries) == 9
