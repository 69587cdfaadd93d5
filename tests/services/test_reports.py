"""Inventory and COGS reports."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest


@pytest.fixture
def depleted_history(stock, receive):
    """
    B1 10 @ 5 (Jan 1) is sold out on Jan 11.  B2 10 @ 6 (Jan 2) sells 2 and
    loses 1.
    """
    b1 = receive(quantity=10, unit_cost="5.00", received_date=date(2024, 1, 1))
    b2 = receive(quantity=10, unit_cost="6.00", received_date=date(2024, 1, 2))
    stock.attribute("SKU-1", 12, date(2024, 1, 11), "sale", external_ref="ORDER-1")
    stock.attribute("SKU-1", 1, date(2024, 1, 15), "loss", external_ref="DAMAGE-1")
    return b1, b2


class TestBatchFifoReport:
    def test_depletion_profile(self, stock, depleted_history):
        b1, b2 = depleted_history

        rows = {r.batch_id: r for r in stock.batch_fifo_report("SKU-1")}

        first = rows[b1]
        assert (first.quantity_sold, first.quantity_lost, first.quantity_remaining) == (10, 0, 0)
        assert first.cogs_recognized == Decimal("50.00")
        assert first.first_sale_date == first.last_sale_date == date(2024, 1, 11)
        assert first.days_to_deplete == 10

        second = rows[b2]
        assert (second.quantity_sold, second.quantity_lost, second.quantity_remaining) == (2, 1, 7)
        assert second.cogs_recognized == Decimal("18.00")
        assert second.days_to_deplete is None

    def test_oldest_batch_first(self, stock, depleted_history):
        b1, b2 = depleted_history
        assert [r.batch_id for r in stock.batch_fifo_report()] == [b1, b2]

    def test_sku_filter(self, stock, receive):
        receive(sku="SKU-A", quantity=1)
        receive(sku="SKU-B", quantity=1)

        assert {r.sku for r in stock.batch_fifo_report("SKU-B")} == {"SKU-B"}
        assert stock.batch_fifo_report("SKU-NONE") == []


class TestUnattributedEvents:
    def test_lists_only_short_events(self, stock, receive):
        receive(quantity=5)
        stock.attribute("SKU-1", 3, date(2024, 2, 1), external_ref="ORDER-OK")
        stock.attribute("SKU-1", 6, date(2024, 2, 2), external_ref="ORDER-SHORT")

        report = stock.unattributed_events()

        assert report.event_count == 1
        [row] = report.events
        assert row.external_ref == "ORDER-SHORT"
        assert row.quantity == 6
        assert row.unattributed_quantity == 4
        assert report.total_unattributed == 4

    def test_empty(self, stock):
        assert stock.unattributed_events().event_count == 0


class TestStockGroupings:
    @pytest.fixture
    def spread(self, stock, receive, locations):
        widget = receive(sku="SKU-1", quantity=100, unit_cost="2.00", location="WH1")
        receive(sku="SKU-2", quantity=10, unit_cost="7.50", location="FBA", product_name="Gadget")
        plan = stock.draft_transfer(locations["WH1"], locations["FBA"])
        stock.add_transfer_line(plan, widget, 30)
        return widget

    def test_stock_by_product(self, stock, spread):
        by_sku = {p.sku: p for p in stock.stock_by_product()}

        widget = by_sku["SKU-1"]
        assert widget.total_quantity == 100
        assert widget.reserved_quantity == 30
        assert widget.available_quantity == 70
        assert widget.total_value == Decimal("200")
        assert widget.batch_count == 1

        gadget = by_sku["SKU-2"]
        assert gadget.product_name == "Gadget"
        assert gadget.total_value == Decimal("75")
        assert gadget.reserved_quantity == 0

    def test_stock_by_location(self, stock, spread):
        rows = stock.stock_by_location()

        assert [r.location_code for r in rows] == ["FBA", "WH1"]
        fba, wh1 = rows
        assert fba.total_quantity == 10
        assert fba.location_type == "amazon_fba"
        assert wh1.reserved_quantity == 30
        assert wh1.available_quantity == 70

    def test_inventory_summary(self, stock, spread):
        summary = stock.inventory_summary()

        assert summary.total_units == 110
        assert summary.total_value == Decimal("275")
        assert summary.unique_products == 2
        assert summary.unique_locations == 2

    def test_depleted_positions_excluded(self, stock, receive):
        receive(quantity=3)
        stock.attribute("SKU-1", 3, date(2024, 2, 1))

        assert stock.stock_by_product() == []
        assert stock.inventory_summary().total_units == 0


class TestCogsByMovement:
    def test_outbound_value_per_movement_type(self, stock, receive, locations):
        batch_id = receive(quantity=20, unit_cost="3.00")
        stock.attribute("SKU-1", 5, date(2024, 1, 1), "sale")
        stock.attribute("SKU-1", 2, date(2024, 1, 1), "loss")
        stock.record_transfer_out(batch_id, locations["WH1"], 4)

        rows = {
            r.movement_type: r
            for r in stock.cogs_by_movement(date(2024, 1, 1), date(2024, 1, 2))
        }

        assert rows["reconciliation"].quantity == 5
        assert rows["reconciliation"].value == Decimal("15.00")
        assert rows["adjustment_remove"].value == Decimal("6.00")
        assert rows["transfer_out"].quantity == 4
        assert rows["transfer_out"].entry_count == 1

    def test_window_excludes_other_periods(self, stock, receive):
        receive(quantity=5)
        stock.attribute("SKU-1", 5, date(2024, 1, 1))

        rows = stock.cogs_by_movement(
            datetime(2024, 1, 2, tzinfo=timezone.utc),
            datetime(2024, 2, 1, tzinfo=timezone.utc),
        )

        assert all(r.quantity == 0 and r.value == Decimal("0") for r in rows)
        assert [r.movement_type for r in rows] == sorted(r.movement_type for r in rows)


class TestProductCogs:
    def test_sales_and_losses_kept_apart(self, stock, depleted_history):
        [row] = stock.product_cogs(date(2024, 1, 1), date(2024, 2, 1))

        assert (row.sku, row.product_name) == ("SKU-1", "Widget")
        # 10 @ 5.00 + 2 @ 6.00 sold, 1 @ 6.00 lost
        assert row.units_sold == 12
        assert row.product_cost == Decimal("62.00")
        assert row.units_lost == 1
        assert row.inventory_losses == Decimal("6.00")
        assert row.total_cogs == Decimal("68.00")
        assert row.avg_cogs_per_unit == Decimal("5.67")

    def test_period_end_is_exclusive(self, stock, depleted_history):
        [row] = stock.product_cogs(date(2024, 1, 1), date(2024, 1, 15))

        assert row.units_lost == 0
        assert row.total_cogs == Decimal("62.00")
        assert (row.period_start, row.period_end) == (date(2024, 1, 1), date(2024, 1, 15))
        assert stock.product_cogs(date(2024, 1, 12), date(2024, 1, 15)) == []

    def test_one_row_per_sku(self, stock, receive):
        receive(sku="SKU-A", quantity=5, unit_cost="2.00")
        receive(sku="SKU-B", quantity=5, unit_cost="3.00", product_name="Gadget")
        stock.attribute("SKU-A", 2, date(2024, 3, 1), external_ref="ORDER-A")
        stock.attribute("SKU-B", 1, date(2024, 3, 2), "loss", external_ref="DAMAGE-B")

        rows = stock.product_cogs(date(2024, 3, 1), date(2024, 4, 1))

        assert [r.sku for r in rows] == ["SKU-A", "SKU-B"]
        gadget = rows[1]
        assert gadget.units_sold == 0
        assert gadget.inventory_losses == Decimal("3.00")
        assert gadget.avg_cogs_per_unit == Decimal("0")

        [only_a] = stock.product_cogs(date(2024, 3, 1), date(2024, 4, 1), sku="SKU-A")
        assert only_a.product_cost == Decimal("4.00")
        assert only_a.avg_cogs_per_unit == Decimal("2.00")
