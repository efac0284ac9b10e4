"""
Unit Tests - Aggregation Engine
"""
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from sales_analytics.reconciliation.accumulator import Dimension, MetricAccumulator
from sales_analytics.reconciliation.engine import AggregationEngine, aggregate, filter_orders
from sales_analytics.reconciliation.fields import (
    LINE_ITEM_QUANTITY_FIELDS,
    LINE_ITEM_SELLING_PRICE_FIELDS,
    first_number,
)
from sales_analytics.reconciliation.timewindow import TimeWindow


UTC = timezone.utc


@pytest.fixture
def engine(analytics_settings):
    return AggregationEngine(analytics_settings)


@pytest.fixture
def window(january, analytics_settings):
    return TimeWindow(*january, settings=analytics_settings)


def example_order(status: str) -> dict:
    return {
        "status": status,
        "timestamp": "2025-01-03T10:00:00Z",
        "items": [{"sku": "A1", "quantity": "4", "sellingPrice": 100, "costPrice": 60}],
    }


class TestDimension:
    """Tests for Dimension parsing"""

    def test_parse_string(self):
        assert Dimension.parse(" Brand ") == Dimension.BRAND

    def test_unknown_dimension(self):
        with pytest.raises(ValueError, match="Unknown dimension"):
            Dimension.parse("region")


class TestMetricAccumulator:
    """Tests for MetricAccumulator"""

    def test_profit_tracks_revenue_minus_cost(self):
        acc = MetricAccumulator(key="p1", dimension=Dimension.PRODUCT)
        sold_at = datetime(2025, 1, 3, tzinfo=UTC)

        acc.add_sale("p1", Decimal("3"), Decimal("10.10"), Decimal("7.07"), sold_at)
        acc.add_sale("p1", Decimal("1"), Decimal("0.30"), Decimal("0.10"), sold_at)

        assert acc.total_profit == acc.total_revenue - acc.total_cost
        assert acc.total_revenue == Decimal("30.60")

    def test_non_positive_quantity_counts_but_adds_nothing(self):
        acc = MetricAccumulator(key="p1", dimension=Dimension.PRODUCT)
        sold_at = datetime(2025, 1, 3, tzinfo=UTC)

        acc.add_sale("p1", Decimal("0"), Decimal("10"), Decimal("5"), sold_at, order_id="o1")

        assert acc.orders_count == 1
        assert acc.total_sold == 0
        assert acc.total_revenue == 0
        assert acc.last_sold_at == sold_at
        assert acc.products_count == 1

    def test_last_sold_at_keeps_latest(self):
        acc = MetricAccumulator(key="b", dimension=Dimension.BRAND)
        later = datetime(2025, 1, 5, tzinfo=UTC)
        earlier = datetime(2025, 1, 2, tzinfo=UTC)

        acc.add_sale("p1", Decimal("1"), Decimal("1"), Decimal("1"), later)
        acc.add_sale("p2", Decimal("1"), Decimal("1"), Decimal("1"), earlier)

        assert acc.last_sold_at == later
        assert acc.products_count == 2


class TestExampleScenarios:
    """Worked examples for the aggregation contract"""

    def test_sku_resolved_case_insensitively(self, engine, analytics_settings):
        window = TimeWindow(date(2025, 1, 1), date(2025, 1, 5), settings=analytics_settings)
        products = [{"id": "p1", "sku": "a1", "costPrice": 60}]

        buckets = engine.aggregate([example_order("Delivered")], products, window, "product")

        assert list(buckets) == ["p1"]
        p1 = buckets["p1"]
        assert p1.total_sold == Decimal("4")
        assert p1.total_revenue == Decimal("400")
        assert p1.total_cost == Decimal("240")
        assert p1.total_profit == Decimal("160")
        assert p1.total_profit / p1.total_revenue * 100 == Decimal("40")

    def test_pending_order_yields_no_buckets(self, engine, analytics_settings):
        window = TimeWindow(date(2025, 1, 1), date(2025, 1, 5), settings=analytics_settings)
        products = [{"id": "p1", "sku": "a1", "costPrice": 60}]

        assert engine.aggregate([example_order("Pending")], products, window, "product") == {}


class TestAggregationEngine:
    """Tests for AggregationEngine over the sample feed"""

    def test_rejects_none_inputs(self, engine, window, sample_products, sample_orders):
        with pytest.raises(ValueError):
            engine.aggregate(None, sample_products, window, "product")
        with pytest.raises(ValueError):
            engine.aggregate(sample_orders, None, window, "product")

    def test_rejects_unknown_dimension(self, engine, window, sample_products, sample_orders):
        with pytest.raises(ValueError):
            engine.aggregate(sample_orders, sample_products, window, "warehouse")

    def test_product_dimension(self, engine, window, sample_products, sample_orders, now):
        buckets = engine.aggregate(sample_orders, sample_products, window, Dimension.PRODUCT, now=now)

        assert list(buckets) == ["p1", "p3", "p2", "temp_Mystery Snack_NoName"]

        p1 = buckets["p1"]
        assert p1.total_sold == Decimal("10")
        assert p1.total_revenue == Decimal("1000")
        assert p1.total_cost == Decimal("600")
        assert p1.orders_count == 2
        assert p1.label == "Basmati Rice 5kg"

        p2 = buckets["p2"]
        assert p2.total_revenue == Decimal("350")
        assert p2.total_cost == Decimal("200")

        placeholder = buckets["temp_Mystery Snack_NoName"]
        assert placeholder.total_cost == Decimal("60")
        assert placeholder.product["placeholder"] is True

    def test_brand_dimension(self, engine, window, sample_products, sample_orders, now):
        buckets = engine.aggregate(sample_orders, sample_products, window, "brand", now=now)

        assert {k: v.total_revenue for k, v in buckets.items()} == {
            "Tilda": Decimal("1000"),
            "Figaro": Decimal("900"),
            "Saltworks": Decimal("350"),
            "NoName": Decimal("100"),
        }
        assert buckets["Tilda"].products_count == 1

    def test_category_dimension_uses_fallback_label(self, engine, window, sample_products, sample_orders, now):
        buckets = engine.aggregate(sample_orders, sample_products, window, "category", now=now)

        assert buckets["Grocery"].total_revenue == Decimal("1350")
        assert buckets["Grocery"].products_count == 2
        assert buckets["Oils"].total_revenue == Decimal("900")
        assert buckets["Uncategorized"].total_revenue == Decimal("100")

    def test_unbranded_fallback(self, engine, window, now):
        orders = [{
            "status": "DELIVERED",
            "timestamp": "2025-01-10T00:00:00Z",
            "items": [{"productName": "Loose Tea", "quantity": 1, "sellingPrice": 5}],
        }]
        buckets = engine.aggregate(orders, [], window, "brand", now=now)
        assert list(buckets) == ["Unbranded"]

    def test_retailer_dimension(self, engine, window, sample_products, sample_orders, now):
        buckets = engine.aggregate(sample_orders, sample_products, window, "retailer", now=now)

        assert list(buckets) == ["r1", "r2"]
        r1 = buckets["r1"]
        assert r1.label == "Sharma Stores"
        assert r1.retailer_type == "connected"
        assert r1.orders_count == 3
        assert r1.distinct_orders == 2
        assert r1.total_revenue == Decimal("1700")

        r2 = buckets["r2"]
        assert r2.label == "Corner Mart"
        assert r2.retailer_type == "provisional"

    def test_retailer_dimension_skips_orders_without_retailer(self, engine, window, now):
        orders = [{
            "status": "DELIVERED",
            "timestamp": "2025-01-10T00:00:00Z",
            "items": [{"productName": "Tea", "quantity": 1, "sellingPrice": 5}],
        }]
        result = engine.aggregate_with_stats(orders, [], window, "retailer", now=now)

        assert result.buckets == {}
        assert result.stats.items_skipped == 1

    def test_window_excludes_older_orders(self, engine, sample_products, sample_orders, now, analytics_settings):
        december = TimeWindow(date(2024, 12, 1), date(2024, 12, 31), settings=analytics_settings)
        buckets = engine.aggregate(sample_orders, sample_products, december, "product", now=now)

        assert list(buckets) == ["p3"]
        assert buckets["p3"].total_revenue == Decimal("450")

    def test_no_window_keeps_everything(self, engine, sample_products, sample_orders, now):
        buckets = engine.aggregate(sample_orders, sample_products, None, "product", now=now)
        assert buckets["p3"].total_sold == Decimal("3")

    def test_missing_timestamp_falls_into_current_window(self, engine, analytics_settings, now):
        orders = [{"status": "DELIVERED", "items": [{"productName": "Tea", "quantity": 1, "sellingPrice": 5}]}]
        current = TimeWindow(date(2025, 1, 31), date(2025, 1, 31), settings=analytics_settings)
        past = TimeWindow(date(2024, 1, 1), date(2024, 1, 31), settings=analytics_settings)

        assert len(engine.aggregate(orders, [], current, "product", now=now)) == 1
        assert engine.aggregate(orders, [], past, "product", now=now) == {}

    def test_out_of_range_numbers_count_as_zero(self, engine, window, now):
        orders = [{
            "status": "DELIVERED",
            "timestamp": "2025-01-10T00:00:00Z",
            "items": [
                {"productName": "Tea", "quantity": "9e999999", "sellingPrice": "9e999999"},
                {"productName": "Tea", "quantity": 2, "sellingPrice": "9e999999", "costPrice": 3},
            ],
        }]
        buckets = engine.aggregate(orders, [], window, "product", now=now)

        tea = buckets["temp_Tea_unknown"]
        assert tea.total_sold == Decimal("2")
        assert tea.total_revenue == Decimal("0")
        assert tea.total_cost == Decimal("6")

    def test_selling_price_falls_back_to_catalog(self, engine, window, sample_products, now):
        orders = [{
            "status": "DELIVERED",
            "timestamp": "2025-01-10T00:00:00Z",
            "items": [{"productId": "p3", "quantity": 2}],
        }]
        buckets = engine.aggregate(orders, sample_products, window, "product", now=now)

        assert buckets["p3"].total_revenue == Decimal("900")
        assert buckets["p3"].total_cost == Decimal("600")

    def test_include_unsold_seeds_catalog(self, engine, analytics_settings, sample_products, sample_orders, now):
        december = TimeWindow(date(2024, 12, 1), date(2024, 12, 31), settings=analytics_settings)
        buckets = engine.aggregate(
            sample_orders, sample_products, december, "product", include_unsold=True, now=now
        )

        assert list(buckets) == ["p1", "p2", "p3"]
        assert buckets["p1"].orders_count == 0
        assert buckets["p1"].last_sold_at is None

    def test_include_unsold_keeps_catalog_id_verbatim(self, engine, window, now):
        products = [{"id": "p9 ", "name": "Green Tea", "quantity": 5}]
        orders = [{
            "status": "DELIVERED",
            "timestamp": "2025-01-10T00:00:00Z",
            "items": [{"productId": "p9 ", "quantity": 1, "sellingPrice": 10}],
        }]
        buckets = engine.aggregate(orders, products, window, "product", include_unsold=True, now=now)

        assert list(buckets) == ["p9 "]
        assert buckets["p9 "].total_sold == Decimal("1")

    def test_geography_and_trend(self, engine, window, sample_products, sample_orders, now):
        buckets = engine.aggregate(sample_orders, sample_products, window, "product", now=now)
        p1 = buckets["p1"]

        assert p1.geography[("Maharashtra", "Pune")].quantity == Decimal("7")
        assert p1.geography[("Karnataka", "Bengaluru")].revenue == Decimal("300")
        assert p1.daily[date(2025, 1, 29)].sold == Decimal("7")
        assert p1.daily[date(2025, 1, 15)].profit == Decimal("120")

    def test_stats(self, engine, window, sample_products, sample_orders, now):
        result = engine.aggregate_with_stats(sample_orders, sample_products, window, "product", now=now)
        stats = result.stats

        assert stats.orders_seen == 5
        assert stats.orders_in_window == 4
        assert stats.delivered_orders == 3
        assert stats.items_processed == 5
        assert stats.matches == {"id": 1, "sku": 1, "name_brand": 1, "fuzzy": 1, "unmatched": 1}
        assert stats.items_matched == 4
        assert result.duration_seconds >= 0


class TestAggregationProperties:
    """Invariants that hold for every aggregation pass"""

    @pytest.mark.parametrize("dimension", ["product", "brand", "category"])
    def test_revenue_is_conserved(self, engine, window, sample_products, sample_orders, now, dimension):
        buckets = engine.aggregate(sample_orders, sample_products, window, dimension, now=now)

        expected = Decimal("0")
        for order, _ in filter_orders(sample_orders, window, now=now, settings=engine.settings):
            for item in order["items"]:
                expected += first_number(item, *LINE_ITEM_QUANTITY_FIELDS) * first_number(
                    item, *LINE_ITEM_SELLING_PRICE_FIELDS
                )

        assert sum((b.total_revenue for b in buckets.values()), Decimal("0")) == expected

    @pytest.mark.parametrize("dimension", ["product", "brand", "category", "retailer"])
    def test_profit_identity(self, engine, window, sample_products, sample_orders, now, dimension):
        buckets = engine.aggregate(sample_orders, sample_products, window, dimension, now=now)

        for bucket in buckets.values():
            assert bucket.total_profit == bucket.total_revenue - bucket.total_cost

    def test_idempotent(self, engine, window, sample_products, sample_orders, now):
        first = engine.aggregate(sample_orders, sample_products, window, "product", now=now)
        second = engine.aggregate(sample_orders, sample_products, window, "product", now=now)

        assert list(first) == list(second)
        assert first == second

    def test_module_level_aggregate(self, window, sample_products, sample_orders, now, analytics_settings):
        buckets = aggregate(
            sample_orders, sample_products, window, "brand", settings=analytics_settings, now=now
        )
        assert "Tilda" in buckets

    def test_filter_orders(self, window, sample_orders, now, analytics_settings):
        kept = filter_orders(sample_orders, window, now=now, settings=analytics_settings)
        assert [order["id"] for order, _ in kept] == ["o1", "o2", "o5"]

        everything = filter_orders(sample_orders, None, delivered_only=False, settings=analytics_settings)
        assert len(everything) == 5
