"""
Derived Metrics

Turns a completed MetricAccumulator into an immutable, presentation-ready
record: margin, average order value, and for product buckets the inventory
metrics (turnover, ROI, inventory age, days since last sale).

Every ratio with a possibly-zero denominator short-circuits to 0.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sales_analytics.config import AnalyticsSettings, get_settings
from sales_analytics.reconciliation.accumulator import Dimension, MetricAccumulator
from sales_analytics.reconciliation.fields import (
    PRODUCT_COST_PRICE_FIELDS,
    PRODUCT_SELLING_PRICE_FIELDS,
    ZERO,
    first_number,
    first_text,
    to_number,
)
from sales_analytics.reconciliation.timewindow import ensure_aware, parse_instant

_SECONDS_PER_DAY = 86400


class InventoryAge:
    """Inventory age buckets"""
    NEW = "new"
    MODERATE = "moderate"
    OLD = "old"


@dataclass(frozen=True)
class TrendPoint:
    """One day of a product's sales trend"""
    date: date
    sold: Decimal
    revenue: Decimal
    profit: Decimal


@dataclass(frozen=True)
class GeoPoint:
    """Sales to one retailer location"""
    state: str
    city: str
    quantity: Decimal
    revenue: Decimal


@dataclass(frozen=True)
class DerivedMetric:
    """Immutable metric record for one dimension bucket"""
    key: str
    dimension: Dimension
    label: str
    total_sold: Decimal
    total_revenue: Decimal
    total_cost: Decimal
    total_profit: Decimal
    orders_count: int
    products_count: int
    avg_profit_margin_percent: float
    avg_order_value: Decimal
    last_sold_at: Optional[datetime] = None
    days_since_last_sale: Optional[int] = None

    # Product dimension
    sku: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    is_placeholder: bool = False
    current_stock: Optional[Decimal] = None
    cost_price: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    avg_selling_price: Optional[Decimal] = None
    total_inventory_cost: Optional[Decimal] = None
    total_inventory_value: Optional[Decimal] = None
    potential_profit: Optional[Decimal] = None
    days_in_inventory: Optional[int] = None
    inventory_age_bucket: Optional[str] = None
    turnover_rate: Optional[float] = None
    roi: Optional[float] = None
    trend: Tuple[TrendPoint, ...] = ()
    geography: Tuple[GeoPoint, ...] = ()

    # Retailer dimension
    retailer_type: Optional[str] = None
    distinct_orders: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view of the record"""
        return asdict(self)


def whole_days(delta: timedelta) -> int:
    """Whole days in a timedelta, truncated toward zero"""
    return int(delta.total_seconds() / _SECONDS_PER_DAY)


def percent(numerator: Decimal, denominator: Decimal) -> float:
    """numerator / denominator * 100, or 0 when the denominator is not positive"""
    if denominator <= 0:
        return 0.0
    return float(numerator / denominator * 100)


def turnover_rate(total_sold: Decimal, current_stock: Decimal) -> float:
    """
    Share of (stock + sold) that has already sold.

    100 when something sold but no stock is on hand, 0 when nothing sold.
    """
    if total_sold <= 0:
        return 0.0
    if current_stock > 0:
        return float(total_sold / (current_stock + total_sold) * 100)
    return 100.0


class DerivedMetricsCalculator:
    """
    Pure per-bucket post-processing.

    Example:
        calculator = DerivedMetricsCalculator(now=datetime.now(timezone.utc))
        records = calculator.derive_all(buckets)
    """

    def __init__(
        self,
        settings: Optional[AnalyticsSettings] = None,
        now: Optional[datetime] = None,
    ):
        self.settings = settings or get_settings().analytics
        tz = self.settings.tzinfo
        self.now = ensure_aware(now, tz) if now else datetime.now(tz)

    def inventory_age_bucket(self, days_in_inventory: int) -> str:
        """Classify catalog age into new / moderate / old"""
        if days_in_inventory > self.settings.inventory_old_days:
            return InventoryAge.OLD
        if days_in_inventory > self.settings.inventory_moderate_days:
            return InventoryAge.MODERATE
        return InventoryAge.NEW

    def _days_in_inventory(self, product: Mapping[str, Any]) -> int:
        tz = self.settings.tzinfo
        created = parse_instant(product.get("createdAt"), tz) or parse_instant(
            product.get("timestamp"), tz
        )
        if created is None:
            return 0
        return whole_days(self.now - created)

    def _product_fields(self, acc: MetricAccumulator) -> Dict[str, Any]:
        product = acc.product or {}
        current_stock = to_number(product.get("quantity"))
        cost_price = first_number(product, *PRODUCT_COST_PRICE_FIELDS)
        selling_price = first_number(product, *PRODUCT_SELLING_PRICE_FIELDS)

        total_inventory_cost = current_stock * cost_price
        total_inventory_value = current_stock * selling_price
        potential_profit = current_stock * (selling_price - cost_price)
        days_in_inventory = self._days_in_inventory(product)

        if acc.total_sold > 0:
            avg_selling_price = acc.total_revenue / acc.total_sold
        else:
            avg_selling_price = selling_price

        trend = tuple(
            TrendPoint(date=day, sold=t.sold, revenue=t.revenue, profit=t.profit)
            for day, t in sorted(acc.daily.items())
        )
        geography = tuple(
            GeoPoint(state=state, city=city, quantity=g.quantity, revenue=g.revenue)
            for (state, city), g in sorted(acc.geography.items())
        )

        return {
            "sku": first_text(product, "sku") or None,
            "brand": first_text(product, "brand") or None,
            "category": first_text(product, "category") or None,
            "is_placeholder": bool(product.get("placeholder")) or acc.product is None,
            "current_stock": current_stock,
            "cost_price": cost_price,
            "selling_price": selling_price,
            "avg_selling_price": avg_selling_price,
            "total_inventory_cost": total_inventory_cost,
            "total_inventory_value": total_inventory_value,
            "potential_profit": potential_profit,
            "days_in_inventory": days_in_inventory,
            "inventory_age_bucket": self.inventory_age_bucket(days_in_inventory),
            "turnover_rate": turnover_rate(acc.total_sold, current_stock),
            "roi": percent(acc.total_profit + potential_profit, total_inventory_cost),
            "trend": trend,
            "geography": geography,
        }

    def derive(self, acc: MetricAccumulator) -> DerivedMetric:
        """
        Build the derived record for one accumulator.

        Args:
            acc: Completed accumulator

        Returns:
            Immutable DerivedMetric
        """
        if acc.orders_count > 0:
            avg_order_value = acc.total_revenue / acc.orders_count
        else:
            avg_order_value = ZERO

        days_since_last_sale = (
            whole_days(self.now - acc.last_sold_at) if acc.last_sold_at is not None else None
        )

        extra: Dict[str, Any] = {}
        if acc.dimension == Dimension.PRODUCT:
            extra = self._product_fields(acc)
        elif acc.dimension == Dimension.RETAILER:
            extra = {
                "retailer_type": acc.retailer_type,
                "distinct_orders": acc.distinct_orders,
            }

        return DerivedMetric(
            key=acc.key,
            dimension=acc.dimension,
            label=acc.label or acc.key,
            total_sold=acc.total_sold,
            total_revenue=acc.total_revenue,
            total_cost=acc.total_cost,
            total_profit=acc.total_profit,
            orders_count=acc.orders_count,
            products_count=acc.products_count,
            avg_profit_margin_percent=percent(acc.total_profit, acc.total_revenue),
            avg_order_value=avg_order_value,
            last_sold_at=acc.last_sold_at,
            days_since_last_sale=days_since_last_sale,
            **extra,
        )

    def derive_all(self, buckets: Mapping[str, MetricAccumulator]) -> List[DerivedMetric]:
        """Derive every bucket, keeping the map's insertion order"""
        return [self.derive(acc) for acc in buckets.values()]


def derive_metrics(
    buckets: Mapping[str, MetricAccumulator],
    now: Optional[datetime] = None,
    settings: Optional[AnalyticsSettings] = None,
) -> List[DerivedMetric]:
    """Convenience function to derive a whole bucket map"""
    return DerivedMetricsCalculator(settings=settings, now=now).derive_all(buckets)

