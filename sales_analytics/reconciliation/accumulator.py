"""
Metric Accumulator

Running totals for one dimension bucket (a product, brand, category or
retailer). Accumulators are created lazily by the aggregation engine,
mutated only during a single aggregation pass, and read afterwards by the
derived-metrics stage.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set, Tuple

from .fields import ZERO


class Dimension(str, Enum):
    """Grouping axis for aggregation"""
    PRODUCT = "product"
    BRAND = "brand"
    CATEGORY = "category"
    RETAILER = "retailer"

    @classmethod
    def parse(cls, value: Any) -> "Dimension":
        """Coerce a string or Dimension, rejecting unknown axes"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = [d.value for d in cls]
            raise ValueError(f"Unknown dimension {value!r}; expected one of {allowed}") from None


@dataclass
class DailyTotals:
    """Units, revenue and profit for one calendar day"""
    sold: Decimal = ZERO
    revenue: Decimal = ZERO
    profit: Decimal = ZERO


@dataclass
class GeoTotals:
    """Units and revenue for one retailer location"""
    quantity: Decimal = ZERO
    revenue: Decimal = ZERO


@dataclass
class MetricAccumulator:
    """
    Mutable running totals keyed by a dimension value.

    ``total_profit`` is advanced by ``revenue - cost`` on every fold, so
    ``total_profit == total_revenue - total_cost`` holds after each call to
    :meth:`add_sale`. ``orders_count`` counts folded line items, not orders.
    """
    key: str
    dimension: Dimension
    label: str = ""
    total_sold: Decimal = ZERO
    total_revenue: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_profit: Decimal = ZERO
    orders_count: int = 0
    product_ids: Set[str] = field(default_factory=set)
    order_ids: Set[str] = field(default_factory=set)
    last_sold_at: Optional[datetime] = None

    # Product dimension only: the resolved catalog record
    product: Optional[Mapping[str, Any]] = None
    # Retailer dimension only
    retailer_type: Optional[str] = None

    daily: Dict[date, DailyTotals] = field(default_factory=dict)
    geography: Dict[Tuple[str, str], GeoTotals] = field(default_factory=dict)

    def add_sale(
        self,
        product_id: str,
        quantity: Decimal,
        selling_price: Decimal,
        cost_price: Decimal,
        sold_at: datetime,
        order_id: Optional[str] = None,
        location: Optional[Tuple[str, str]] = None,
        track_daily_since: Optional[date] = None,
    ) -> None:
        """
        Fold one resolved line item into the running totals.

        A line item with a non-positive quantity still counts towards
        ``orders_count`` but adds nothing to units or money.

        Args:
            product_id: Resolved product id (catalog id or placeholder)
            quantity: Units sold
            selling_price: Unit selling price
            cost_price: Unit cost price
            sold_at: Normalized order instant
            order_id: Source order id, tracked for distinct-order counts
            location: (state, city) of the purchasing retailer
            track_daily_since: Record a daily trend point when ``sold_at``
                is on or after this date
        """
        self.orders_count += 1
        if product_id:
            self.product_ids.add(product_id)
        if order_id:
            self.order_ids.add(order_id)
        if self.last_sold_at is None or sold_at > self.last_sold_at:
            self.last_sold_at = sold_at

        if quantity <= 0:
            return

        revenue = selling_price * quantity
        cost = cost_price * quantity
        profit = revenue - cost

        self.total_sold += quantity
        self.total_revenue += revenue
        self.total_cost += cost
        self.total_profit += profit

        if location is not None:
            geo = self.geography.setdefault(location, GeoTotals())
            geo.quantity += quantity
            geo.revenue += revenue

        if track_daily_since is not None and sold_at.date() >= track_daily_since:
            day = self.daily.setdefault(sold_at.date(), DailyTotals())
            day.sold += quantity
            day.revenue += revenue
            day.profit += profit

    @property
    def products_count(self) -> int:
        """Distinct products folded into this bucket"""
        return len(self.product_ids)

    @property
    def distinct_orders(self) -> int:
        """Distinct source orders folded into this bucket"""
        return len(self.order_ids)
