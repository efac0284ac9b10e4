"""
Inventory Drain Forecast

Estimates days of supply remaining from the trailing average daily sales.
A product that sold nothing in the window cannot run out; it gets the
``INFINITE`` sentinel instead of a number, and callers must special-case
it rather than do arithmetic with it.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from sales_analytics.config import AnalyticsSettings, get_settings
from sales_analytics.reconciliation.accumulator import Dimension
from sales_analytics.reconciliation.engine import AggregationEngine
from sales_analytics.reconciliation.fields import ZERO, first_text, to_number
from sales_analytics.reconciliation.timewindow import TrailingWindow

logger = structlog.get_logger(__name__)

INFINITE = "infinite"

DaysLeft = Union[int, str]


class DrainRisk:
    """Presentation bands for days of supply"""
    CRITICAL = "critical"
    LOW = "low"
    HEALTHY = "healthy"


@dataclass(frozen=True)
class DrainForecast:
    """Days-of-supply estimate for one product"""
    product_id: str
    sold_in_window: Decimal
    current_stock: Decimal
    avg_daily_sale: Decimal
    days_left: DaysLeft
    risk: str
    name: str = ""

    @property
    def is_infinite(self) -> bool:
        return self.days_left == INFINITE


class DrainForecastEstimator:
    """
    Trailing-window drain estimator.

    Example:
        estimator = DrainForecastEstimator()
        estimator.forecast("p1", [3, 4], 50).days_left  # 50
    """

    def __init__(self, settings: Optional[AnalyticsSettings] = None):
        self.settings = settings or get_settings().analytics

    @property
    def window_days(self) -> int:
        return self.settings.drain_window_days

    def risk_band(self, days_left: DaysLeft) -> str:
        """Map days left onto critical / low / healthy"""
        if days_left == INFINITE:
            return DrainRisk.HEALTHY
        if days_left < self.settings.drain_critical_days:
            return DrainRisk.CRITICAL
        if days_left < self.settings.drain_low_days:
            return DrainRisk.LOW
        return DrainRisk.HEALTHY

    def forecast(
        self,
        product_id: str,
        trailing_window_sales: Union[Any, Iterable[Any]],
        current_stock: Any,
        name: str = "",
    ) -> DrainForecast:
        """
        Forecast days of supply for one product.

        Args:
            product_id: Product being forecast
            trailing_window_sales: Units sold in the trailing window, either
                a total or the individual line-item quantities
            current_stock: Units on hand

        Returns:
            DrainForecast; ``days_left`` is ``INFINITE`` when nothing sold
        """
        if isinstance(trailing_window_sales, (str, bytes, int, float, Decimal)) or trailing_window_sales is None:
            sold = to_number(trailing_window_sales)
        else:
            sold = sum((to_number(q) for q in trailing_window_sales), ZERO)

        stock = to_number(current_stock)
        avg_daily_sale = sold / self.window_days

        if sold > 0:
            # stock / (sold / days), without rounding the average first
            days_left: DaysLeft = int((stock * self.window_days / sold).to_integral_value(rounding=ROUND_FLOOR))
        else:
            days_left = INFINITE

        return DrainForecast(
            product_id=str(product_id),
            sold_in_window=sold,
            current_stock=stock,
            avg_daily_sale=avg_daily_sale,
            days_left=days_left,
            risk=self.risk_band(days_left),
            name=name,
        )

    def forecast_catalog(
        self,
        orders: Sequence[Mapping[str, Any]],
        products: Sequence[Mapping[str, Any]],
        now: Optional[datetime] = None,
        include_unsold: bool = False,
    ) -> List[DrainForecast]:
        """
        Forecast every catalog product from delivered orders in the
        ``window_days`` x 24 hours before ``now``.

        Products that only exist as unmatched placeholders are skipped since
        there is no stock figure for them. Results are ordered by urgency:
        numeric ``days_left`` ascending, then the infinite sentinel.

        Args:
            orders: Raw order documents
            products: Raw catalog documents
            now: Reference instant (defaults to current time)
            include_unsold: Also forecast catalog products with no sales
        """
        window = TrailingWindow.ending(self.window_days, now=now, settings=self.settings)
        buckets = AggregationEngine(self.settings).aggregate(
            orders, products, window, Dimension.PRODUCT, include_unsold=include_unsold, now=now
        )

        forecasts = []
        for pid, acc in buckets.items():
            product = acc.product
            if product is None or product.get("placeholder"):
                continue
            forecasts.append(
                self.forecast(
                    pid,
                    acc.total_sold,
                    product.get("quantity"),
                    name=first_text(product, "name", "productName") or acc.label,
                )
            )

        forecasts.sort(key=lambda f: (f.is_infinite, 0 if f.is_infinite else f.days_left))
        critical = sum(1 for f in forecasts if f.risk == DrainRisk.CRITICAL)
        logger.info("Drain forecast complete", products=len(forecasts), critical=critical)
        return forecasts
