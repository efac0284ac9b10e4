"""
Retailer Dependency Risk

Flags customer-concentration risk: when a handful of retailers account for
most of a distributor's orders, losing one of them hurts.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from sales_analytics.config import AnalyticsSettings, get_settings
from sales_analytics.reconciliation.accumulator import Dimension, MetricAccumulator
from sales_analytics.reconciliation.engine import filter_orders, retailer_key
from sales_analytics.reconciliation.timewindow import TimeWindow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetailerShare:
    """One retailer's slice of the order volume"""
    retailer_id: str
    order_count: int
    share_percent: float


@dataclass(frozen=True)
class DependencyRisk:
    """Concentration analysis result"""
    top_retailers: List[RetailerShare]
    concentration_percent: float
    total_orders: int
    threshold_percent: float
    is_high_risk: bool


class DependencyRiskAnalyzer:
    """
    Customer-concentration analyzer.

    Retailers are ranked by order count, descending; ties keep the input
    iteration order. The top-N share is compared against a configurable
    threshold (60% of orders held by the top 3 retailers by default).

    Example:
        risk = DependencyRiskAnalyzer().analyze({"A": 10, "B": 8, "C": 7, "D": 5})
        risk.is_high_risk  # True, 83.3% concentration
    """

    def __init__(
        self,
        settings: Optional[AnalyticsSettings] = None,
        threshold_percent: Optional[float] = None,
        top_n: Optional[int] = None,
    ):
        self.settings = settings or get_settings().analytics
        self.threshold_percent = (
            self.settings.dependency_risk_threshold_percent
            if threshold_percent is None
            else threshold_percent
        )
        self.top_n = self.settings.dependency_top_n if top_n is None else top_n

    def analyze(self, retailer_order_counts: Mapping[str, int]) -> DependencyRisk:
        """
        Analyze order concentration across retailers.

        Args:
            retailer_order_counts: Order count per retailer id

        Returns:
            DependencyRisk with the top retailers and the risk flag
        """
        counts = [(str(rid), max(int(count or 0), 0)) for rid, count in retailer_order_counts.items()]
        total = sum(count for _, count in counts)

        # sorted() is stable, so equal counts keep their input order
        ranked = sorted(counts, key=lambda pair: pair[1], reverse=True)[: self.top_n]

        top_total = sum(count for _, count in ranked)
        concentration = top_total / total * 100 if total > 0 else 0.0
        top_retailers = [
            RetailerShare(
                retailer_id=rid,
                order_count=count,
                share_percent=count / total * 100 if total > 0 else 0.0,
            )
            for rid, count in ranked
        ]
        is_high_risk = concentration > self.threshold_percent

        if is_high_risk:
            logger.warning(
                "High retailer dependency",
                concentration=round(concentration, 2),
                threshold=self.threshold_percent,
                top=[r.retailer_id for r in top_retailers],
            )

        return DependencyRisk(
            top_retailers=top_retailers,
            concentration_percent=concentration,
            total_orders=total,
            threshold_percent=self.threshold_percent,
            is_high_risk=is_high_risk,
        )


def retailer_order_counts(buckets: Mapping[str, MetricAccumulator]) -> Dict[str, int]:
    """Distinct orders per retailer from a retailer-dimension bucket map"""
    counts = {}
    for key, acc in buckets.items():
        if acc.dimension != Dimension.RETAILER:
            raise ValueError(f"Expected retailer buckets, got {acc.dimension.value} for {key!r}")
        counts[key] = acc.distinct_orders or acc.orders_count
    return counts


def count_orders_by_retailer(
    orders: Sequence[Mapping[str, Any]],
    window: Optional[TimeWindow] = None,
    delivered_only: bool = True,
    now: Optional[datetime] = None,
    settings: Optional[AnalyticsSettings] = None,
) -> Dict[str, int]:
    """
    Count orders per retailer id.

    Orders without a retailer id are ignored. Counts follow the order in
    which each retailer is first seen.
    """
    if orders is None:
        raise ValueError("count_orders_by_retailer requires an orders collection (got None)")
    counts: Dict[str, int] = {}
    for order, _ in filter_orders(orders, window, delivered_only, now=now, settings=settings):
        rid = retailer_key(order)
        if rid:
            counts[rid] = counts.get(rid, 0) + 1
    return counts
