"""
Analytics Service

Thin dashboard-facing layer. Holds the latest orders and catalog snapshots
pushed by the document store's change listeners and recomputes reports on
demand. Snapshots are replaced wholesale on every event and never mutated,
so a report always reads one consistent pair of snapshots.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

import structlog

from sales_analytics.config import AnalyticsSettings, get_settings
from sales_analytics.metrics.dependency import (
    DependencyRisk,
    DependencyRiskAnalyzer,
    count_orders_by_retailer,
)
from sales_analytics.metrics.derived import DerivedMetric, DerivedMetricsCalculator
from sales_analytics.metrics.drain import DrainForecast, DrainForecastEstimator
from sales_analytics.metrics.reporting import OverviewTotals, rank, summarize
from sales_analytics.quality.validators import ValidationResult, validate_catalog, validate_orders
from sales_analytics.reconciliation.accumulator import Dimension
from sales_analytics.reconciliation.engine import AggregationEngine, AggregationStats
from sales_analytics.reconciliation.timewindow import TimeWindow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Report:
    """Derived records for one dimension, tagged with the snapshot revision"""
    revision: int
    dimension: Dimension
    window: Optional[TimeWindow]
    records: Tuple[DerivedMetric, ...]
    stats: AggregationStats

    def __len__(self) -> int:
        return len(self.records)

    def get(self, key: str) -> Optional[DerivedMetric]:
        """Look a record up by bucket key"""
        return next((r for r in self.records if r.key == key), None)


@dataclass(frozen=True)
class Overview:
    """Headline numbers for the dashboard landing screen"""
    revision: int
    window: Optional[TimeWindow]
    totals: OverviewTotals
    top_products: Tuple[DerivedMetric, ...]
    dependency: DependencyRisk
    unmatched_items: int


@dataclass(frozen=True)
class DrainReport:
    """Drain forecasts tagged with the snapshot revision"""
    revision: int
    forecasts: Tuple[DrainForecast, ...]


@dataclass(frozen=True)
class QualityReport:
    """Validation results for the current snapshots"""
    revision: int
    catalog: ValidationResult
    orders: ValidationResult


class AnalyticsService:
    """
    Snapshot holder and report facade.

    Example:
        service = AnalyticsService()
        service.on_products_snapshot(products)
        service.on_orders_snapshot(orders)
        report = service.brand_report(date(2025, 1, 1), date(2025, 1, 31))
    """

    def __init__(self, settings: Optional[AnalyticsSettings] = None):
        self.settings = settings or get_settings().analytics
        self.engine = AggregationEngine(self.settings)
        self._orders: Tuple[Mapping[str, Any], ...] = ()
        self._products: Tuple[Mapping[str, Any], ...] = ()
        self._revision = 0

    @property
    def revision(self) -> int:
        """Incremented on every snapshot event"""
        return self._revision

    @property
    def orders(self) -> Tuple[Mapping[str, Any], ...]:
        return self._orders

    @property
    def products(self) -> Tuple[Mapping[str, Any], ...]:
        return self._products

    def on_orders_snapshot(self, orders: Iterable[Mapping[str, Any]]) -> int:
        """Replace the orders snapshot; returns the new revision"""
        if orders is None:
            raise ValueError("Orders snapshot cannot be None")
        self._orders = tuple(orders)
        self._revision += 1
        logger.info("Orders snapshot received", orders=len(self._orders), revision=self._revision)
        return self._revision

    def on_products_snapshot(self, products: Iterable[Mapping[str, Any]]) -> int:
        """Replace the catalog snapshot; returns the new revision"""
        if products is None:
            raise ValueError("Products snapshot cannot be None")
        self._products = tuple(products)
        self._revision += 1
        logger.info("Products snapshot received", products=len(self._products), revision=self._revision)
        return self._revision

    def _window(self, start_date: Optional[date], end_date: Optional[date]) -> Optional[TimeWindow]:
        if start_date is None and end_date is None:
            return None
        return TimeWindow(start_date, end_date, settings=self.settings)

    def dimension_report(
        self,
        dimension: Union[Dimension, str],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        sort_by: str = "total_revenue",
        descending: bool = True,
        include_unsold: bool = False,
        now: Optional[datetime] = None,
    ) -> Report:
        """
        Aggregate the current snapshots along one dimension.

        Args:
            dimension: product, brand, category or retailer
            start_date: First day of the window (inclusive)
            end_date: Last day of the window (inclusive); omit both dates to
                report over every order
            sort_by: DerivedMetric attribute to rank by
            descending: Rank direction
            include_unsold: Product dimension only; include unsold catalog items
            now: Reference instant for timestamp fallbacks and recency

        Returns:
            Report with ranked, immutable records
        """
        revision = self._revision
        orders, products = self._orders, self._products
        window = self._window(start_date, end_date)

        result = self.engine.aggregate_with_stats(
            orders, products, window, dimension, include_unsold=include_unsold, now=now
        )
        calculator = DerivedMetricsCalculator(settings=self.settings, now=now)
        records = rank(calculator.derive_all(result.buckets), by=sort_by, descending=descending)

        return Report(
            revision=revision,
            dimension=result.dimension,
            window=window,
            records=tuple(records),
            stats=result.stats,
        )

    def product_report(self, start_date=None, end_date=None, **kwargs) -> Report:
        return self.dimension_report(Dimension.PRODUCT, start_date, end_date, **kwargs)

    def brand_report(self, start_date=None, end_date=None, **kwargs) -> Report:
        return self.dimension_report(Dimension.BRAND, start_date, end_date, **kwargs)

    def category_report(self, start_date=None, end_date=None, **kwargs) -> Report:
        return self.dimension_report(Dimension.CATEGORY, start_date, end_date, **kwargs)

    def retailer_report(self, start_date=None, end_date=None, **kwargs) -> Report:
        return self.dimension_report(Dimension.RETAILER, start_date, end_date, **kwargs)

    def dependency_risk(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> DependencyRisk:
        """
        Customer-concentration risk over delivered orders in the window.

        Counted from the order feed rather than from sales buckets, so a
        delivered order without line items still counts for its retailer.
        """
        counts = count_orders_by_retailer(
            self._orders, self._window(start_date, end_date), now=now, settings=self.settings
        )
        return DependencyRiskAnalyzer(self.settings).analyze(counts)

    def drain_forecast(self, now: Optional[datetime] = None, include_unsold: bool = False) -> DrainReport:
        """Days-of-supply forecasts for every catalog product"""
        revision = self._revision
        forecasts = DrainForecastEstimator(self.settings).forecast_catalog(
            self._orders, self._products, now=now, include_unsold=include_unsold
        )
        return DrainReport(revision=revision, forecasts=tuple(forecasts))

    def overview(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        top: int = 5,
        now: Optional[datetime] = None,
    ) -> Overview:
        """Totals, best sellers and dependency risk for the window"""
        report = self.product_report(start_date, end_date, now=now)
        return Overview(
            revision=report.revision,
            window=report.window,
            totals=summarize(report.records),
            top_products=tuple(report.records[:top]),
            dependency=self.dependency_risk(start_date, end_date, now=now),
            unmatched_items=report.stats.items_processed - report.stats.items_matched,
        )

    def data_quality(self) -> QualityReport:
        """Run catalog and order feed validators on the current snapshots"""
        return QualityReport(
            revision=self._revision,
            catalog=validate_catalog(list(self._products)),
            orders=validate_orders(list(self._orders)),
        )

