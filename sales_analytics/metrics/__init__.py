"""
Derived Metrics Module
"""
from .dependency import (
    DependencyRisk,
    DependencyRiskAnalyzer,
    count_orders_by_retailer,
    retailer_order_counts,
)
from .derived import DerivedMetric, DerivedMetricsCalculator, derive_metrics
from .drain import INFINITE, DrainForecast, DrainForecastEstimator, DrainRisk
from .reporting import distribution, filter_records, rank, summarize, to_frame

__all__ = [
    "DependencyRisk",
    "DependencyRiskAnalyzer",
    "count_orders_by_retailer",
    "retailer_order_counts",
    "DerivedMetric",
    "DerivedMetricsCalculator",
    "derive_metrics",
    "INFINITE",
    "DrainForecast",
    "DrainForecastEstimator",
    "DrainRisk",
    "distribution",
    "filter_records",
    "rank",
    "summarize",
    "to_frame",
]
