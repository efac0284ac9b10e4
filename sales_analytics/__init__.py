"""
Sales Reconciliation & Analytics Engine

Reconciles raw distributor orders against a product catalog and computes
per-product, per-brand, per-category and per-retailer sales metrics,
retailer dependency risk and inventory drain forecasts.
"""

from .config import AnalyticsSettings, Settings, get_settings
from .reconciliation import AggregationEngine, Dimension, ProductResolver, TimeWindow, aggregate
from .metrics import (
    DependencyRiskAnalyzer,
    DerivedMetricsCalculator,
    DrainForecastEstimator,
    derive_metrics,
)
from .service import AnalyticsService

__version__ = "1.0.0"

__all__ = [
    "AnalyticsSettings",
    "Settings",
    "get_settings",
    "AggregationEngine",
    "Dimension",
    "ProductResolver",
    "TimeWindow",
    "aggregate",
    "DependencyRiskAnalyzer",
    "DerivedMetricsCalculator",
    "DrainForecastEstimator",
    "derive_metrics",
    "AnalyticsService",
]
