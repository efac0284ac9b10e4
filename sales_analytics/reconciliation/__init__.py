"""
Sales Reconciliation Module
"""
from .accumulator import Dimension, MetricAccumulator
from .engine import AggregationEngine, AggregationResult, aggregate, filter_orders
from .fields import is_delivered, to_number
from .resolver import MatchTier, ProductResolver, ResolvedMatch, resolve_product
from .timewindow import TimeWindow, TrailingWindow, Window, normalize_timestamp

__all__ = [
    "Dimension",
    "MetricAccumulator",
    "AggregationEngine",
    "AggregationResult",
    "aggregate",
    "filter_orders",
    "is_delivered",
    "to_number",
    "MatchTier",
    "ProductResolver",
    "ResolvedMatch",
    "resolve_product",
    "TimeWindow",
    "TrailingWindow",
    "Window",
    "normalize_timestamp",
]
