"""
Reporting Helpers

Presentation-side utilities over derived metric records: polars frames,
rankings, brand/category distributions, filters and overview totals.
Sort order is a presentation concern, so none of this feeds back into the
engine.
"""

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

import polars as pl

from sales_analytics.reconciliation.fields import ZERO, to_number
from .derived import DerivedMetric, percent

# Nested/tuple fields are left out of frames
_FRAME_EXCLUDE = {"trend", "geography"}


@dataclass(frozen=True)
class OverviewTotals:
    """Totals across a set of records"""
    total_revenue: Decimal
    total_cost: Decimal
    total_profit: Decimal
    total_sold: Decimal
    line_items: int
    buckets: int
    margin_percent: float


def _scalar(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc)
    return value


def to_frame(records: Sequence[DerivedMetric]) -> pl.DataFrame:
    """
    Convert derived records to a polars DataFrame.

    Decimals become floats, enums their values and instants UTC; trend
    and geography tuples are omitted.
    """
    columns = [f.name for f in fields(DerivedMetric) if f.name not in _FRAME_EXCLUDE]
    rows = [{name: _scalar(getattr(r, name)) for name in columns} for r in records]
    if not rows:
        return pl.DataFrame(schema={name: pl.Null for name in columns})
    return pl.DataFrame(rows, infer_schema_length=None)


def rank(
    records: Sequence[DerivedMetric],
    by: str = "total_revenue",
    descending: bool = True,
    limit: Optional[int] = None,
) -> List[DerivedMetric]:
    """
    Sort records by a metric attribute.

    Ties keep their input order. Records whose metric is None sort last.
    """
    if records and not hasattr(records[0], by):
        raise ValueError(f"Unknown metric {by!r}")

    present = [r for r in records if getattr(r, by) is not None]
    missing = [r for r in records if getattr(r, by) is None]
    ranked = sorted(present, key=lambda r: getattr(r, by), reverse=descending) + missing
    return ranked[:limit] if limit is not None else ranked


def distribution(records: Sequence[DerivedMetric], by: str = "brand") -> pl.DataFrame:
    """
    Roll product records up by brand or category.

    Returns:
        DataFrame with columns [by, revenue, profit, products], sorted by
        revenue descending
    """
    if by not in ("brand", "category"):
        raise ValueError("distribution is grouped by 'brand' or 'category'")

    frame = pl.DataFrame(
        {
            by: [getattr(r, by) or "Unknown" for r in records],
            "revenue": [float(r.total_revenue) for r in records],
            "profit": [float(r.total_profit) for r in records],
        },
        schema={by: pl.Utf8, "revenue": pl.Float64, "profit": pl.Float64},
    )
    return (
        frame.group_by(by, maintain_order=True)
        .agg([
            pl.col("revenue").sum().alias("revenue"),
            pl.col("profit").sum().alias("profit"),
            pl.len().alias("products"),
        ])
        .sort("revenue", descending=True, maintain_order=True)
    )


def filter_records(
    records: Iterable[DerivedMetric],
    brand: Optional[str] = None,
    category: Optional[str] = None,
    min_profit: Optional[Any] = None,
) -> List[DerivedMetric]:
    """
    Filter records by brand/category substring and minimum profit.

    Brand and category filters are case-insensitive substring matches and
    are ignored when blank; a non-positive ``min_profit`` is ignored.
    """
    result = list(records)
    if brand and brand.strip():
        needle = brand.strip().lower()
        result = [r for r in result if needle in (r.brand or "").lower()]
    if category and category.strip():
        needle = category.strip().lower()
        result = [r for r in result if needle in (r.category or "").lower()]
    threshold = to_number(min_profit)
    if threshold > 0:
        result = [r for r in result if r.total_profit >= threshold]
    return result


def summarize(records: Iterable[DerivedMetric]) -> OverviewTotals:
    """Totals and overall margin across records"""
    revenue = cost = profit = sold = ZERO
    line_items = buckets = 0
    for r in records:
        revenue += r.total_revenue
        cost += r.total_cost
        profit += r.total_profit
        sold += r.total_sold
        line_items += r.orders_count
        buckets += 1
    return OverviewTotals(
        total_revenue=revenue,
        total_cost=cost,
        total_profit=profit,
        total_sold=sold,
        line_items=line_items,
        buckets=buckets,
        margin_percent=percent(profit, revenue),
    )


def records_by_key(records: Iterable[DerivedMetric]) -> Dict[str, DerivedMetric]:
    """Index records by bucket key"""
    return {r.key: r for r in records}
