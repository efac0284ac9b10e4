"""
Aggregation Engine

Batch reconciliation of raw orders against the product catalog.

Pipeline:
1. Keep orders whose normalized timestamp falls inside the window
2. Keep delivered/invoiced orders
3. Resolve every line item to a catalog product
4. Fold each line item into the accumulator for its dimension key

Each call builds fresh accumulators and indexes, so repeated calls on the
same inputs return identical results and concurrent calls share nothing.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from sales_analytics.config import AnalyticsSettings, get_settings
from .accumulator import Dimension, MetricAccumulator
from .fields import (
    LINE_ITEM_COST_PRICE_FIELDS,
    LINE_ITEM_NAME_FIELDS,
    LINE_ITEM_QUANTITY_FIELDS,
    LINE_ITEM_SELLING_PRICE_FIELDS,
    ORDER_CITY_FIELDS,
    ORDER_RETAILER_FIELDS,
    ORDER_RETAILER_NAME_FIELDS,
    ORDER_STATE_FIELDS,
    PRODUCT_COST_PRICE_FIELDS,
    PRODUCT_NAME_FIELDS,
    PRODUCT_SELLING_PRICE_FIELDS,
    first_number,
    first_text,
    is_delivered,
    line_items,
)
from .resolver import MatchTier, ProductResolver, ResolvedMatch, product_id_of
from .timewindow import Window, ensure_aware, normalize_timestamp

logger = structlog.get_logger(__name__)


@dataclass
class AggregationStats:
    """Counters collected during one aggregation pass"""
    orders_seen: int = 0
    orders_in_window: int = 0
    delivered_orders: int = 0
    items_processed: int = 0
    items_skipped: int = 0
    matches: Dict[str, int] = field(
        default_factory=lambda: {tier.value: 0 for tier in MatchTier}
    )

    @property
    def items_matched(self) -> int:
        """Line items resolved to a catalog product"""
        return self.items_processed - self.matches[MatchTier.UNMATCHED.value]


@dataclass
class AggregationResult:
    """Result of one aggregation pass"""
    dimension: Dimension
    window: Optional[Window]
    buckets: Dict[str, MetricAccumulator]
    stats: AggregationStats
    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


def filter_orders(
    orders: Iterable[Mapping[str, Any]],
    window: Optional[Window] = None,
    delivered_only: bool = True,
    now: Optional[datetime] = None,
    settings: Optional[AnalyticsSettings] = None,
) -> List[tuple]:
    """
    Apply the window and delivered-status filters.

    Returns:
        (order, normalized instant) pairs in input order
    """
    cfg = settings or get_settings().analytics
    kept = []
    for order in orders:
        if not isinstance(order, Mapping):
            continue
        instant = normalize_timestamp(order, now=now, settings=cfg)
        if window is not None and not window.contains(instant):
            continue
        if delivered_only and not is_delivered(order):
            continue
        kept.append((order, instant))
    return kept


def retailer_key(order: Mapping[str, Any]) -> str:
    """Purchasing party of an order; '' when neither id field is set"""
    return first_text(order, *ORDER_RETAILER_FIELDS)


class AggregationEngine:
    """
    Reconciles orders with the catalog and groups metrics by dimension.

    The engine itself holds only configuration; all per-run state lives in
    the objects created inside :meth:`aggregate_with_stats`.

    Example:
        engine = AggregationEngine()
        buckets = engine.aggregate(orders, products, window, "brand")
    """

    def __init__(self, settings: Optional[AnalyticsSettings] = None):
        self.settings = settings or get_settings().analytics

    def _selling_price(self, item: Mapping[str, Any], product: Optional[Mapping[str, Any]]):
        price = first_number(item, *LINE_ITEM_SELLING_PRICE_FIELDS)
        if price == 0 and product is not None:
            price = first_number(product, *PRODUCT_SELLING_PRICE_FIELDS)
        return price

    def _cost_price(self, item: Mapping[str, Any], product: Optional[Mapping[str, Any]]):
        price = first_number(product, *PRODUCT_COST_PRICE_FIELDS) if product is not None else 0
        if price == 0:
            price = first_number(item, *LINE_ITEM_COST_PRICE_FIELDS)
        return price

    def dimension_key(
        self,
        dimension: Dimension,
        order: Mapping[str, Any],
        item: Mapping[str, Any],
        match: ResolvedMatch,
    ) -> str:
        """
        Compute the bucket key for a resolved line item.

        Returns '' when the key cannot be computed (retailer dimension
        without a retailer id); such items are skipped for that dimension.
        """
        product = match.product or {}
        if dimension == Dimension.PRODUCT:
            return match.product_id
        if dimension == Dimension.BRAND:
            return first_text(item, "brand") or first_text(product, "brand") or self.settings.unbranded_label
        if dimension == Dimension.CATEGORY:
            return (
                first_text(item, "category")
                or first_text(product, "category")
                or self.settings.uncategorized_label
            )
        return retailer_key(order)

    def _new_bucket(
        self,
        key: str,
        dimension: Dimension,
        order: Mapping[str, Any],
        item: Mapping[str, Any],
        match: Optional[ResolvedMatch],
    ) -> MetricAccumulator:
        bucket = MetricAccumulator(key=key, dimension=dimension, label=key)
        if dimension == Dimension.PRODUCT:
            product = match.product if match else None
            bucket.product = product
            bucket.label = (
                first_text(product, *PRODUCT_NAME_FIELDS)
                or first_text(item, *LINE_ITEM_NAME_FIELDS)
                or self.settings.unknown_label
            )
        elif dimension == Dimension.RETAILER:
            bucket.label = first_text(order, *ORDER_RETAILER_NAME_FIELDS) or self.settings.unknown_label
            bucket.retailer_type = (
                "connected" if first_text(order, "retailerId") else "provisional"
            )
        return bucket

    def _seed_catalog(
        self,
        buckets: Dict[str, MetricAccumulator],
        resolver: ProductResolver,
    ) -> None:
        """Create an empty product bucket for every catalog entry"""
        for product in resolver.products:
            pid = product_id_of(product)
            if not pid or pid in buckets:
                continue
            buckets[pid] = MetricAccumulator(
                key=pid,
                dimension=Dimension.PRODUCT,
                label=first_text(product, *PRODUCT_NAME_FIELDS) or self.settings.unknown_label,
                product=product,
            )

    def aggregate_with_stats(
        self,
        orders: Sequence[Mapping[str, Any]],
        products: Sequence[Mapping[str, Any]],
        window: Optional[Window],
        dimension: Union[Dimension, str],
        include_unsold: bool = False,
        now: Optional[datetime] = None,
    ) -> AggregationResult:
        """
        Run one aggregation pass and collect resolution statistics.

        Args:
            orders: Raw order documents
            products: Raw catalog documents
            window: Date or trailing window; None keeps every order
            dimension: product, brand, category or retailer
            include_unsold: Product dimension only; seed a bucket for every
                catalog product so unsold stock is reported too
            now: Reference instant for timestamp fallbacks and trends

        Returns:
            AggregationResult with the completed bucket map
        """
        if orders is None:
            raise ValueError("aggregate requires an orders collection (got None)")
        if products is None:
            raise ValueError("aggregate requires a products collection (got None)")
        dimension = Dimension.parse(dimension)

        started_at = datetime.now(self.settings.tzinfo)
        now = ensure_aware(now, self.settings.tzinfo) if now else started_at
        trend_since = (
            now.astimezone(self.settings.tzinfo) - timedelta(days=self.settings.trend_days)
        ).date()

        resolver = ProductResolver(products)
        buckets: Dict[str, MetricAccumulator] = {}
        stats = AggregationStats()

        if include_unsold and dimension == Dimension.PRODUCT:
            self._seed_catalog(buckets, resolver)

        for order in orders:
            if not isinstance(order, Mapping):
                continue
            stats.orders_seen += 1

            sold_at = normalize_timestamp(order, now=now, settings=self.settings)
            if window is not None and not window.contains(sold_at):
                continue
            stats.orders_in_window += 1

            if not is_delivered(order):
                continue
            stats.delivered_orders += 1

            order_id = first_text(order, "id") or None
            location = (
                first_text(order, *ORDER_STATE_FIELDS) or self.settings.unknown_label,
                first_text(order, *ORDER_CITY_FIELDS) or self.settings.unknown_label,
            )

            for item in line_items(order):
                match = resolver.resolve(item)
                stats.items_processed += 1
                stats.matches[match.tier.value] += 1

                key = self.dimension_key(dimension, order, item, match)
                if not key:
                    stats.items_skipped += 1
                    continue

                bucket = buckets.get(key)
                if bucket is None:
                    bucket = self._new_bucket(key, dimension, order, item, match)
                    buckets[key] = bucket

                bucket.add_sale(
                    product_id=match.product_id,
                    quantity=first_number(item, *LINE_ITEM_QUANTITY_FIELDS),
                    selling_price=self._selling_price(item, match.product),
                    cost_price=self._cost_price(item, match.product),
                    sold_at=sold_at,
                    order_id=order_id,
                    location=location if dimension == Dimension.PRODUCT else None,
                    track_daily_since=trend_since if dimension == Dimension.PRODUCT else None,
                )

        completed_at = datetime.now(self.settings.tzinfo)

        logger.info(
            "Aggregation complete",
            dimension=dimension.value,
            orders=stats.orders_seen,
            in_window=stats.orders_in_window,
            delivered=stats.delivered_orders,
            items=stats.items_processed,
            matched=stats.items_matched,
            skipped=stats.items_skipped,
            tiers=stats.matches,
            buckets=len(buckets),
            duration=(completed_at - started_at).total_seconds(),
        )

        return AggregationResult(
            dimension=dimension,
            window=window,
            buckets=buckets,
            stats=stats,
            started_at=started_at,
            completed_at=completed_at,
        )

    def aggregate(
        self,
        orders: Sequence[Mapping[str, Any]],
        products: Sequence[Mapping[str, Any]],
        window: Optional[Window],
        dimension: Union[Dimension, str],
        include_unsold: bool = False,
        now: Optional[datetime] = None,
    ) -> Dict[str, MetricAccumulator]:
        """Aggregate and return only the completed bucket map"""
        return self.aggregate_with_stats(
            orders, products, window, dimension, include_unsold=include_unsold, now=now
        ).buckets


def aggregate(
    orders: Sequence[Mapping[str, Any]],
    products: Sequence[Mapping[str, Any]],
    window: Optional[Window],
    dimension: Union[Dimension, str],
    settings: Optional[AnalyticsSettings] = None,
    **kwargs,
) -> Dict[str, MetricAccumulator]:
    """
    Convenience function to aggregate with a default engine.

    Args:
        orders: Raw order documents
        products: Raw catalog documents
        window: Date or trailing window; None keeps every order
        dimension: product, brand, category or retailer

    Returns:
        Map of dimension key to completed accumulator
    """
    return AggregationEngine(settings).aggregate(orders, products, window, dimension, **kwargs)
