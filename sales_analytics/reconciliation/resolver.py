"""
Product Resolver

Maps raw order line items onto catalog products. Orders and the catalog are
written independently and are not reliably linked by a stable key, so
resolution walks a deterministic chain of progressively weaker matches:

1. Direct id lookup (distributor product id, product id, inventory id, line id)
2. SKU lookup (case-insensitive)
3. Name + brand lookup (``name::brand``, case-insensitive)
4. Fuzzy substring match on the product name, first catalog match wins
5. No match: a placeholder keyed on the line item's own name and brand

Known false-positive source: tier 4 lets a short name such as "Salt" match
"Himalayan Pink Salt 1kg". It is kept for parity with existing dashboards.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from .fields import (
    LINE_ITEM_COST_PRICE_FIELDS,
    LINE_ITEM_ID_FIELDS,
    LINE_ITEM_NAME_FIELDS,
    LINE_ITEM_SELLING_PRICE_FIELDS,
    PRODUCT_NAME_FIELDS,
    first_text,
    normalize_text,
)

logger = structlog.get_logger(__name__)

PLACEHOLDER_PREFIX = "temp_"


class MatchTier(str, Enum):
    """Resolution tier that produced a match"""
    ID = "id"
    SKU = "sku"
    NAME_BRAND = "name_brand"
    FUZZY = "fuzzy"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class ResolvedMatch:
    """Result of resolving one line item"""
    product: Optional[Mapping[str, Any]]
    product_id: str
    tier: MatchTier

    @property
    def matched(self) -> bool:
        """True when the product came from the catalog"""
        return self.tier != MatchTier.UNMATCHED


def product_id_of(product: Mapping[str, Any]) -> str:
    """Catalog primary key as text"""
    value = product.get("id")
    return "" if value is None else str(value)


def placeholder_id(line_item: Mapping[str, Any]) -> str:
    """Stable id for an unmatched line item, derived from its name and brand"""
    name = first_text(line_item, *LINE_ITEM_NAME_FIELDS) or "unknown"
    brand = first_text(line_item, "brand") or "unknown"
    return f"{PLACEHOLDER_PREFIX}{name}_{brand}"


def placeholder_product(line_item: Mapping[str, Any], product_id: str) -> Dict[str, Any]:
    """Pseudo-product built only from the line item's own fields"""
    return {
        "id": product_id,
        "name": first_text(line_item, *LINE_ITEM_NAME_FIELDS),
        "brand": first_text(line_item, "brand"),
        "category": first_text(line_item, "category"),
        "sku": first_text(line_item, "sku"),
        "costPrice": next(
            (line_item.get(k) for k in LINE_ITEM_COST_PRICE_FIELDS if line_item.get(k)), None
        ),
        "sellingPrice": next(
            (line_item.get(k) for k in LINE_ITEM_SELLING_PRICE_FIELDS if line_item.get(k)), None
        ),
        "quantity": 0,
        "placeholder": True,
    }


class ProductResolver:
    """
    Tiered line-item to catalog resolver.

    Indexes are built once per catalog snapshot; resolution never mutates
    the catalog and never raises. When several products share a SKU or a
    name::brand key the last one in catalog order owns the index entry.

    Example:
        resolver = ProductResolver(products)
        match = resolver.resolve(order["items"][0])
    """

    def __init__(self, products: Sequence[Mapping[str, Any]]):
        if products is None:
            raise ValueError("ProductResolver requires a product catalog (got None)")

        self._products: List[Mapping[str, Any]] = [p for p in products if isinstance(p, Mapping)]
        self._by_id: Dict[str, Mapping[str, Any]] = {}
        self._by_sku: Dict[str, Mapping[str, Any]] = {}
        self._by_name_brand: Dict[str, Mapping[str, Any]] = {}
        self._names: List[tuple] = []
        self._build_indexes()

    def _build_indexes(self) -> None:
        """Build id, SKU and name::brand indexes in one catalog pass"""
        for product in self._products:
            pid = product_id_of(product)
            if pid:
                self._by_id[pid] = product

            name = normalize_text(first_text(product, *PRODUCT_NAME_FIELDS))
            brand = normalize_text(product.get("brand"))
            sku = normalize_text(product.get("sku"))

            if name and brand:
                self._by_name_brand[f"{name}::{brand}"] = product
            if sku:
                self._by_sku[sku] = product
            self._names.append((name, product))

    @property
    def products(self) -> List[Mapping[str, Any]]:
        """Catalog in iteration order"""
        return list(self._products)

    def get(self, product_id: str) -> Optional[Mapping[str, Any]]:
        """Look a product up by primary key"""
        return self._by_id.get(str(product_id))

    def _match_id(self, line_item: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        for key in LINE_ITEM_ID_FIELDS:
            candidate = line_item.get(key)
            if candidate is None or candidate == "":
                continue
            product = self._by_id.get(str(candidate))
            if product is not None:
                return product
        return None

    def _match_sku(self, line_item: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        sku = normalize_text(line_item.get("sku"))
        if not sku:
            return None
        return self._by_sku.get(sku)

    def _match_name_brand(self, line_item: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        name = normalize_text(first_text(line_item, *LINE_ITEM_NAME_FIELDS))
        brand = normalize_text(line_item.get("brand"))
        if not (name and brand):
            return None
        return self._by_name_brand.get(f"{name}::{brand}")

    def _match_fuzzy(self, line_item: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        item_name = normalize_text(first_text(line_item, *LINE_ITEM_NAME_FIELDS))
        if not item_name:
            return None
        for name, product in self._names:
            if name and (item_name in name or name in item_name):
                return product
        return None

    def resolve(self, line_item: Mapping[str, Any]) -> ResolvedMatch:
        """
        Resolve a line item to its canonical product.

        Args:
            line_item: Raw order line item

        Returns:
            ResolvedMatch with the catalog product (or a placeholder), the
            id to group it under, and the tier that matched
        """
        matchers = (
            (MatchTier.ID, self._match_id),
            (MatchTier.SKU, self._match_sku),
            (MatchTier.NAME_BRAND, self._match_name_brand),
            (MatchTier.FUZZY, self._match_fuzzy),
        )
        for tier, matcher in matchers:
            product = matcher(line_item)
            if product is not None:
                pid = product_id_of(product) or placeholder_id(line_item)
                return ResolvedMatch(product=product, product_id=pid, tier=tier)

        pid = placeholder_id(line_item)
        logger.debug(
            "Could not match line item to catalog",
            item_name=first_text(line_item, *LINE_ITEM_NAME_FIELDS),
            item_brand=first_text(line_item, "brand"),
            item_sku=first_text(line_item, "sku"),
            placeholder_id=pid,
        )
        return ResolvedMatch(
            product=placeholder_product(line_item, pid),
            product_id=pid,
            tier=MatchTier.UNMATCHED,
        )


def resolve_product(
    line_item: Mapping[str, Any],
    products: Sequence[Mapping[str, Any]],
) -> ResolvedMatch:
    """
    Convenience function to resolve a single line item.

    Builds the catalog indexes on every call; use :class:`ProductResolver`
    directly when resolving a batch.
    """
    return ProductResolver(products).resolve(line_item)
