"""
Field Coercion Helpers

Order and catalog documents come from a loosely-typed document store: the
same concept can live under several field names, numbers arrive as strings,
and any field may be missing. These helpers implement the field-priority
fallbacks and numeric defaults shared by every stage of the engine.

Handles:
- Decimal parsing with currency symbol stripping
- First-non-empty lookups across synonymous field names
- Text normalization for index keys
- The delivered-order status predicate
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional
import re

ZERO = Decimal("0")

# Field-priority lists, highest priority first
LINE_ITEM_ID_FIELDS = ("distributorProductId", "productId", "inventoryId", "id")
LINE_ITEM_NAME_FIELDS = ("productName", "name")
LINE_ITEM_QUANTITY_FIELDS = ("quantity", "qty")
LINE_ITEM_SELLING_PRICE_FIELDS = ("sellingPrice", "price", "unitPrice")
LINE_ITEM_COST_PRICE_FIELDS = ("costPrice", "distributorPrice")

PRODUCT_NAME_FIELDS = ("name", "productName")
PRODUCT_COST_PRICE_FIELDS = ("costPrice", "price", "distributorPrice")
PRODUCT_SELLING_PRICE_FIELDS = ("sellingPrice", "mrp")

ORDER_RETAILER_FIELDS = ("retailerId", "provisionalRetailerId")
ORDER_RETAILER_NAME_FIELDS = ("retailerBusinessName", "retailerName")
ORDER_STATE_FIELDS = ("retailerState", "state")
ORDER_CITY_FIELDS = ("retailerCity", "city")

DELIVERED_STATUSES = ("DELIVERED", "INVOICED")

_CURRENCY_PATTERN = re.compile(r"[$€£¥₹,\s]")

# Decimal exponents outside the float range overflow once multiplied
_MAX_EXPONENT = 308


def to_number(value: Any) -> Decimal:
    """
    Parse a loosely-typed numeric field.

    Ints, floats, Decimals and numeric strings are accepted; currency
    symbols, thousands separators and whitespace are stripped from strings.
    Anything else (None, booleans, NaN, infinities, garbage) becomes 0, as
    do strings whose magnitude is beyond the float range such as "9e999999".
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return ZERO
    elif isinstance(value, str):
        cleaned = _CURRENCY_PATTERN.sub("", value)
        if not cleaned:
            return ZERO
        try:
            number = Decimal(cleaned)
        except (InvalidOperation, ValueError):
            return ZERO
    else:
        return ZERO

    if not number.is_finite() or abs(number.adjusted()) > _MAX_EXPONENT:
        return ZERO
    return number


def first_number(record: Optional[Mapping[str, Any]], *keys: str) -> Decimal:
    """Return the first non-zero numeric value among ``keys``, else 0"""
    if not record:
        return ZERO
    for key in keys:
        number = to_number(record.get(key))
        if number != 0:
            return number
    return ZERO


def first_text(record: Optional[Mapping[str, Any]], *keys: str) -> str:
    """Return the first non-blank text value among ``keys``, else ''"""
    if not record:
        return ""
    for key in keys:
        value = record.get(key)
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def normalize_text(value: Any) -> str:
    """Lowercase and trim a value for index lookups"""
    if value is None:
        return ""
    return str(value).strip().lower()


def is_delivered(order: Mapping[str, Any]) -> bool:
    """
    Delivered-order predicate.

    True when either ``status`` or ``statusCode`` equals DELIVERED or
    INVOICED, case-insensitively. Both fields are checked because upstream
    writers disagree on which one carries the lifecycle state.
    """
    status = str(order.get("status") or "").upper()
    status_code = str(order.get("statusCode") or "").upper()
    return status in DELIVERED_STATUSES or status_code in DELIVERED_STATUSES


def line_items(order: Mapping[str, Any]) -> list:
    """Line items of an order; absent or non-list values yield an empty list"""
    items = order.get("items")
    if not isinstance(items, (list, tuple)):
        return []
    return [item for item in items if isinstance(item, Mapping)]
