"""
Time Window

Calendar-date ranges, trailing windows and timestamp normalization. Order and
product documents carry timestamps in several encodings (datastore
timestamp objects, their serialized dict form, datetimes, epoch numbers,
ISO strings); everything is normalized to a timezone-aware instant before
it is compared.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Mapping, Optional, Union

import structlog

from sales_analytics.config import AnalyticsSettings, get_settings

logger = structlog.get_logger(__name__)

# Datastore timestamp objects expose one of these converters
_CONVERTER_METHODS = ("to_datetime", "ToDatetime", "toDate")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%m/%d/%Y",
    "%d-%m-%Y",
)

# Epoch values above this are milliseconds
_EPOCH_MS_THRESHOLD = 1e11


def ensure_aware(value: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to a naive datetime; aware values pass through"""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def _from_epoch(value: float, tz: tzinfo) -> Optional[datetime]:
    seconds = value / 1000 if abs(value) > _EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=tz)
    except (OverflowError, OSError, ValueError):
        return None


def _from_string(value: str, tz: tzinfo) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        return ensure_aware(datetime.fromisoformat(text.replace("Z", "+00:00")), tz)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return ensure_aware(datetime.strptime(text, fmt), tz)
        except ValueError:
            continue
    return None


def parse_instant(value: Any, tz: tzinfo) -> Optional[datetime]:
    """
    Convert a single timestamp-like value to an aware datetime.

    Returns None when the value is absent or cannot be interpreted, so the
    caller can continue down its fallback chain.
    """
    if value is None or isinstance(value, bool):
        return None

    for method in _CONVERTER_METHODS:
        converter = getattr(value, method, None)
        if callable(converter):
            return parse_instant(converter(), tz)

    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return None
        nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
        try:
            return _from_epoch(float(seconds) + float(nanos) / 1e9, tz)
        except (TypeError, ValueError):
            return None

    if isinstance(value, datetime):
        return ensure_aware(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value), tz)
    if isinstance(value, str):
        return _from_string(value, tz)
    return None


@dataclass(frozen=True)
class TimeWindow:
    """
    Inclusive calendar-date range.

    Boundaries are compared as an exclusive lower bound at midnight of
    ``start_date - 1 day`` and an exclusive upper bound at midnight of
    ``end_date + 1 day``, so both boundary dates match regardless of the
    time of day an order was stamped.

    Example:
        window = TimeWindow(date(2025, 1, 1), date(2025, 1, 31))
        window.contains(window.normalize(order))
    """

    start_date: date
    end_date: date
    settings: Optional[AnalyticsSettings] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.start_date is None or self.end_date is None:
            raise ValueError("TimeWindow requires both start_date and end_date")
        if self.end_date < self.start_date:
            raise ValueError(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )

    @property
    def _settings(self) -> AnalyticsSettings:
        return self.settings or get_settings().analytics

    @property
    def lower_bound(self) -> datetime:
        """Exclusive lower bound"""
        return datetime.combine(
            self.start_date - timedelta(days=1), time.min, tzinfo=self._settings.tzinfo
        )

    @property
    def upper_bound(self) -> datetime:
        """Exclusive upper bound"""
        return datetime.combine(
            self.end_date + timedelta(days=1), time.min, tzinfo=self._settings.tzinfo
        )

    def contains(self, instant: datetime) -> bool:
        """Check whether a normalized instant falls inside the window"""
        instant = ensure_aware(instant, self._settings.tzinfo)
        return self.lower_bound < instant < self.upper_bound

    def normalize(self, record: Any, now: Optional[datetime] = None) -> datetime:
        """Normalize a record's timestamp; see :func:`normalize_timestamp`"""
        return normalize_timestamp(record, now=now, settings=self._settings)


@dataclass(frozen=True)
class TrailingWindow:
    """
    Rolling window of ``days`` x 24 hours ending at ``now``.

    Only the lower bound is enforced: an instant matches when it is
    strictly after ``now - days``. Unlike :class:`TimeWindow` the cutoff
    keeps the time of day, so a 7 day window never spans 8 calendar days.

    Example:
        window = TrailingWindow.ending(7, now=now)
        window.contains(window.normalize(order, now=now))
    """

    cutoff: datetime
    days: int
    settings: Optional[AnalyticsSettings] = field(default=None, compare=False, repr=False)

    @classmethod
    def ending(
        cls,
        days: int,
        now: Optional[datetime] = None,
        settings: Optional[AnalyticsSettings] = None,
    ) -> "TrailingWindow":
        """Window covering the ``days`` x 24 hours before ``now``"""
        if days < 1:
            raise ValueError("Trailing window needs at least one day")
        cfg = settings or get_settings().analytics
        anchor = ensure_aware(now, cfg.tzinfo) if now else datetime.now(cfg.tzinfo)
        return cls(anchor - timedelta(days=days), days, settings=cfg)

    @property
    def _settings(self) -> AnalyticsSettings:
        return self.settings or get_settings().analytics

    def contains(self, instant: datetime) -> bool:
        """Check whether a normalized instant is after the cutoff"""
        return ensure_aware(instant, self._settings.tzinfo) > self.cutoff

    def normalize(self, record: Any, now: Optional[datetime] = None) -> datetime:
        return normalize_timestamp(record, now=now, settings=self._settings)


# Anything the aggregation pass can filter orders by
Window = Union[TimeWindow, TrailingWindow]


def normalize_timestamp(
    record: Any,
    now: Optional[datetime] = None,
    settings: Optional[AnalyticsSettings] = None,
) -> datetime:
    """
    Normalize a document's timestamp to an aware instant.

    Priority:
    1. ``timestamp`` field (wrapped datastore timestamp or raw value)
    2. ``createdAt`` field
    3. ``now``

    A plain timestamp-like value (not a document) is also accepted. Never
    raises: a record without any usable timestamp is treated as created
    "now", which pulls it into any window containing today.

    Args:
        record: Order/product document or a bare timestamp value
        now: Reference instant for the fallback (defaults to current time)
        settings: Analytics settings supplying the timezone

    Returns:
        Timezone-aware datetime
    """
    cfg = settings or get_settings().analytics
    tz = cfg.tzinfo

    if isinstance(record, Mapping) and ("timestamp" in record or "createdAt" in record):
        for key in ("timestamp", "createdAt"):
            instant = parse_instant(record.get(key), tz)
            if instant is not None:
                return instant
    else:
        instant = parse_instant(record, tz)
        if instant is not None:
            return instant

    fallback = ensure_aware(now, tz) if now else datetime.now(tz)
    logger.debug("Timestamp missing, defaulting to now", fallback=fallback.isoformat())
    return fallback
