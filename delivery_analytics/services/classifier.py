"""Partition order records by time range and by grouping dimension."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from delivery_analytics.services.periods import TimeRange
from delivery_analytics.services.records import LineItem, OrderRecord

UNKNOWN_KEY = "unknown"
WEEKDAYS: Tuple[str, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

KeyFn = Callable[[OrderRecord], Optional[str]]


def classify(records: Optional[Sequence[OrderRecord]], time_range: TimeRange) -> List[OrderRecord]:
    """Keep the records whose ``created_at`` falls inside ``time_range``."""

    _require_batch(records)
    if time_range is None:
        raise ValueError("A time range is required.")
    return [record for record in records if time_range.contains(record.created_at)]


def all_time(
    records: Optional[Sequence[OrderRecord]],
    *,
    include_undated: bool = False,
) -> List[OrderRecord]:
    """Lifetime pass-through. Undated records are only kept when asked for."""

    _require_batch(records)
    if include_undated:
        return list(records)
    return [record for record in records if record.created_at is not None]


def group_by(records: Iterable[OrderRecord], key_fn: KeyFn) -> Dict[str, List[OrderRecord]]:
    """Group records by ``key_fn``; missing keys land in the ``unknown`` bucket."""

    groups: Dict[str, List[OrderRecord]] = {}
    for record in records:
        groups.setdefault(_resolve_key(key_fn(record)), []).append(record)
    return groups


def group_line_items(records: Iterable[OrderRecord]) -> Dict[str, List[Tuple[OrderRecord, LineItem]]]:
    groups: Dict[str, List[Tuple[OrderRecord, LineItem]]] = {}
    for record in records:
        for item in record.items:
            groups.setdefault(_resolve_key(item.name), []).append((record, item))
    return groups


def by_restaurant(record: OrderRecord) -> Optional[str]:
    return record.restaurant_key


def by_cuisine(record: OrderRecord) -> Optional[str]:
    return record.cuisine


def by_driver(record: OrderRecord) -> Optional[str]:
    return record.driver_id or record.driver_name


def by_customer(record: OrderRecord) -> Optional[str]:
    return record.customer_key


def by_region(record: OrderRecord) -> Optional[str]:
    return record.region


def by_status(record: OrderRecord) -> Optional[str]:
    return record.status


def bucket_by_hour_of_day(
    records: Iterable[OrderRecord],
    tz: Optional[tzinfo] = None,
) -> Dict[int, List[OrderRecord]]:
    """Always returns the 24 hours, empty ones included."""

    zone = tz or timezone.utc
    buckets: Dict[int, List[OrderRecord]] = {hour: [] for hour in range(24)}
    for record in records:
        if record.created_at is None:
            continue
        buckets[record.created_at.astimezone(zone).hour].append(record)
    return buckets


def bucket_by_weekday(
    records: Iterable[OrderRecord],
    tz: Optional[tzinfo] = None,
) -> Dict[str, List[OrderRecord]]:
    zone = tz or timezone.utc
    buckets: Dict[str, List[OrderRecord]] = {day: [] for day in WEEKDAYS}
    for record in records:
        if record.created_at is None:
            continue
        buckets[WEEKDAYS[record.created_at.astimezone(zone).weekday()]].append(record)
    return buckets


def bucket_by_day(
    records: Iterable[OrderRecord],
    start: datetime,
    end: datetime,
    tz: Optional[tzinfo] = None,
) -> Dict[date, List[OrderRecord]]:
    """One bucket per calendar day between ``start`` and ``end`` (inclusive dates)."""

    zone = tz or timezone.utc
    start_day = start.astimezone(zone).date() if start.tzinfo else start.date()
    end_day = end.astimezone(zone).date() if end.tzinfo else end.date()
    if start_day > end_day:
        start_day, end_day = end_day, start_day

    buckets: Dict[date, List[OrderRecord]] = {}
    cursor = start_day
    while cursor <= end_day:
        buckets[cursor] = []
        cursor += timedelta(days=1)

    for record in records:
        if record.created_at is None:
            continue
        day = record.created_at.astimezone(zone).date()
        if day in buckets:
            buckets[day].append(record)
    return buckets


def _resolve_key(value: Optional[str]) -> str:
    if value is None:
        return UNKNOWN_KEY
    text = str(value).strip()
    return text or UNKNOWN_KEY


def _require_batch(records: Optional[Sequence[OrderRecord]]) -> None:
    if records is None:
        raise ValueError("A record batch is required (got None).")


__all__ = [
    "UNKNOWN_KEY",
    "WEEKDAYS",
    "all_time",
    "bucket_by_day",
    "bucket_by_hour_of_day",
    "bucket_by_weekday",
    "by_cuisine",
    "by_customer",
    "by_driver",
    "by_region",
    "by_restaurant",
    "by_status",
    "classify",
    "group_by",
    "group_line_items",
]
