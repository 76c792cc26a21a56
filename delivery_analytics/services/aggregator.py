"""Numeric reductions over batches of order records."""

from __future__ import annotations

import math
from typing import Any, Callable, Collection, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from delivery_analytics.services.classifier import group_line_items
from delivery_analytics.services.records import (
    ORDER_STATUSES,
    TERMINAL_SUCCESS_STATUSES,
    OrderRecord,
)

RANKING_METRICS = ("total", "count")


class PercentageChange(BaseModel):
    """Signed change between two periods, in percent."""

    value: float
    is_positive: bool


class RankingEntry(BaseModel):
    """Totals for one grouping key."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    count: int
    total: float


def sum_revenue(
    records: Iterable[OrderRecord],
    success_statuses: Collection[str] = TERMINAL_SUCCESS_STATUSES,
) -> float:
    return math.fsum(record.total for record in records if record.status in success_statuses)


def sum_delivery_fees(
    records: Iterable[OrderRecord],
    success_statuses: Collection[str] = TERMINAL_SUCCESS_STATUSES,
) -> float:
    return math.fsum(record.delivery_fee for record in records if record.status in success_statuses)


def count_orders(records: Iterable[OrderRecord], statuses: Optional[Collection[str]] = None) -> int:
    if statuses is None:
        return sum(1 for _ in records)
    return sum(1 for record in records if record.status in statuses)


def count_by_status(
    records: Iterable[OrderRecord],
    statuses: Sequence[str] = ORDER_STATUSES,
) -> Dict[str, int]:
    """Count records per status; the keys are exactly ``statuses``, zeros included."""

    counts: Dict[str, int] = {status: 0 for status in statuses}
    for record in records:
        if record.status in counts:
            counts[record.status] += 1
    return counts


def average(
    records: Iterable[OrderRecord],
    extractor: Callable[[OrderRecord], Any],
    predicate: Optional[Callable[[OrderRecord], bool]] = None,
) -> float:
    """Mean of ``extractor`` over the records matching ``predicate``.

    Records for which the extractor yields ``None`` or a non-number are left
    out. An empty selection averages to ``0.0``.
    """

    values: List[float] = []
    for record in records:
        if predicate is not None and not predicate(record):
            continue
        value = _as_number(extractor(record))
        if value is not None:
            values.append(value)
    if not values:
        return 0.0
    return math.fsum(values) / len(values)


def percentage_change(current: float, previous: float) -> PercentageChange:
    """Growth of ``current`` over ``previous``.

    A previous value of zero reads as 0% when nothing happened in either
    period and as 100% (entirely new activity) otherwise.
    """

    current = float(current or 0)
    previous = float(previous or 0)
    if previous == 0:
        value = 0.0 if current == 0 else 100.0
    else:
        value = (current - previous) / previous * 100
    return PercentageChange(value=value, is_positive=current >= previous)


def share(part: float, whole: float) -> float:
    if not whole or whole <= 0:
        return 0.0
    return part / whole * 100


def summarize_groups(
    groups: Mapping[str, Sequence[OrderRecord]],
    label_fn: Optional[Callable[[str, Sequence[OrderRecord]], Optional[str]]] = None,
    success_statuses: Collection[str] = TERMINAL_SUCCESS_STATUSES,
) -> List[RankingEntry]:
    """Order count and recognised revenue for every group, in group order."""

    entries: List[RankingEntry] = []
    for key, records in groups.items():
        label = label_fn(key, records) if label_fn is not None else None
        entries.append(
            RankingEntry(
                key=key,
                label=label or key,
                count=len(records),
                total=sum_revenue(records, success_statuses),
            )
        )
    return entries


def summarize_line_items(
    records: Iterable[OrderRecord],
    success_statuses: Collection[str] = TERMINAL_SUCCESS_STATUSES,
) -> List[RankingEntry]:
    """Units sold and recognised line revenue per menu item name."""

    entries: List[RankingEntry] = []
    for name, lines in group_line_items(records).items():
        units = sum(item.quantity for _, item in lines)
        revenue = math.fsum(item.line_subtotal for record, item in lines if record.status in success_statuses)
        entries.append(RankingEntry(key=name, label=name, count=units, total=revenue))
    return entries


def top_n(
    entries: Iterable[RankingEntry],
    n: int,
    *,
    metric: str = "total",
    tiebreak: str = "lexicographic",
) -> List[RankingEntry]:
    """Highest ``n`` entries by ``metric``; the input is left untouched.

    Ties are ordered by key (``lexicographic``) or keep their incoming order
    (``insertion``).
    """

    if n is None or n < 0:
        raise ValueError(f"n must be a non-negative integer, got {n!r}")
    if metric not in RANKING_METRICS:
        raise ValueError(f"Unknown ranking metric '{metric}', expected 'total' or 'count'")
    if tiebreak == "lexicographic":
        ranked = sorted(entries, key=lambda entry: (-getattr(entry, metric), entry.key))
    elif tiebreak == "insertion":
        ranked = sorted(entries, key=lambda entry: -getattr(entry, metric))
    else:
        raise ValueError(f"Unknown tiebreak '{tiebreak}', expected 'lexicographic' or 'insertion'")
    return ranked[:n]


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


__all__ = [
    "PercentageChange",
    "RankingEntry",
    "average",
    "count_by_status",
    "count_orders",
    "percentage_change",
    "share",
    "sum_delivery_fees",
    "sum_revenue",
    "summarize_groups",
    "summarize_line_items",
    "top_n",
]
