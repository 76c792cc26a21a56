"""Assemble dashboard metric reports from a batch of order records.

Every builder is a pure function of the records it receives and of an
explicit ``RollupConfig``; nothing reads the system clock. The admin,
restaurant, driver and customer screens are thin callers that pick the
builder, the period and, when needed, pre-filter the batch with
``scope_records``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, field_validator

from delivery_analytics.config.settings import (
    DEFAULT_ESTIMATED_MINUTES,
    DEFAULT_MONTH_ALIGNMENT,
    DEFAULT_TOP_N,
    DEFAULT_WEEK_ALIGNMENT,
    FALLBACK_DURATION_MINUTES,
    INCLUDE_UNDATED_IN_LIFETIME,
    ON_TIME_GRACE_MINUTES,
)
from delivery_analytics.services.aggregator import (
    PercentageChange,
    RankingEntry,
    average,
    count_by_status,
    count_orders,
    percentage_change,
    share,
    sum_delivery_fees,
    sum_revenue,
    summarize_groups,
    summarize_line_items,
    top_n,
)
from delivery_analytics.services.classifier import (
    WEEKDAYS,
    KeyFn,
    all_time,
    bucket_by_day,
    bucket_by_hour_of_day,
    bucket_by_weekday,
    by_cuisine,
    by_customer,
    by_driver,
    by_region,
    by_restaurant,
    classify,
    group_by,
)
from delivery_analytics.services.periods import (
    PERIODS,
    Alignment,
    PeriodName,
    TimeRange,
    ensure_now,
    resolve_period,
)
from delivery_analytics.services.records import ORDER_STATUSES, OrderRecord, normalize_records

logger = logging.getLogger(__name__)


class RollupConfig(BaseModel):
    """Per-invocation settings; defaults come from the environment."""

    now: datetime
    period: PeriodName = "month"
    top_n: int = Field(default=DEFAULT_TOP_N, ge=0)
    week_alignment: Alignment = DEFAULT_WEEK_ALIGNMENT
    month_alignment: Alignment = DEFAULT_MONTH_ALIGNMENT
    tiebreak: Literal["lexicographic", "insertion"] = "lexicographic"
    include_undated_in_lifetime: bool = INCLUDE_UNDATED_IN_LIFETIME
    fallback_duration_minutes: float = Field(default=FALLBACK_DURATION_MINUTES, ge=0)
    on_time_grace_minutes: float = Field(default=ON_TIME_GRACE_MINUTES, ge=0)
    default_estimated_minutes: float = Field(default=DEFAULT_ESTIMATED_MINUTES, gt=0)

    @field_validator("now", mode="after")
    @classmethod
    def _aware_now(cls, value: datetime) -> datetime:
        return ensure_now(value)

    @property
    def tz(self) -> Optional[tzinfo]:
        return self.now.tzinfo

    def ranges(self, period: Optional[str] = None) -> Tuple[TimeRange, TimeRange]:
        return resolve_period(
            period or self.period,
            self.now,
            week_alignment=self.week_alignment,
            month_alignment=self.month_alignment,
        )


class PeriodComparison(BaseModel):
    period: str
    current_range: TimeRange
    previous_range: TimeRange
    revenue_current: float
    revenue_previous: float
    revenue_change: PercentageChange
    orders_current: int
    orders_previous: int
    orders_change: PercentageChange
    delivered_orders: int
    average_order_value: float


class RevenueSummary(BaseModel):
    today: PeriodComparison
    week: PeriodComparison
    month: PeriodComparison
    year: PeriodComparison


class StatusDistribution(BaseModel):
    total: int
    counts: Dict[str, int]
    percentages: Dict[str, float]


class Rankings(BaseModel):
    cuisines: List[RankingEntry] = Field(default_factory=list)
    restaurants: List[RankingEntry] = Field(default_factory=list)
    items: List[RankingEntry] = Field(default_factory=list)
    drivers: List[RankingEntry] = Field(default_factory=list)
    regions: List[RankingEntry] = Field(default_factory=list)
    customers: List[RankingEntry] = Field(default_factory=list)


class RetentionSummary(BaseModel):
    active_customers: int
    new_customers: int
    returning_customers: int
    retention_rate: float
    repeat_customers: int
    repeat_customer_rate: float
    anonymous_orders: int


class DurationAverage(BaseModel):
    """Average duration in minutes.

    ``is_fallback`` is set when ``minutes`` is the configured placeholder
    rather than a measurement.
    """

    minutes: float
    sample_size: int
    is_fallback: bool = False


class DurationStats(BaseModel):
    preparation: DurationAverage
    delivery: DurationAverage


class HourlyBucket(BaseModel):
    hour: int
    orders: int
    revenue: float


class DailyBucket(BaseModel):
    day: date
    orders: int
    revenue: float


class WeekdayBucket(BaseModel):
    day: str
    deliveries: int
    earnings: float


class DriverEarnings(BaseModel):
    today: float
    week: float
    month: float
    lifetime: float


class DeliveryPerformance(BaseModel):
    deliveries: int
    completed: int
    cancelled: int
    completion_rate: float
    on_time_percentage: float
    average_rating: float
    rating_count: int
    average_delivery_minutes: float
    earnings: DriverEarnings
    by_weekday: List[WeekdayBucket]


class CustomerSummary(BaseModel):
    total: int
    completed: int
    cancelled: int
    active: int
    total_spent: float


class LifetimeTotals(BaseModel):
    revenue: float
    orders: int
    delivered_orders: int
    includes_undated: bool
    undated_excluded: int


class MetricReport(BaseModel):
    generated_at: datetime
    period: str
    current_range: TimeRange
    previous_range: TimeRange
    record_count: int
    is_empty: bool
    summary: PeriodComparison
    revenue_summary: RevenueSummary
    status_distribution: StatusDistribution
    rankings: Rankings
    retention: RetentionSummary
    durations: DurationStats
    hourly: List[HourlyBucket]
    timeline: List[DailyBucket]
    delivery: DeliveryPerformance
    customers: CustomerSummary
    lifetime: LifetimeTotals


# dimension -> (key function, ranking metric)
RANKING_DIMENSIONS: Dict[str, Tuple[KeyFn, str]] = {
    "cuisines": (by_cuisine, "total"),
    "restaurants": (by_restaurant, "total"),
    "drivers": (by_driver, "count"),
    "regions": (by_region, "total"),
    "customers": (by_customer, "total"),
}


def scope_records(
    records: Optional[Iterable[Any]],
    *,
    restaurant_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    customer_id: Optional[str] = None,
) -> List[OrderRecord]:
    """Restrict a batch to one restaurant, driver and/or customer."""

    batch = normalize_records(records)
    if restaurant_id:
        batch = [record for record in batch if restaurant_id in (record.restaurant_id, record.restaurant_name)]
    if driver_id:
        batch = [record for record in batch if driver_id in (record.driver_id, record.driver_name)]
    if customer_id:
        batch = [record for record in batch if customer_id in (record.customer_id, record.customer_email)]
    return batch


def build_period_comparison(
    records: Optional[Iterable[Any]],
    period: str,
    config: RollupConfig,
) -> PeriodComparison:
    batch = normalize_records(records)
    current_range, previous_range = config.ranges(period)
    current = classify(batch, current_range)
    previous = classify(batch, previous_range)

    revenue_current = sum_revenue(current)
    revenue_previous = sum_revenue(previous)
    orders_current = count_orders(current)
    orders_previous = count_orders(previous)

    return PeriodComparison(
        period=period,
        current_range=current_range,
        previous_range=previous_range,
        revenue_current=revenue_current,
        revenue_previous=revenue_previous,
        revenue_change=percentage_change(revenue_current, revenue_previous),
        orders_current=orders_current,
        orders_previous=orders_previous,
        orders_change=percentage_change(orders_current, orders_previous),
        delivered_orders=count_orders(current, {"delivered"}),
        average_order_value=average(current, lambda record: record.total, lambda record: record.is_delivered),
    )


def build_revenue_summary(records: Optional[Iterable[Any]], config: RollupConfig) -> RevenueSummary:
    batch = normalize_records(records)
    return RevenueSummary(**{period: build_period_comparison(batch, period, config) for period in PERIODS})


def build_status_distribution(
    records: Optional[Iterable[Any]],
    time_range: Optional[TimeRange] = None,
    statuses: Sequence[str] = ORDER_STATUSES,
) -> StatusDistribution:
    """Per-status counts and shares; without a range the whole dated batch is used."""

    batch = normalize_records(records)
    subset = classify(batch, time_range) if time_range is not None else all_time(batch)
    counts = count_by_status(subset, statuses)
    total = sum(counts.values())
    return StatusDistribution(
        total=total,
        counts=counts,
        percentages={status: share(count, total) for status, count in counts.items()},
    )


def build_rankings(
    records: Optional[Iterable[Any]],
    config: RollupConfig,
    time_range: Optional[TimeRange] = None,
) -> Rankings:
    """Top-N per dimension over the configured current period."""

    batch = normalize_records(records)
    if time_range is None:
        time_range, _ = config.ranges()
    subset = classify(batch, time_range)

    rankings: Dict[str, List[RankingEntry]] = {}
    for dimension, (key_fn, metric) in RANKING_DIMENSIONS.items():
        entries = summarize_groups(group_by(subset, key_fn), label_fn=_label_for(dimension))
        rankings[dimension] = top_n(entries, config.top_n, metric=metric, tiebreak=config.tiebreak)
    rankings["items"] = top_n(
        summarize_line_items(subset),
        config.top_n,
        metric="count",
        tiebreak=config.tiebreak,
    )
    return Rankings(**rankings)


def rank_dimension(
    records: Optional[Iterable[Any]],
    dimension: str,
    config: RollupConfig,
    *,
    metric: Optional[str] = None,
    time_range: Optional[TimeRange] = None,
) -> List[RankingEntry]:
    """Top-N for a single dimension, optionally by another metric."""

    batch = normalize_records(records)
    if time_range is None:
        time_range, _ = config.ranges()
    subset = classify(batch, time_range)
    if dimension == "items":
        entries = summarize_line_items(subset)
        default_metric = "count"
    elif dimension in RANKING_DIMENSIONS:
        key_fn, default_metric = RANKING_DIMENSIONS[dimension]
        entries = summarize_groups(group_by(subset, key_fn), label_fn=_label_for(dimension))
    else:
        known = ", ".join(sorted([*RANKING_DIMENSIONS, "items"]))
        raise ValueError(f"Unknown ranking dimension '{dimension}', expected one of {known}")
    return top_n(entries, config.top_n, metric=metric or default_metric, tiebreak=config.tiebreak)


def build_retention(records: Optional[Iterable[Any]], time_range: TimeRange) -> RetentionSummary:
    """New versus returning customers among those ordering inside ``time_range``.

    A customer is returning when their first dated order predates the range.
    Orders that carry no customer identity are reported as anonymous.
    """

    batch = normalize_records(records)
    first_seen: Dict[str, datetime] = {}
    for record in batch:
        key = record.customer_key
        if key is None or record.created_at is None:
            continue
        seen = first_seen.get(key)
        if seen is None or record.created_at < seen:
            first_seen[key] = record.created_at

    period_orders: Dict[str, int] = {}
    anonymous = 0
    for record in classify(batch, time_range):
        key = record.customer_key
        if key is None:
            anonymous += 1
            continue
        period_orders[key] = period_orders.get(key, 0) + 1

    new_customers = sum(1 for key in period_orders if first_seen[key] >= time_range.start)
    returning = len(period_orders) - new_customers
    repeat = sum(1 for count in period_orders.values() if count >= 2)

    return RetentionSummary(
        active_customers=len(period_orders),
        new_customers=new_customers,
        returning_customers=returning,
        retention_rate=share(returning, new_customers + returning),
        repeat_customers=repeat,
        repeat_customer_rate=share(repeat, len(period_orders)),
        anonymous_orders=anonymous,
    )


def build_duration_stats(records: Optional[Iterable[Any]], config: RollupConfig) -> DurationStats:
    """Average confirmed→delivered and picked-up→delivered minutes."""

    batch = normalize_records(records)
    return DurationStats(
        preparation=_duration_average(batch, "confirmed_at", config.fallback_duration_minutes),
        delivery=_duration_average(batch, "picked_up_at", config.fallback_duration_minutes),
    )


def build_hourly_distribution(
    records: Optional[Iterable[Any]],
    time_range: TimeRange,
    tz: Optional[tzinfo] = None,
) -> List[HourlyBucket]:
    batch = normalize_records(records)
    buckets = bucket_by_hour_of_day(classify(batch, time_range), tz)
    return [
        HourlyBucket(hour=hour, orders=len(bucket), revenue=sum_revenue(bucket))
        for hour, bucket in buckets.items()
    ]


def build_daily_timeline(
    records: Optional[Iterable[Any]],
    time_range: TimeRange,
    tz: Optional[tzinfo] = None,
) -> List[DailyBucket]:
    """One row per day of ``time_range``; open-ended ranges stop at the last order."""

    batch = normalize_records(records)
    subset = classify(batch, time_range)
    if time_range.end is not None:
        last_instant = max(time_range.start, time_range.end - timedelta(microseconds=1))
    else:
        dated = [record.created_at for record in subset if record.created_at is not None]
        last_instant = max(dated) if dated else time_range.start
    buckets = bucket_by_day(subset, time_range.start, last_instant, tz)
    return [
        DailyBucket(day=day, orders=len(bucket), revenue=sum_revenue(bucket))
        for day, bucket in buckets.items()
    ]


def build_delivery_performance(
    records: Optional[Iterable[Any]],
    time_range: TimeRange,
    config: RollupConfig,
) -> DeliveryPerformance:
    """Completion, punctuality, rating and earnings figures for deliveries."""

    batch = normalize_records(records)
    subset = classify(batch, time_range)
    completed = [record for record in subset if record.is_delivered]
    cancelled = count_orders(subset, {"cancelled"})

    timed = 0
    on_time = 0
    for record in completed:
        minutes = _minutes_between(record.picked_up_at, record.delivered_at)
        if minutes is None:
            continue
        timed += 1
        allowed = (record.estimated_delivery_minutes or config.default_estimated_minutes) + config.on_time_grace_minutes
        if minutes <= allowed:
            on_time += 1

    rated = [record for record in completed if record.rating is not None]
    weekdays = bucket_by_weekday(subset, config.tz)

    return DeliveryPerformance(
        deliveries=len(subset),
        completed=len(completed),
        cancelled=cancelled,
        completion_rate=share(len(completed), len(subset)),
        on_time_percentage=share(on_time, timed),
        average_rating=average(rated, lambda record: record.rating),
        rating_count=len(rated),
        average_delivery_minutes=average(
            completed, lambda record: _minutes_between(record.picked_up_at, record.delivered_at)
        ),
        earnings=build_driver_earnings(batch, config),
        by_weekday=[
            WeekdayBucket(
                day=day,
                deliveries=count_orders(weekdays[day], {"delivered"}),
                earnings=sum_delivery_fees(weekdays[day]),
            )
            for day in WEEKDAYS
        ],
    )


def build_driver_earnings(records: Optional[Iterable[Any]], config: RollupConfig) -> DriverEarnings:
    """Delivery fees of delivered orders for the current day, week, month and lifetime."""

    batch = normalize_records(records)
    earnings = {
        period: sum_delivery_fees(classify(batch, config.ranges(period)[0]))
        for period in ("today", "week", "month")
    }
    lifetime = all_time(batch, include_undated=config.include_undated_in_lifetime)
    return DriverEarnings(lifetime=sum_delivery_fees(lifetime), **earnings)


def build_customer_summary(records: Optional[Iterable[Any]], config: RollupConfig) -> CustomerSummary:
    """Lifetime order counts and spend; undated orders follow ``include_undated_in_lifetime``."""

    batch = all_time(normalize_records(records), include_undated=config.include_undated_in_lifetime)
    return CustomerSummary(
        total=len(batch),
        completed=sum(1 for record in batch if record.is_delivered),
        cancelled=sum(1 for record in batch if record.is_cancelled),
        active=sum(1 for record in batch if record.is_active),
        total_spent=sum_revenue(batch),
    )


def build_lifetime_totals(records: Optional[Iterable[Any]], config: RollupConfig) -> LifetimeTotals:
    batch = normalize_records(records)
    lifetime = all_time(batch, include_undated=config.include_undated_in_lifetime)
    undated = sum(1 for record in batch if record.created_at is None)
    return LifetimeTotals(
        revenue=sum_revenue(lifetime),
        orders=len(lifetime),
        delivered_orders=count_orders(lifetime, {"delivered"}),
        includes_undated=config.include_undated_in_lifetime,
        undated_excluded=0 if config.include_undated_in_lifetime else undated,
    )


def build_report(records: Optional[Iterable[Any]], config: RollupConfig) -> MetricReport:
    """Full dashboard report for ``config.period``."""

    batch = normalize_records(records)
    current_range, previous_range = config.ranges()
    current = classify(batch, current_range)

    revenue_summary = build_revenue_summary(batch, config)
    report = MetricReport(
        generated_at=config.now,
        period=config.period,
        current_range=current_range,
        previous_range=previous_range,
        record_count=len(batch),
        is_empty=not current,
        summary=getattr(revenue_summary, config.period),
        revenue_summary=revenue_summary,
        status_distribution=build_status_distribution(batch, current_range),
        rankings=build_rankings(batch, config, current_range),
        retention=build_retention(batch, current_range),
        durations=build_duration_stats(current, config),
        hourly=build_hourly_distribution(batch, current_range, config.tz),
        timeline=build_daily_timeline(batch, current_range, config.tz),
        delivery=build_delivery_performance(batch, current_range, config),
        customers=build_customer_summary(batch, config),
        lifetime=build_lifetime_totals(batch, config),
    )
    logger.debug(
        "Built %s report: %s records, %s in current period",
        config.period,
        len(batch),
        len(current),
    )
    return report


def _label_for(dimension: str):
    if dimension == "restaurants":
        return lambda key, records: _first(record.restaurant_name for record in records)
    if dimension == "drivers":
        return lambda key, records: _first(record.driver_name for record in records)
    if dimension == "customers":
        return lambda key, records: _first(record.customer_email for record in records)
    return None


def _first(values: Iterable[Optional[str]]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


def _duration_average(records: List[OrderRecord], start_field: str, fallback: float) -> DurationAverage:
    if not records:
        return DurationAverage(minutes=fallback, sample_size=0, is_fallback=True)

    def extractor(record: OrderRecord) -> Optional[float]:
        return _minutes_between(getattr(record, start_field), record.delivered_at)

    sample_size = sum(1 for record in records if extractor(record) is not None)
    return DurationAverage(minutes=average(records, extractor), sample_size=sample_size)


def _minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None or end < start:
        return None
    return (end - start).total_seconds() / 60


__all__ = [
    "CustomerSummary",
    "DailyBucket",
    "DeliveryPerformance",
    "DriverEarnings",
    "DurationAverage",
    "DurationStats",
    "HourlyBucket",
    "LifetimeTotals",
    "MetricReport",
    "PeriodComparison",
    "RANKING_DIMENSIONS",
    "Rankings",
    "RetentionSummary",
    "RevenueSummary",
    "RollupConfig",
    "StatusDistribution",
    "WeekdayBucket",
    "build_customer_summary",
    "build_daily_timeline",
    "build_delivery_performance",
    "build_driver_earnings",
    "build_duration_stats",
    "build_hourly_distribution",
    "build_lifetime_totals",
    "build_period_comparison",
    "build_rankings",
    "build_report",
    "build_retention",
    "build_revenue_summary",
    "build_status_distribution",
    "rank_dimension",
    "scope_records",
]
