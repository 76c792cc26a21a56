"""Analytics rollups for the food-delivery dashboards."""

from delivery_analytics.services.aggregator import (
    PercentageChange,
    RankingEntry,
    average,
    count_by_status,
    percentage_change,
    sum_revenue,
    top_n,
)
from delivery_analytics.services.classifier import (
    UNKNOWN_KEY,
    all_time,
    bucket_by_hour_of_day,
    classify,
    group_by,
)
from delivery_analytics.services.periods import TimeRange, resolve_period
from delivery_analytics.services.records import OrderRecord, normalize_records, normalize_timestamp
from delivery_analytics.services.rollup import MetricReport, RollupConfig, build_report

__all__ = [
    "MetricReport",
    "OrderRecord",
    "PercentageChange",
    "RankingEntry",
    "RollupConfig",
    "TimeRange",
    "UNKNOWN_KEY",
    "all_time",
    "average",
    "bucket_by_hour_of_day",
    "build_report",
    "classify",
    "count_by_status",
    "group_by",
    "normalize_records",
    "normalize_timestamp",
    "percentage_change",
    "resolve_period",
    "sum_revenue",
    "top_n",
]
