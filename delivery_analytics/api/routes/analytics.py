"""Analytics endpoints computing dashboard rollups from a posted record batch."""

from __future__ import annotations

import logging
from typing import Callable, List, Tuple, TypeVar

from fastapi import APIRouter, HTTPException

from delivery_analytics.schemas import AnalyticsRequest, RankingRequest
from delivery_analytics.services.aggregator import RankingEntry
from delivery_analytics.services.records import OrderRecord
from delivery_analytics.services.rollup import (
    CustomerSummary,
    DeliveryPerformance,
    DurationStats,
    HourlyBucket,
    MetricReport,
    RetentionSummary,
    RevenueSummary,
    RollupConfig,
    StatusDistribution,
    build_customer_summary,
    build_delivery_performance,
    build_duration_stats,
    build_hourly_distribution,
    build_report,
    build_retention,
    build_revenue_summary,
    build_status_distribution,
    rank_dimension,
    scope_records,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["Analytics"])

T = TypeVar("T")


@router.post("/report", response_model=MetricReport)
async def analytics_report_endpoint(payload: AnalyticsRequest) -> MetricReport:
    return _compute(payload, build_report)


@router.post("/summary", response_model=RevenueSummary)
async def analytics_summary_endpoint(payload: AnalyticsRequest) -> RevenueSummary:
    return _compute(payload, build_revenue_summary)


@router.post("/status-distribution", response_model=StatusDistribution)
async def analytics_status_endpoint(payload: AnalyticsRequest) -> StatusDistribution:
    return _compute(payload, lambda records, config: build_status_distribution(records, config.ranges()[0]))


@router.post("/rankings", response_model=List[RankingEntry])
async def analytics_rankings_endpoint(payload: RankingRequest) -> List[RankingEntry]:
    return _compute(
        payload,
        lambda records, config: rank_dimension(records, payload.dimension, config, metric=payload.metric),
    )


@router.post("/retention", response_model=RetentionSummary)
async def analytics_retention_endpoint(payload: AnalyticsRequest) -> RetentionSummary:
    return _compute(payload, lambda records, config: build_retention(records, config.ranges()[0]))


@router.post("/durations", response_model=DurationStats)
async def analytics_durations_endpoint(payload: AnalyticsRequest) -> DurationStats:
    return _compute(payload, build_duration_stats)


@router.post("/hourly", response_model=List[HourlyBucket])
async def analytics_hourly_endpoint(payload: AnalyticsRequest) -> List[HourlyBucket]:
    return _compute(
        payload,
        lambda records, config: build_hourly_distribution(records, config.ranges()[0], config.tz),
    )


@router.post("/delivery-performance", response_model=DeliveryPerformance)
async def analytics_delivery_endpoint(payload: AnalyticsRequest) -> DeliveryPerformance:
    return _compute(
        payload,
        lambda records, config: build_delivery_performance(records, config.ranges()[0], config),
    )


@router.post("/customer-summary", response_model=CustomerSummary)
async def analytics_customer_endpoint(payload: AnalyticsRequest) -> CustomerSummary:
    return _compute(payload, build_customer_summary)


def _compute(payload: AnalyticsRequest, builder: Callable[[List[OrderRecord], RollupConfig], T]) -> T:
    """Run ``builder`` on the scoped batch, mapping contract errors to HTTP 400."""

    try:
        records, config = _prepare(payload)
        return builder(records, config)
    except ValueError as exc:
        logger.warning("Analytics request rejected: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _prepare(payload: AnalyticsRequest) -> Tuple[List[OrderRecord], RollupConfig]:
    records = scope_records(
        payload.records,
        restaurant_id=payload.restaurant_id,
        driver_id=payload.driver_id,
        customer_id=payload.customer_id,
    )
    return records, payload.to_config()


__all__ = ["router"]
