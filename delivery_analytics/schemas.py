from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from delivery_analytics.config.settings import (
    DEFAULT_MONTH_ALIGNMENT,
    DEFAULT_TOP_N,
    DEFAULT_WEEK_ALIGNMENT,
    INCLUDE_UNDATED_IN_LIFETIME,
)
from delivery_analytics.services.rollup import RollupConfig


class AnalyticsRequest(BaseModel):
    records: List[Any] = Field(..., description="Order documents supplied by the data layer")
    now: datetime = Field(..., description="Instant the report is computed for")
    period: Literal["today", "week", "month", "year"] = "month"
    top_n: int = Field(default=DEFAULT_TOP_N, ge=0)
    week_alignment: Literal["rolling", "calendar"] = DEFAULT_WEEK_ALIGNMENT
    month_alignment: Literal["rolling", "calendar"] = DEFAULT_MONTH_ALIGNMENT
    tiebreak: Literal["lexicographic", "insertion"] = "lexicographic"
    include_undated_in_lifetime: bool = INCLUDE_UNDATED_IN_LIFETIME
    restaurant_id: Optional[str] = Field(default=None, description="Limit the batch to one restaurant")
    driver_id: Optional[str] = Field(default=None, description="Limit the batch to one driver")
    customer_id: Optional[str] = Field(default=None, description="Limit the batch to one customer")

    def to_config(self) -> RollupConfig:
        return RollupConfig(
            now=self.now,
            period=self.period,
            top_n=self.top_n,
            week_alignment=self.week_alignment,
            month_alignment=self.month_alignment,
            tiebreak=self.tiebreak,
            include_undated_in_lifetime=self.include_undated_in_lifetime,
        )


class RankingRequest(AnalyticsRequest):
    dimension: Literal["cuisines", "restaurants", "items", "drivers", "regions", "customers"]
    metric: Optional[Literal["total", "count"]] = None
