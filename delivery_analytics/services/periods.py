"""Time windows used to compare a reporting period with the previous one."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

PeriodName = Literal["today", "week", "month", "year"]
Alignment = Literal["rolling", "calendar"]

PERIODS: Tuple[str, ...] = ("today", "week", "month", "year")
ALIGNMENTS: Tuple[str, ...] = ("rolling", "calendar")

ROLLING_DAYS = {"week": 7, "month": 30, "year": 365}


class TimeRange(BaseModel):
    """Half-open interval ``[start, end)``; ``end=None`` is unbounded."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: Optional[datetime] = None

    @field_validator("start", "end")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeRange":
        if self.end is not None and self.end < self.start:
            raise ValueError("end must be on or after start")
        return self

    def contains(self, instant: Optional[datetime]) -> bool:
        if instant is None:
            return False
        if instant < self.start:
            return False
        return self.end is None or instant < self.end


def ensure_now(now: Optional[datetime]) -> datetime:
    """Validate the caller supplied instant; naive values are read as UTC."""

    if now is None:
        raise ValueError("now is required to resolve a period")
    if not isinstance(now, datetime):
        raise ValueError(f"now must be a datetime, got {type(now).__name__}")
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def midnight(now: datetime) -> datetime:
    return ensure_now(now).replace(hour=0, minute=0, second=0, microsecond=0)


def resolve_period(
    period: str,
    now: datetime,
    *,
    week_alignment: str = "rolling",
    month_alignment: str = "rolling",
) -> Tuple[TimeRange, TimeRange]:
    """Return the ``(current, previous)`` ranges for ``period`` relative to ``now``."""

    now = ensure_now(now)
    _check_alignment(week_alignment)
    _check_alignment(month_alignment)

    if period == "today":
        start = midnight(now)
        return (
            TimeRange(start=start, end=start + timedelta(days=1)),
            TimeRange(start=start - timedelta(days=1), end=start),
        )
    if period == "week" and week_alignment == "calendar":
        return _calendar_week(now)
    if period == "month" and month_alignment == "calendar":
        return _calendar_month(now)
    if period in ROLLING_DAYS:
        return _rolling(now, ROLLING_DAYS[period])
    raise ValueError(f"Unknown period '{period}', expected one of {', '.join(PERIODS)}")


def _rolling(now: datetime, days: int) -> Tuple[TimeRange, TimeRange]:
    window = timedelta(days=days)
    return (
        TimeRange(start=now - window, end=now),
        TimeRange(start=now - 2 * window, end=now - window),
    )


def _calendar_week(now: datetime) -> Tuple[TimeRange, TimeRange]:
    monday = midnight(now) - timedelta(days=now.weekday())
    week = timedelta(days=7)
    return (
        TimeRange(start=monday, end=monday + week),
        TimeRange(start=monday - week, end=monday),
    )


def _calendar_month(now: datetime) -> Tuple[TimeRange, TimeRange]:
    first = midnight(now).replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    if first.month == 1:
        previous_first = first.replace(year=first.year - 1, month=12)
    else:
        previous_first = first.replace(month=first.month - 1)
    return (
        TimeRange(start=first, end=next_first),
        TimeRange(start=previous_first, end=first),
    )


def _check_alignment(value: str) -> None:
    if value not in ALIGNMENTS:
        raise ValueError(f"Unknown alignment '{value}', expected 'rolling' or 'calendar'")


__all__ = [
    "ALIGNMENTS",
    "Alignment",
    "PERIODS",
    "PeriodName",
    "TimeRange",
    "ensure_now",
    "midnight",
    "resolve_period",
]
