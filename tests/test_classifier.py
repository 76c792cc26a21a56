from datetime import date, datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from delivery_analytics.services.classifier import (
    UNKNOWN_KEY,
    WEEKDAYS,
    all_time,
    bucket_by_day,
    bucket_by_hour_of_day,
    bucket_by_weekday,
    by_cuisine,
    by_driver,
    by_restaurant,
    classify,
    group_by,
    group_line_items,
)
from delivery_analytics.services.periods import TimeRange
from delivery_analytics.services.records import OrderRecord


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _order(order_id: str, created_at=None, **fields) -> OrderRecord:
    return OrderRecord(id=order_id, created_at=created_at, **fields)


DAY = TimeRange(start=_utc(2024, 5, 15), end=_utc(2024, 5, 16))


def test_classify_keeps_records_inside_the_half_open_range() -> None:
    records = [
        _order("at-start", _utc(2024, 5, 15)),
        _order("midday", _utc(2024, 5, 15, 12)),
        _order("at-end", _utc(2024, 5, 16)),
        _order("before", _utc(2024, 5, 14, 23, 59)),
        _order("undated"),
    ]

    selected = classify(records, DAY)

    assert [record.id for record in selected] == ["at-start", "midday"]


def test_classify_does_not_touch_the_input() -> None:
    records = [_order("a", _utc(2024, 5, 15, 9)), _order("b")]
    snapshot = list(records)

    classify(records, DAY)

    assert records == snapshot


def test_classify_rejects_a_missing_batch() -> None:
    with pytest.raises(ValueError):
        classify(None, DAY)


def test_all_time_excludes_undated_records_unless_asked() -> None:
    records = [_order("dated", _utc(2020, 1, 1)), _order("undated")]

    assert [record.id for record in all_time(records)] == ["dated"]
    assert [record.id for record in all_time(records, include_undated=True)] == ["dated", "undated"]


def test_group_by_puts_missing_keys_in_the_unknown_bucket() -> None:
    records = [
        _order("1", cuisine="Thai"),
        _order("2", cuisine="Italian"),
        _order("3"),
        _order("4", cuisine="  "),
        _order("5", cuisine="Thai"),
    ]

    groups = group_by(records, by_cuisine)

    assert list(groups) == ["Thai", "Italian", UNKNOWN_KEY]
    assert [record.id for record in groups[UNKNOWN_KEY]] == ["3", "4"]
    assert sum(len(bucket) for bucket in groups.values()) == len(records)


def test_group_by_restaurant_falls_back_to_the_name() -> None:
    records = [
        _order("1", restaurant_id="r-1", restaurant_name="Roma"),
        _order("2", restaurant_name="Bangkok Street"),
    ]

    assert list(group_by(records, by_restaurant)) == ["r-1", "Bangkok Street"]


def test_group_by_driver_uses_id_then_name() -> None:
    records = [_order("1", driver_id="d-1"), _order("2", driver_name="Sam"), _order("3")]

    assert list(group_by(records, by_driver)) == ["d-1", "Sam", UNKNOWN_KEY]


def test_group_line_items_flattens_orders() -> None:
    records = [
        _order("1", items=[{"name": "Pad Thai", "quantity": 2, "price": 9}]),
        _order("2", items=[{"name": "Pad Thai", "quantity": 1, "price": 9}, {"quantity": 1, "price": 3}]),
    ]

    groups = group_line_items(records)

    assert sorted(groups) == ["Pad Thai", UNKNOWN_KEY]
    assert len(groups["Pad Thai"]) == 2


def test_hour_buckets_always_cover_the_whole_day() -> None:
    buckets = bucket_by_hour_of_day([_order("1", _utc(2024, 5, 15, 9, 15)), _order("2")])

    assert list(buckets) == list(range(24))
    assert [record.id for record in buckets[9]] == ["1"]
    assert sum(len(bucket) for bucket in buckets.values()) == 1


def test_hour_buckets_use_the_requested_timezone() -> None:
    lagos_plus_two = timezone(timedelta(hours=2))

    buckets = bucket_by_hour_of_day([_order("late", _utc(2024, 5, 15, 23, 30))], lagos_plus_two)

    assert [record.id for record in buckets[1]] == ["late"]


def test_weekday_buckets_start_on_monday() -> None:
    buckets = bucket_by_weekday([_order("wed", _utc(2024, 5, 15, 12))])

    assert tuple(buckets) == WEEKDAYS
    assert [record.id for record in buckets["Wed"]] == ["wed"]


def test_day_buckets_include_both_ends() -> None:
    records = [_order("mon", _utc(2024, 5, 13, 8)), _order("later", _utc(2024, 5, 20, 8))]

    buckets = bucket_by_day(records, _utc(2024, 5, 13), _utc(2024, 5, 15, 23, 59))

    assert list(buckets) == [date(2024, 5, 13), date(2024, 5, 14), date(2024, 5, 15)]
    assert [record.id for record in buckets[date(2024, 5, 13)]] == ["mon"]
    assert all(not bucket for day, bucket in buckets.items() if day != date(2024, 5, 13))
