from datetime import datetime, timezone
from pathlib import Path
import random
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from delivery_analytics.services.aggregator import (
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
from delivery_analytics.services.classifier import by_cuisine, classify, group_by
from delivery_analytics.services.periods import TimeRange
from delivery_analytics.services.records import ORDER_STATUSES, OrderRecord


def _order(order_id: str, total: float = 0, status: str = "delivered", **fields) -> OrderRecord:
    return OrderRecord(id=order_id, total=total, status=status, **fields)


def _entry(key: str, total: float, count: int = 1) -> RankingEntry:
    return RankingEntry(key=key, label=key, count=count, total=total)


def test_delivered_and_cancelled_orders_example() -> None:
    records = [
        _order("a", 10),
        _order("b", 20),
        _order("c", 30),
        _order("d", 5, status="cancelled"),
    ]

    assert sum_revenue(records) == pytest.approx(60)
    assert count_orders(records) == 4
    assert average(records, lambda record: record.total, lambda record: record.is_delivered) == pytest.approx(20)


def test_sum_revenue_of_nothing_is_zero() -> None:
    assert sum_revenue([]) == 0
    assert sum_delivery_fees([]) == 0


def test_revenue_ignores_order_and_grows_with_deliveries() -> None:
    records = [_order(str(index), float(index), "delivered" if index % 2 else "pending") for index in range(20)]
    shuffled = list(records)
    random.Random(7).shuffle(shuffled)

    assert sum_revenue(shuffled) == sum_revenue(records)
    more = records + [_order("extra", 3)]
    assert sum_revenue(more) >= sum_revenue(records)


def test_delivery_fees_only_count_delivered_orders() -> None:
    records = [
        _order("a", delivery_fee=4),
        _order("b", delivery_fee=6, status="cancelled"),
    ]

    assert sum_delivery_fees(records) == pytest.approx(4)


def test_count_by_status_reports_every_status() -> None:
    counts = count_by_status([_order("a"), _order("b", status="cancelled"), _order("c", status="placed")])

    assert list(counts) == list(ORDER_STATUSES)
    assert counts["delivered"] == 1
    assert counts["cancelled"] == 1
    assert counts["pending"] == 1
    assert counts["preparing"] == 0


def test_count_by_status_key_set_comes_from_the_declared_statuses() -> None:
    counts = count_by_status([_order("a"), _order("b", status="ready")], ("delivered", "cancelled"))

    assert counts == {"delivered": 1, "cancelled": 0}


def test_status_counts_add_up_to_the_records_in_range() -> None:
    window = TimeRange(
        start=datetime(2024, 5, 1, tzinfo=timezone.utc),
        end=datetime(2024, 5, 8, tzinfo=timezone.utc),
    )
    statuses = ["pending", "delivered", "cancelled", "mystery", None, "on_the_way"]
    records = [
        OrderRecord(id=str(day), status=statuses[day % len(statuses)], created_at=datetime(2024, 5, day, tzinfo=timezone.utc))
        for day in range(1, 15)
    ] + [OrderRecord(id="undated", status="delivered")]

    in_range = classify(records, window)

    assert sum(count_by_status(in_range).values()) == len(in_range) == 7


def test_average_of_an_empty_selection_is_zero() -> None:
    records = [_order("a", 10, status="cancelled")]

    assert average([], lambda record: record.total) == 0.0
    assert average(records, lambda record: record.total, lambda record: record.is_delivered) == 0.0


def test_average_skips_missing_values() -> None:
    records = [_order("a", rating=4), _order("b"), _order("c", rating=2)]

    assert average(records, lambda record: record.rating) == pytest.approx(3.0)


@pytest.mark.parametrize(
    "current,previous,value,is_positive",
    [
        (0, 0, 0.0, True),
        (25, 0, 100.0, True),
        (0.01, 0, 100.0, True),
        (150, 100, 50.0, True),
        (50, 100, -50.0, False),
        (100, 100, 0.0, True),
        (0, 40, -100.0, False),
    ],
)
def test_percentage_change(current, previous, value, is_positive) -> None:
    change = percentage_change(current, previous)

    assert change.value == pytest.approx(value)
    assert change.is_positive is is_positive


def test_share_of_nothing_is_zero() -> None:
    assert share(5, 0) == 0.0
    assert share(1, 4) == pytest.approx(25.0)


def test_top_cuisine_is_ranked_by_revenue_not_volume() -> None:
    records = [_order(f"it-{index}", 10, cuisine="Italian") for index in range(5)]
    records.append(_order("th-1", 100, cuisine="Thai"))

    entries = summarize_groups(group_by(records, by_cuisine))
    ranked = top_n(entries, 1)

    assert [(entry.key, entry.total) for entry in ranked] == [("Thai", 100)]
    assert top_n(entries, 1, metric="count")[0].key == "Italian"


def test_top_n_breaks_ties_by_key() -> None:
    entries = [_entry("bravo", 10), _entry("alpha", 10), _entry("charlie", 5), _entry("delta", 20)]

    ranked = top_n(entries, 3)

    assert [entry.key for entry in ranked] == ["delta", "alpha", "bravo"]
    assert top_n(list(reversed(entries)), 3) == ranked


def test_top_n_insertion_tiebreak_keeps_incoming_order() -> None:
    entries = [_entry("bravo", 10), _entry("alpha", 10)]

    assert [entry.key for entry in top_n(entries, 2, tiebreak="insertion")] == ["bravo", "alpha"]


def test_top_n_length_and_input_are_preserved() -> None:
    entries = [_entry("a", 3), _entry("b", 1), _entry("c", 2)]
    snapshot = list(entries)

    assert len(top_n(entries, 10)) == 3
    assert top_n(entries, 0) == []
    assert [entry.total for entry in top_n(entries, 3)] == [3, 2, 1]
    assert entries == snapshot


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n": -1},
        {"n": 3, "metric": "margin"},
        {"n": 3, "tiebreak": "random"},
    ],
)
def test_top_n_rejects_invalid_arguments(kwargs) -> None:
    with pytest.raises(ValueError):
        top_n([_entry("a", 1)], **kwargs)


def test_summarize_groups_counts_all_orders_but_only_delivered_revenue() -> None:
    groups = {"r-1": [_order("a", 10), _order("b", 7, status="cancelled")]}

    (entry,) = summarize_groups(groups, label_fn=lambda key, records: "Roma")

    assert entry.key == "r-1"
    assert entry.label == "Roma"
    assert entry.count == 2
    assert entry.total == pytest.approx(10)


def test_summarize_line_items_counts_units_and_delivered_revenue() -> None:
    records = [
        _order("a", items=[{"name": "Margherita", "quantity": 2, "price": 10}]),
        _order("b", status="cancelled", items=[{"name": "Margherita", "quantity": 1, "price": 10}]),
        _order("c", items=[{"name": "Tiramisu", "quantity": 1, "price": 6}]),
    ]

    entries = {entry.key: entry for entry in summarize_line_items(records)}

    assert entries["Margherita"].count == 3
    assert entries["Margherita"].total == pytest.approx(20)
    assert entries["Tiramisu"].total == pytest.approx(6)


def test_revenue_sums_are_exact_whatever_the_order() -> None:
    records = [_order("a", 0.1), _order("b", 0.2), _order("c", 0.3)]

    assert sum_revenue(records) == 0.6
    assert sum_revenue(list(reversed(records))) == sum_revenue(records)
    assert average(list(reversed(records)), lambda record: record.total) == average(records, lambda record: record.total)
