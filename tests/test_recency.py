"""Tests for recency bucketing of memories."""

from datetime import UTC, datetime, timedelta

import pytest

from companion.memory.models import MemoryEntry
from companion.memory.recency import (
    CANONICAL_LABELS,
    HALF_YEAR,
    LONG_AGO,
    TODAY,
    group_by_recency,
    recency_label,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _memory(fact: str, age_days: float) -> MemoryEntry:
    return MemoryEntry(
        fact=fact,
        conversation_id="c1",
        source_message_id="m1",
        created_at=NOW - timedelta(days=age_days),
    )


@pytest.mark.parametrize(
    ("age_days", "label"),
    [
        (0, TODAY),
        (1, "1 day ago"),
        (3, "3 days ago"),
        (7, "7 days ago"),
        (8, "1 week ago"),
        (14, "1 week ago"),
        (15, "2 weeks ago"),
        (21, "2 weeks ago"),
        (22, "1 month ago"),
        (30, "1 month ago"),
        (31, "2 months ago"),
        (180, "6 months ago"),
        (181, HALF_YEAR),
        (365, HALF_YEAR),
        (366, LONG_AGO),
        (2000, LONG_AGO),
    ],
)
def test_recency_label(age_days: int, label: str) -> None:
    assert recency_label(age_days) == label


def test_every_label_is_canonical() -> None:
    for age in range(0, 400):
        assert recency_label(age) in CANONICAL_LABELS


def test_group_empty() -> None:
    assert group_by_recency([], now=NOW) == []


def test_group_orders_buckets_newest_first() -> None:
    memories = [
        _memory("old", 400),
        _memory("today", 0.2),
        _memory("weeks", 10),
        _memory("days", 3),
    ]
    buckets = group_by_recency(memories, now=NOW)
    assert [b.label for b in buckets] == [TODAY, "3 days ago", "1 week ago", LONG_AGO]


def test_group_keeps_order_within_bucket() -> None:
    memories = [_memory("second", 3.5), _memory("first", 3.1)]
    buckets = group_by_recency(memories, now=NOW)
    assert len(buckets) == 1
    assert [m.fact for m in buckets[0].memories] == ["second", "first"]


def test_group_future_timestamp_counts_as_today() -> None:
    buckets = group_by_recency([_memory("skewed", -2)], now=NOW)
    assert buckets[0].label == TODAY
