"""Group memories into human-readable recency buckets ("3 days ago", ...)."""

from __future__ import annotations

from datetime import UTC, datetime

from companion.memory.models import MemoryEntry, RecencyBucket

TODAY = "Today"
HALF_YEAR = "About half a year ago"
LONG_AGO = "More than a year ago"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


# Newest first. Bucket order always follows this list, never input order.
CANONICAL_LABELS: tuple[str, ...] = (
    TODAY,
    *(_plural(n, "day") for n in range(1, 8)),
    *(_plural(n, "week") for n in range(1, 3)),
    *(_plural(n, "month") for n in range(1, 7)),
    HALF_YEAR,
    LONG_AGO,
)

_ORDER = {label: index for index, label in enumerate(CANONICAL_LABELS)}


def recency_label(age_days: int) -> str:
    """Label for a memory that is *age_days* whole days old.

    Thresholds use strict ``<``, so an age sitting exactly on a boundary
    (7, 21, 180, 365) lands in the newer bucket.
    """
    if age_days < 1:
        return TODAY
    if age_days < 8:
        return _plural(age_days, "day")
    if age_days < 22:
        return _plural((age_days - 1) // 7, "week")
    if age_days < 181:
        return _plural((age_days - 1) // 30 + 1, "month")
    if age_days < 366:
        return HALF_YEAR
    return LONG_AGO


def group_by_recency(
    memories: list[MemoryEntry], now: datetime | None = None
) -> list[RecencyBucket]:
    """Partition *memories* into recency buckets ordered newest label first.

    Within a bucket, memories keep the order they were passed in (retrieval
    order).
    """
    now = now or datetime.now(UTC)
    grouped: dict[str, list[MemoryEntry]] = {}
    for memory in memories:
        age_days = max(0, (now - memory.created_at).days)
        grouped.setdefault(recency_label(age_days), []).append(memory)

    return [
        RecencyBucket(label=label, memories=grouped[label])
        for label in sorted(grouped, key=_ORDER.__getitem__)
    ]
