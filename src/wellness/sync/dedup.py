"""Deduplication logic for wellness ingestion.

Two kinds of duplication show up when several trackers cover the same day:

- overlapping intervals: a watch and a ring both record the same night, or
  one tracker reports overlapping stage segments.  ``union_duration``
  collapses them into total covered time.
- repeated records: the same activity appears on two feed pages, or the
  same quantity sample is relayed twice.  Dedup keys plus
  ``InMemoryDedupCache`` drop the repeats within one sync run.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Iterable, Sequence, TypeVar

from src.wellness.base import Sample

logger = logging.getLogger("wellness.sync.dedup")

T = TypeVar("T")


def _length(start: Any, end: Any) -> float:
    delta = end - start
    if isinstance(delta, timedelta):
        return delta.total_seconds()
    return float(delta)


def merge_intervals(intervals: Iterable[tuple[T, T]]) -> list[tuple[T, T]]:
    """Merge overlapping or touching half-open intervals.

    Algorithm:
    1. Sort by start ascending.
    2. Sweep with an open interval; if the next start is at or before the
       open end, extend the end to the larger of the two.
    3. Otherwise commit the open interval and open the next one.
    4. Commit the final interval after the loop.

    Args:
        intervals: ``(start, end)`` pairs of datetimes or numbers.

    Returns:
        Non-overlapping intervals sorted by start.
    """
    ordered = sorted(intervals, key=lambda iv: iv[0])
    if not ordered:
        return []

    merged: list[tuple[T, T]] = []
    cur_start, cur_end = ordered[0]
    for start, end in ordered[1:]:
        # Touching intervals (start == cur_end) merge with no gap
        if start <= cur_end:
            if end > cur_end:
                cur_end = end
        else:
            merged.append((cur_start, cur_end))
            cur_start, cur_end = start, end
    merged.append((cur_start, cur_end))
    return merged


def union_duration(intervals: Iterable[tuple[Any, Any]]) -> float:
    """Return the total non-overlapping duration covered by ``intervals``.

    Datetime intervals yield seconds; numeric intervals yield their own unit.

    >>> union_duration([(0, 10), (5, 15)])
    15.0
    >>> union_duration([(0, 10), (10, 20)])
    20.0
    """
    return float(sum(_length(start, end) for start, end in merge_intervals(intervals)))


def sample_union_seconds(samples: Sequence[Sample]) -> float:
    """Covered seconds for interval samples; instant samples are ignored."""
    return union_duration((s.start, s.end) for s in samples if s.end is not None)


def sample_key(sample: Sample) -> tuple:
    """Identity of a quantity sample for exact-duplicate removal."""
    return (sample.kind, sample.start, sample.end, sample.value)


def distinct_samples(samples: Iterable[Sample]) -> list[Sample]:
    """Drop exact duplicate samples, keeping first occurrence order."""
    seen: set[tuple] = set()
    unique: list[Sample] = []
    for sample in samples:
        key = sample_key(sample)
        if key in seen:
            continue
        seen.add(key)
        unique.append(sample)
    return unique


def activity_key(source: str, activity_id: str) -> str:
    """Generate a dedup key for a feed activity."""
    return f"{source}:{activity_id}"


class InMemoryDedupCache:
    """In-process dedup cache for short-lived sync sessions.

    Usage::

        cache = InMemoryDedupCache()
        if cache.is_seen(key):
            logger.debug("Skipping duplicate: %s", key)
        else:
            cache.mark_seen(key)
            # process the record
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def is_seen(self, key: str) -> bool:
        return key in self._seen

    def mark_seen(self, key: str) -> None:
        self._seen.add(key)

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
