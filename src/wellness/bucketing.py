"""Assign samples to the canonical "metric day" they belong to.

Daytime metrics (steps, energy, distance, resting HR, body composition) go
to the local calendar day of the sample start.  Sleep stages go to the
*sleep night*: the start is shifted forward by a fixed 6 hours before
truncation, so a session that begins at 23:00 lands on the day the person
wakes up.

Known limitation: the fixed offset attributes an afternoon nap to the same
day but an early-evening nap (after 18:00) to the next day, and cannot split
a session spanning more than one night.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable

from src.wellness.base import MetricKind, Sample

logger = logging.getLogger("wellness.bucketing")

#: Fixed sleep-night offset applied before day truncation.
SLEEP_NIGHT_OFFSET = timedelta(hours=6)


def _to_local(ts: datetime, tz: tzinfo | None) -> datetime:
    """Convert an aware timestamp to ``tz``; naive timestamps are already local."""
    if tz is not None and ts.tzinfo is not None:
        return ts.astimezone(tz)
    return ts


def calendar_day(ts: datetime, tz: tzinfo | None = None) -> date:
    """Start-of-day truncation in local time."""
    return _to_local(ts, tz).date()


def sleep_night_day(ts: datetime, tz: tzinfo | None = None) -> date:
    """Return the wake day for a sleep sample starting at ``ts``.

    >>> sleep_night_day(datetime(2026, 2, 22, 23, 0))
    datetime.date(2026, 2, 23)
    >>> sleep_night_day(datetime(2026, 2, 23, 2, 30))
    datetime.date(2026, 2, 23)
    """
    return (_to_local(ts, tz) + SLEEP_NIGHT_OFFSET).date()


def metric_day(sample: Sample, tz: tzinfo | None = None) -> date:
    """Return the metric day a sample is attributed to."""
    if sample.kind.is_sleep:
        return sleep_night_day(sample.start, tz)
    return calendar_day(sample.start, tz)


def bucket_samples(
    samples: Iterable[Sample], tz: tzinfo | None = None
) -> dict[tuple[date, MetricKind], list[Sample]]:
    """Group samples by ``(metric day, metric kind)``.

    Samples with an end before their start are skipped with a warning.
    """
    buckets: dict[tuple[date, MetricKind], list[Sample]] = defaultdict(list)
    skipped = 0
    for sample in samples:
        if sample.end is not None and sample.end < sample.start:
            logger.warning(
                "Skipping %s sample from %s: end %s precedes start %s",
                sample.kind.value, sample.source.value, sample.end, sample.start,
            )
            skipped += 1
            continue
        buckets[(metric_day(sample, tz), sample.kind)].append(sample)

    logger.debug("Bucketed samples into %d day/metric buckets (%d skipped)", len(buckets), skipped)
    return dict(buckets)
