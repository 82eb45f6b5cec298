"""Source reconciler: choose one provider group's totals per metric-day.

For each (metric day, metric kind) the samples are split into the primary
group (the configured primary provider for that metric's group) and the
fallback group (every other provider).  If the primary group's deduplicated
total is nonzero it is used exclusively; otherwise the fallback group's total
is used.  Totals are never summed across the two groups.

Reconciliation policy (primary provider per metric group) is read from
reconcile_config.yaml via the config_loader module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from src.wellness.base import (
    Aggregation,
    DailyMetricRecord,
    MetricKind,
    Sample,
    SourceId,
)
from src.wellness.config_loader import ReconcileConfig, get_reconcile_config
from src.wellness.sync.dedup import distinct_samples, sample_union_seconds

logger = logging.getLogger("wellness.reconciler")

# Record fields stored as integers
_INT_FIELDS = frozenset({"steps", "resting_hr_bpm"})


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class ReconciledValue:
    """Outcome of reconciling one metric for one day.

    Attributes:
        day:     Metric day.
        kind:    Metric classification.
        value:   Chosen total (seconds for sleep stages).
        chosen:  'primary' or 'fallback'.
        sources: Providers whose samples produced ``value``.
        rejected_total: The other group's total, kept for diagnostics.
    """

    day: date
    kind: MetricKind
    value: float
    chosen: str
    sources: list[SourceId] = field(default_factory=list)
    rejected_total: float | None = None


# ---------------------------------------------------------------------------
# Group totals
# ---------------------------------------------------------------------------


def group_total(kind: MetricKind, samples: Sequence[Sample]) -> float | None:
    """Deduplicated total for one provider group.

    - sleep stages: interval union of the samples (seconds)
    - cumulative quantities: sum of distinct samples
    - instantaneous readings: the latest reading

    Returns None when the group has no samples.
    """
    if not samples:
        return None

    aggregation = kind.aggregation
    if aggregation is Aggregation.INTERVAL:
        return sample_union_seconds(samples)
    if aggregation is Aggregation.CUMULATIVE:
        return float(sum(s.value for s in distinct_samples(samples)))
    latest = max(samples, key=lambda s: s.start)
    return float(latest.value)


def reconcile_metric(
    day: date,
    kind: MetricKind,
    samples: Sequence[Sample],
    primary: SourceId,
) -> ReconciledValue | None:
    """Pick the primary or fallback group's total for one metric-day.

    This is an all-or-nothing choice between the two groups.

    Args:
        day:     Metric day.
        kind:    Metric classification shared by all ``samples``.
        samples: Every provider's samples for this metric-day.
        primary: The designated primary provider.

    Returns:
        ReconciledValue, or None when no provider reported anything.
    """
    primary_samples = [s for s in samples if s.source == primary]
    fallback_samples = [s for s in samples if s.source != primary]

    primary_total = group_total(kind, primary_samples)
    fallback_total = group_total(kind, fallback_samples)

    if primary_total:
        return ReconciledValue(
            day=day,
            kind=kind,
            value=primary_total,
            chosen="primary",
            sources=[primary],
            rejected_total=fallback_total,
        )

    if fallback_total is not None:
        fallback_sources = sorted({s.source for s in fallback_samples}, key=lambda s: s.value)
        logger.debug(
            "%s on %s: primary %s empty, using fallback %s (%.1f)",
            kind.value, day, primary.value, [s.value for s in fallback_sources], fallback_total,
        )
        return ReconciledValue(
            day=day,
            kind=kind,
            value=fallback_total,
            chosen="fallback",
            sources=fallback_sources,
            rejected_total=primary_total,
        )

    if primary_total is not None:
        # Primary reported a genuine zero and nobody else reported anything
        return ReconciledValue(
            day=day, kind=kind, value=primary_total, chosen="primary", sources=[primary]
        )
    return None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SourceReconciler:
    """Reconcile bucketed samples into partial daily records.

    Usage::

        reconciler = SourceReconciler(config)
        values = reconciler.reconcile(bucket_samples(samples, tz))
        records = reconciler.build_records(values)
    """

    def __init__(self, config: ReconcileConfig | None = None) -> None:
        self._config = config or get_reconcile_config()

    def reconcile(
        self, buckets: dict[tuple[date, MetricKind], list[Sample]]
    ) -> list[ReconciledValue]:
        """Reconcile every (day, metric) bucket independently."""
        results: list[ReconciledValue] = []
        fallbacks = 0
        for (day, kind), samples in sorted(buckets.items(), key=lambda kv: (kv[0][0], kv[0][1].value)):
            primary = self._config.primary_source(kind)
            value = reconcile_metric(day, kind, samples, primary)
            if value is None:
                continue
            if value.chosen == "fallback":
                fallbacks += 1
            results.append(value)

        logger.info(
            "Reconciled %d day/metric buckets (%d from fallback providers)",
            len(results), fallbacks,
        )
        return results

    @staticmethod
    def build_records(values: Sequence[ReconciledValue]) -> list[DailyMetricRecord]:
        """Fold reconciled values into one partial DailyMetricRecord per day.

        Only fields with reconciled data are set, so the store's field-level
        merge leaves everything else untouched.
        """
        by_day: dict[date, DailyMetricRecord] = {}
        for value in values:
            record = by_day.setdefault(value.day, DailyMetricRecord(date=value.day))
            field_name = value.kind.record_field
            if field_name in _INT_FIELDS:
                setattr(record, field_name, int(round(value.value)))
            else:
                setattr(record, field_name, value.value)
        return [by_day[d] for d in sorted(by_day)]


def reconcile_day_records(
    buckets: dict[tuple[date, MetricKind], list[Sample]],
    config: ReconcileConfig | None = None,
) -> list[DailyMetricRecord]:
    """Reconcile bucketed samples straight into partial daily records."""
    reconciler = SourceReconciler(config)
    return reconciler.build_records(reconciler.reconcile(buckets))
