"""Tests for primary/fallback source reconciliation."""

from __future__ import annotations

import pytest

from src.wellness.base import MetricGroup, MetricKind, SourceId
from src.wellness.bucketing import bucket_samples
from src.wellness.config_loader import ReconcileConfig
from src.wellness.reconciler import (
    SourceReconciler,
    group_total,
    reconcile_day_records,
    reconcile_metric,
)
from src.wellness.tests.conftest import TEST_DATE, at, quantity_sample, sleep_sample

PRIMARY = SourceId.HEALTH_STORE
FALLBACK = SourceId.WEARABLE_RELAY


class TestGroupTotal:
    def test_sleep_uses_interval_union(self) -> None:
        samples = [
            sleep_sample(at(TEST_DATE, 0), at(TEST_DATE, 2)),
            sleep_sample(at(TEST_DATE, 1), at(TEST_DATE, 3)),
        ]
        assert group_total(MetricKind.SLEEP_CORE, samples) == pytest.approx(3 * 3600)

    def test_cumulative_sums_distinct_samples(self) -> None:
        s1 = quantity_sample(MetricKind.STEPS, 1000, at(TEST_DATE, 9))
        s2 = quantity_sample(MetricKind.STEPS, 500, at(TEST_DATE, 10))
        assert group_total(MetricKind.STEPS, [s1, s2, s1]) == pytest.approx(1500)

    def test_instant_takes_latest_reading(self) -> None:
        early = quantity_sample(MetricKind.BODY_MASS, 71.0, at(TEST_DATE, 7))
        late = quantity_sample(MetricKind.BODY_MASS, 70.4, at(TEST_DATE, 20))
        assert group_total(MetricKind.BODY_MASS, [late, early]) == pytest.approx(70.4)

    def test_empty_group_is_none(self) -> None:
        assert group_total(MetricKind.STEPS, []) is None


class TestReconcileMetric:
    def test_primary_wins_and_is_never_summed(self) -> None:
        samples = [
            sleep_sample(at(TEST_DATE, -1), at(TEST_DATE, 6), PRIMARY),              # 7h
            sleep_sample(at(TEST_DATE, -2), at(TEST_DATE, 6), FALLBACK),             # 8h
        ]
        value = reconcile_metric(TEST_DATE, MetricKind.SLEEP_CORE, samples, PRIMARY)
        assert value.value == pytest.approx(7 * 3600)
        assert value.chosen == "primary"
        assert value.sources == [PRIMARY]
        assert value.rejected_total == pytest.approx(8 * 3600)

    def test_fallback_used_when_primary_missing(self) -> None:
        samples = [sleep_sample(at(TEST_DATE, -2), at(TEST_DATE, 6), FALLBACK)]
        value = reconcile_metric(TEST_DATE, MetricKind.SLEEP_CORE, samples, PRIMARY)
        assert value.value == pytest.approx(8 * 3600)
        assert value.chosen == "fallback"
        assert value.sources == [FALLBACK]

    def test_fallback_used_when_primary_is_zero(self) -> None:
        samples = [
            quantity_sample(MetricKind.STEPS, 0, at(TEST_DATE, 9), PRIMARY),
            quantity_sample(MetricKind.STEPS, 4200, at(TEST_DATE, 9), SourceId.ACTIVITY_API),
        ]
        value = reconcile_metric(TEST_DATE, MetricKind.STEPS, samples, PRIMARY)
        assert value.value == pytest.approx(4200)
        assert value.chosen == "fallback"

    def test_fallback_group_is_union_of_other_sources(self) -> None:
        samples = [
            sleep_sample(at(TEST_DATE, 0), at(TEST_DATE, 4), FALLBACK),
            sleep_sample(at(TEST_DATE, 3), at(TEST_DATE, 6), SourceId.ACTIVITY_API),
        ]
        value = reconcile_metric(TEST_DATE, MetricKind.SLEEP_CORE, samples, PRIMARY)
        assert value.value == pytest.approx(6 * 3600)
        assert value.sources == [SourceId.ACTIVITY_API, FALLBACK]

    def test_primary_zero_without_fallback_is_kept(self) -> None:
        samples = [quantity_sample(MetricKind.STEPS, 0, at(TEST_DATE, 9), PRIMARY)]
        value = reconcile_metric(TEST_DATE, MetricKind.STEPS, samples, PRIMARY)
        assert value.value == 0
        assert value.chosen == "primary"

    def test_no_samples_is_none(self) -> None:
        assert reconcile_metric(TEST_DATE, MetricKind.STEPS, [], PRIMARY) is None


class TestSourceReconciler:
    def test_end_to_end_overlapping_sleep(self, reconcile_config: ReconcileConfig) -> None:
        samples = [
            sleep_sample(at(TEST_DATE, -1), at(TEST_DATE, 6, 30), PRIMARY),          # 7.5h
            sleep_sample(at(TEST_DATE, -1, 15), at(TEST_DATE, 6), FALLBACK),         # 6.75h
        ]
        records = reconcile_day_records(bucket_samples(samples), reconcile_config)
        assert len(records) == 1
        assert records[0].date == TEST_DATE
        assert records[0].total_sleep_s == pytest.approx(7.5 * 3600)

    def test_build_records_sets_only_reconciled_fields(
        self, reconcile_config: ReconcileConfig
    ) -> None:
        samples = [
            quantity_sample(MetricKind.STEPS, 1234.6, at(TEST_DATE, 9)),
            quantity_sample(MetricKind.RESTING_HR, 54.7, at(TEST_DATE, 7)),
        ]
        reconciler = SourceReconciler(reconcile_config)
        [record] = reconciler.build_records(reconciler.reconcile(bucket_samples(samples)))
        assert record.steps == 1235
        assert record.resting_hr_bpm == 55
        assert record.sleep_core_s is None
        assert record.body_mass_kg is None

    def test_primary_source_follows_config(self, reconcile_config: ReconcileConfig) -> None:
        reconcile_config.primary_sources[MetricGroup.SLEEP] = FALLBACK
        samples = [
            sleep_sample(at(TEST_DATE, -1), at(TEST_DATE, 6), PRIMARY),
            sleep_sample(at(TEST_DATE, -2), at(TEST_DATE, 6), FALLBACK),
        ]
        [record] = reconcile_day_records(bucket_samples(samples), reconcile_config)
        assert record.sleep_core_s == pytest.approx(8 * 3600)
