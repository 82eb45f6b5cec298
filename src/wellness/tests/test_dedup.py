"""Tests for interval union and repeated-record removal."""

from __future__ import annotations

import itertools

import pytest

from src.wellness.base import MetricKind, SourceId
from src.wellness.sync.dedup import (
    InMemoryDedupCache,
    activity_key,
    distinct_samples,
    merge_intervals,
    sample_union_seconds,
    union_duration,
)
from src.wellness.tests.conftest import TEST_DATE, at, quantity_sample, sleep_sample


class TestUnionDuration:
    def test_disjoint_intervals_add(self) -> None:
        assert union_duration([(0, 10), (20, 30)]) == pytest.approx(20.0)

    def test_overlapping_intervals_collapse(self) -> None:
        assert union_duration([(0, 10), (5, 15)]) == pytest.approx(15.0)

    def test_touching_intervals_merge_without_gap(self) -> None:
        assert union_duration([(0, 10), (10, 20)]) == pytest.approx(20.0)
        assert merge_intervals([(0, 10), (10, 20)]) == [(0, 20)]

    def test_empty_is_zero(self) -> None:
        assert union_duration([]) == 0.0

    def test_single_interval_is_its_length(self) -> None:
        assert union_duration([(3, 9)]) == pytest.approx(6.0)

    def test_contained_interval_adds_nothing(self) -> None:
        assert union_duration([(0, 100), (10, 20), (30, 40)]) == pytest.approx(100.0)

    def test_order_independent(self) -> None:
        intervals = [(0, 10), (5, 15), (30, 40), (12, 18)]
        results = {union_duration(list(p)) for p in itertools.permutations(intervals)}
        assert results == {28.0}

    def test_duplicates_are_idempotent(self) -> None:
        assert union_duration([(0, 10), (0, 10), (0, 10)]) == pytest.approx(10.0)

    def test_datetime_intervals_yield_seconds(self) -> None:
        intervals = [(at(TEST_DATE, 1), at(TEST_DATE, 2)), (at(TEST_DATE, 1, 30), at(TEST_DATE, 3))]
        assert union_duration(intervals) == pytest.approx(7200.0)


class TestSampleHelpers:
    def test_sample_union_ignores_instants(self) -> None:
        samples = [
            sleep_sample(at(TEST_DATE, 0), at(TEST_DATE, 1)),
            quantity_sample(MetricKind.RESTING_HR, 55, at(TEST_DATE, 7)),
        ]
        assert sample_union_seconds(samples) == pytest.approx(3600.0)

    def test_distinct_samples_drops_exact_repeats(self) -> None:
        s = quantity_sample(MetricKind.STEPS, 500, at(TEST_DATE, 9))
        other = quantity_sample(MetricKind.STEPS, 500, at(TEST_DATE, 10))
        assert distinct_samples([s, s, other]) == [s, other]

    def test_same_reading_from_two_sources_is_one_sample(self) -> None:
        a = quantity_sample(MetricKind.STEPS, 500, at(TEST_DATE, 9), SourceId.HEALTH_STORE)
        b = quantity_sample(MetricKind.STEPS, 500, at(TEST_DATE, 9), SourceId.WEARABLE_RELAY)
        assert len(distinct_samples([a, b])) == 1


class TestInMemoryDedupCache:
    def test_mark_and_check(self) -> None:
        cache = InMemoryDedupCache()
        key = activity_key("feed", "42")
        assert not cache.is_seen(key)
        cache.mark_seen(key)
        assert cache.is_seen(key)
        assert len(cache) == 1

    def test_clear(self) -> None:
        cache = InMemoryDedupCache()
        cache.mark_seen("feed:1")
        cache.clear()
        assert len(cache) == 0
