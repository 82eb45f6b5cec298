"""Shared fixtures and sample builders for wellness engine tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.wellness.base import (
    Aggregation,
    ActivitySummary,
    DailyMetricRecord,
    MetricKind,
    Sample,
    SourceId,
    StaticAthleteSettings,
)
from src.wellness.config_loader import ReconcileConfig, load_reconcile_config
from src.wellness.store import DailyMetricsStore, TrainingLoadStore

# Wake day used throughout the tests
TEST_DATE = date(2026, 2, 23)
TEST_NOW = datetime(2026, 2, 23, 12, 0)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """Naive local datetime on ``day`` (hour may exceed 23 to roll over)."""
    return datetime(day.year, day.month, day.day) + timedelta(hours=hour, minutes=minute)


def sleep_sample(
    start: datetime,
    end: datetime,
    source: SourceId = SourceId.HEALTH_STORE,
    kind: MetricKind = MetricKind.SLEEP_CORE,
) -> Sample:
    return Sample(kind=kind, start=start, end=end,
                  value=(end - start).total_seconds(), source=source)


def quantity_sample(
    kind: MetricKind,
    value: float,
    start: datetime,
    source: SourceId = SourceId.HEALTH_STORE,
    minutes: int = 60,
) -> Sample:
    end = None if kind.aggregation is Aggregation.INSTANT else start + timedelta(minutes=minutes)
    return Sample(kind=kind, start=start, end=end, value=value, source=source)


def activity(
    activity_id: str,
    start: datetime,
    moving_time_s: int = 3600,
    type_: str = "Ride",
    **kwargs,
) -> ActivitySummary:
    return ActivitySummary(id=activity_id, type=type_, start=start,
                           moving_time_s=moving_time_s, **kwargs)


def sleep_record(day: date, hours: float, steps: int | None = None) -> DailyMetricRecord:
    """A record with ``hours`` of core sleep and no awake time."""
    return DailyMetricRecord(date=day, sleep_core_s=hours * 3600, steps=steps)


# ---------------------------------------------------------------------------
# Config / collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def reconcile_config() -> ReconcileConfig:
    """Load the real reconcile config for tests."""
    return load_reconcile_config()


@pytest.fixture
def athlete() -> StaticAthleteSettings:
    return StaticAthleteSettings(ftp=250.0, lthr=165.0)


@pytest.fixture
def metrics_store(tmp_path: Path) -> DailyMetricsStore:
    return DailyMetricsStore(tmp_path / "daily_metrics.json", tmp_path / "legacy_store.json")


@pytest.fixture
def training_store(tmp_path: Path) -> TrainingLoadStore:
    return TrainingLoadStore(tmp_path / "training_load.json", tmp_path / "legacy_store.json")


def make_fetcher(source: SourceId, samples: list[Sample] | None = None,
                 error: Exception | None = None) -> MagicMock:
    """Mock ProviderFetcher returning ``samples`` or raising ``error``."""
    fetcher = MagicMock()
    fetcher.source = source
    if error is not None:
        fetcher.fetch = AsyncMock(side_effect=error)
    else:
        fetcher.fetch = AsyncMock(return_value=samples or [])
    return fetcher


@pytest.fixture
def mock_httpx_client() -> MagicMock:
    """Mock httpx.AsyncClient for testing the feed without real API calls."""
    client = MagicMock()
    response = MagicMock()
    response.status_code = 200
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value=[])
    client.get = AsyncMock(return_value=response)
    return client
