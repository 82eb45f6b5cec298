"""Weekly wellness summary derived on demand from stored daily records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from statistics import mean
from typing import Iterable, Sequence

from src.wellness.base import DailyMetricRecord

SLEEP_TARGET_HOURS = 8.0
_TREND_WINDOW = 3
_DEBT_WINDOW = 7


def _mean_or_none(values: Iterable[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    return mean(present) if present else None


def _scores(records: Sequence[DailyMetricRecord]) -> list[int]:
    return [r.activity_score for r in records if r.activity_score is not None]


@dataclass
class WeeklySummary:
    """Aggregates over a date-bounded slice of daily records.

    ``records`` must be sorted ascending by date.  Averages ignore missing
    values and are None when no day has the input.
    """

    period_start: date
    period_end: date
    records: list[DailyMetricRecord] = field(default_factory=list)

    @property
    def avg_steps(self) -> float | None:
        return _mean_or_none(r.steps for r in self.records)

    @property
    def avg_sleep_hours(self) -> float | None:
        return _mean_or_none(
            r.total_sleep_s / 3600 if r.total_sleep_s is not None else None
            for r in self.records
        )

    @property
    def avg_sleep_efficiency(self) -> float | None:
        return _mean_or_none(r.sleep_efficiency for r in self.records)

    @property
    def avg_activity_score(self) -> float | None:
        return _mean_or_none(r.activity_score for r in self.records)

    @property
    def activity_trend(self) -> float | None:
        """Mean of the last 3 activity scores minus the mean of the 3 before.

        Both windows are taken over days, then days without a score are
        dropped.  None with fewer than 3 days or an empty window.
        """
        if len(self.records) < _TREND_WINDOW:
            return None
        recent = _scores(self.records[-_TREND_WINDOW:])
        prior = _scores(self.records[:-_TREND_WINDOW][-_TREND_WINDOW:])
        if not recent or not prior:
            return None
        return mean(recent) - mean(prior)

    @property
    def sleep_debt_hours(self) -> float | None:
        """Actual minus target sleep over the last 7 days, skipping nights without data."""
        nights = [
            r.total_sleep_s for r in self.records[-_DEBT_WINDOW:] if r.total_sleep_s is not None
        ]
        if not nights:
            return None
        return sum(nights) / 3600 - SLEEP_TARGET_HOURS * len(nights)

    @property
    def latest_body_fat_pct(self) -> float | None:
        for record in reversed(self.records):
            if record.body_fat_pct is not None:
                return record.body_fat_pct
        return None


def build_weekly_summary(
    records: Sequence[DailyMetricRecord], today: date, days: int = 7
) -> WeeklySummary:
    """Build a summary over ``[today - (days - 1), today]``."""
    start = today - timedelta(days=days - 1)
    window = sorted((r for r in records if start <= r.date <= today), key=lambda r: r.date)
    return WeeklySummary(period_start=start, period_end=today, records=window)
