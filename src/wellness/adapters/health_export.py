"""Health-store export fetcher.

Reads a JSON export of health-store records (the format produced by export
apps such as Health Auto Export) and converts each row into a canonical
Sample.  The same fetcher serves any tracker whose data arrives as an export
file; pass ``source`` to label its samples.

Expected format::

    {
        "records": [
            {"type": "HKQuantityTypeIdentifierStepCount",
             "startDate": "2026-02-22T08:00:00+01:00",
             "endDate": "2026-02-22T09:00:00+01:00",
             "value": 812},
            {"type": "HKCategoryTypeIdentifierSleepAnalysis",
             "startDate": "...", "endDate": "...",
             "value": "HKCategoryValueSleepAnalysisAsleepDeep"},
            ...
        ]
    }

A bare top-level list of records is accepted too.  Rows with an unknown type,
a missing timestamp or a non-numeric value are skipped with a warning.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path

from src.wellness.base import (
    Aggregation,
    FetchError,
    MetricKind,
    ProviderFetcher,
    Sample,
    SourceId,
    parse_iso_datetime,
    safe_float,
)

logger = logging.getLogger("wellness.adapters.health_export")

_HK_SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"

# Quantity type identifier → metric kind
_QUANTITY_TYPE_MAP: dict[str, MetricKind] = {
    "HKQuantityTypeIdentifierStepCount": MetricKind.STEPS,
    "HKQuantityTypeIdentifierActiveEnergyBurned": MetricKind.ACTIVE_ENERGY,
    "HKQuantityTypeIdentifierDistanceWalkingRunning": MetricKind.DISTANCE,
    "HKQuantityTypeIdentifierRestingHeartRate": MetricKind.RESTING_HR,
    "HKQuantityTypeIdentifierBodyMass": MetricKind.BODY_MASS,
    "HKQuantityTypeIdentifierBodyFatPercentage": MetricKind.BODY_FAT_PCT,
    "HKQuantityTypeIdentifierLeanBodyMass": MetricKind.LEAN_MASS,
}

# Sleep category value → metric kind.  In-bed rows are not a stage.
_SLEEP_STAGE_MAP: dict[str, MetricKind] = {
    "HKCategoryValueSleepAnalysisAsleepDeep": MetricKind.SLEEP_DEEP,
    "HKCategoryValueSleepAnalysisAsleepREM": MetricKind.SLEEP_REM,
    "HKCategoryValueSleepAnalysisAsleepCore": MetricKind.SLEEP_CORE,
    "HKCategoryValueSleepAnalysisAsleepUnspecified": MetricKind.SLEEP_UNSPECIFIED,
    "HKCategoryValueSleepAnalysisAsleep": MetricKind.SLEEP_UNSPECIFIED,
    "HKCategoryValueSleepAnalysisAwake": MetricKind.SLEEP_AWAKE,
}

# Unit → multiplier into the canonical unit
_UNIT_SCALE: dict[str, float] = {
    "km": 1000.0,
    "m": 1.0,
    "lb": 0.45359237,
    "kg": 1.0,
    "kj": 1 / 4.184,
    "kcal": 1.0,
}


def _as_window_time(ts: datetime, reference: datetime) -> datetime:
    """Match a row timestamp to the window's naive or aware style."""
    if ts.tzinfo is None and reference.tzinfo is not None:
        return ts.replace(tzinfo=reference.tzinfo)
    if ts.tzinfo is not None and reference.tzinfo is None:
        return ts.astimezone().replace(tzinfo=None)
    return ts


class HealthExportFetcher(ProviderFetcher):
    """Fetch samples from a health-store JSON export file."""

    SOURCE = SourceId.HEALTH_STORE

    def __init__(self, path: Path | str, source: SourceId | None = None) -> None:
        self._path = Path(path)
        self._source = source or self.SOURCE

    @property
    def source(self) -> SourceId:
        return self._source

    async def fetch(self, start: datetime, end: datetime) -> list[Sample]:
        """Return samples starting in ``[start, end)``.

        Raises:
            FetchError: If the export file is missing or not valid JSON.
        """
        rows = await asyncio.to_thread(self._load_rows)
        samples: list[Sample] = []
        skipped = 0
        for row in rows:
            sample = self.parse_row(row)
            if sample is None:
                skipped += 1
                continue
            if start <= _as_window_time(sample.start, start) < end:
                samples.append(sample)

        logger.info(
            "%s export: %d samples in window (%d rows skipped)",
            self._source.value, len(samples), skipped,
        )
        return samples

    def _load_rows(self) -> list[dict]:
        if not self._path.exists():
            raise FetchError(self._source, f"Export file not found: {self._path}")
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise FetchError(self._source, f"Could not read export {self._path}: {exc}") from exc

        rows = data.get("records", []) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise FetchError(self._source, f"Export {self._path} has no record list")
        return rows

    def parse_row(self, row: dict) -> Sample | None:
        """Convert one export row to a Sample, or None if it is unusable."""
        if not isinstance(row, dict):
            logger.warning("Skipping non-object export row: %r", row)
            return None

        rec_type = row.get("type", "")
        start = parse_iso_datetime(row.get("startDate"))
        end = parse_iso_datetime(row.get("endDate"))
        if start is None:
            logger.warning("Skipping %s row without a valid startDate", rec_type)
            return None

        if rec_type == _HK_SLEEP_ANALYSIS:
            kind = _SLEEP_STAGE_MAP.get(str(row.get("value", "")))
            if kind is None:
                logger.debug("Ignoring sleep row with value %r", row.get("value"))
                return None
            if end is None:
                logger.warning("Skipping sleep row at %s without endDate", start)
                return None
            return Sample(kind=kind, start=start, end=end,
                          value=(end - start).total_seconds(), source=self._source)

        kind = _QUANTITY_TYPE_MAP.get(rec_type)
        if kind is None:
            logger.debug("Ignoring unsupported record type %r", rec_type)
            return None

        value = safe_float(row.get("value"))
        if value is None:
            logger.warning("Skipping %s row at %s: non-numeric value %r",
                           rec_type, start, row.get("value"))
            return None

        unit = str(row.get("unit", "")).lower()
        value *= _UNIT_SCALE.get(unit, 1.0)
        # Health stores report body fat as a fraction
        if kind is MetricKind.BODY_FAT_PCT and value <= 1.0:
            value *= 100

        if kind.aggregation is Aggregation.INSTANT:
            end = None
        return Sample(kind=kind, start=start, end=end, value=value, source=self._source)
