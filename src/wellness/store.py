"""Retained, day-keyed stores for daily metrics and daily training load.

Each store is one JSON file holding a list of records keyed by day, plus a
small state file (``<name>.state.json``) carrying the legacy-migration flag
and the last successful sync timestamp.  Files are written atomically: the
new content goes to a temp file that then replaces the original.

Writes are field-level merges: a field that is None in the incoming record
keeps the stored value.  After every write batch, records dated more than
``retention_days`` before "now" are pruned.

All mutations are serialized through one ``asyncio.Lock`` per store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from src.wellness.base import DailyMetricRecord, DailyTrainingLoad, StoreError

logger = logging.getLogger("wellness.store")

DEFAULT_RETENTION_DAYS = 90

R = TypeVar("R", DailyMetricRecord, DailyTrainingLoad)


@dataclass
class StoreState:
    """Persisted store bookkeeping."""

    migrated: bool = False
    last_sync_at: datetime | None = None


_STATE_ADAPTER = TypeAdapter(StoreState)


def _atomic_write(path: Path, payload: bytes) -> None:
    """Write ``payload`` to a temp file beside ``path`` and swap it in."""
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_bytes(payload)
        os.replace(tmp, path)
    except OSError as exc:
        raise StoreError(f"Could not write {path}: {exc}") from exc


class DayKeyedStore(Generic[R]):
    """Shared machinery for one-record-per-day JSON stores.

    Subclasses set ``RECORD_TYPE`` and ``LEGACY_KEY``.
    """

    RECORD_TYPE: type
    LEGACY_KEY: str

    def __init__(
        self,
        path: Path,
        legacy_path: Path | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> None:
        self._path = Path(path)
        self._state_path = self._path.with_name(self._path.stem + ".state.json")
        self._legacy_path = Path(legacy_path) if legacy_path else None
        self._retention_days = retention_days
        self._adapter = TypeAdapter(list[self.RECORD_TYPE])
        self._lock = asyncio.Lock()
        self._records: dict[date, R] = self._read_records()
        self._state = self._read_state()

    # ------------------------------------------------------------------
    # Disk I/O
    # ------------------------------------------------------------------

    def _read_records(self) -> dict[date, R]:
        if not self._path.exists():
            return {}
        try:
            records = self._adapter.validate_json(self._path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise StoreError(f"Could not load {self._path}: {exc}") from exc
        return {r.date: r for r in records}

    def _write_records(self, records: dict[date, R]) -> None:
        ordered = [records[d] for d in sorted(records)]
        _atomic_write(self._path, self._adapter.dump_json(ordered, indent=2))

    def _read_state(self) -> StoreState:
        if not self._state_path.exists():
            return StoreState()
        try:
            return _STATE_ADAPTER.validate_json(self._state_path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable store state %s: %s", self._state_path, exc)
            return StoreState()

    def _write_state(self, state: StoreState) -> None:
        _atomic_write(self._state_path, _STATE_ADAPTER.dump_json(state, indent=2))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_into(records: dict[date, R], record: R) -> R:
        existing = records.get(record.date)
        merged = existing.merge(record) if existing is not None else record
        records[record.date] = merged
        return merged

    def _prune(self, records: dict[date, R], now: datetime) -> int:
        cutoff = now.date() - timedelta(days=self._retention_days)
        expired = [d for d in records if d < cutoff]
        for d in expired:
            del records[d]
        if expired:
            logger.info(
                "%s: pruned %d records older than %s", type(self).__name__, len(expired), cutoff
            )
        return len(expired)

    async def upsert(self, record: R, now: datetime | None = None) -> R:
        """Merge one record into the store."""
        merged = await self.upsert_many([record], now)
        return merged[0]

    async def upsert_many(self, records: list[R], now: datetime | None = None) -> list[R]:
        """Merge a batch of records, prune expired days, and persist.

        Changes are staged on a copy and only replace the in-memory records
        once the file write succeeds.

        Returns the merged records in input order.
        """
        async with self._lock:
            staged = dict(self._records)
            merged = [self._merge_into(staged, r) for r in records]
            self._prune(staged, now or datetime.now())
            self._write_records(staged)
            self._records = staged
        logger.debug("%s: upserted %d records", type(self).__name__, len(records))
        return merged

    async def clear(self) -> None:
        """Delete every record; migration and sync state are kept."""
        async with self._lock:
            self._write_records({})
            self._records = {}
        logger.info("%s: cleared", type(self).__name__)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_range(self, start: date, end: date) -> list[R]:
        """Return records with ``start <= date <= end``, ascending."""
        return [self._records[d] for d in sorted(self._records) if start <= d <= end]

    def get(self, day: date) -> R | None:
        return self._records.get(day)

    def latest(self) -> R | None:
        if not self._records:
            return None
        return self._records[max(self._records)]

    def all(self) -> list[R]:
        return [self._records[d] for d in sorted(self._records)]

    def __len__(self) -> int:
        return len(self._records)

    def storage_size_bytes(self) -> int:
        """Size of the store's data file on disk (0 when not yet written)."""
        try:
            return self._path.stat().st_size
        except FileNotFoundError:
            return 0

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    @property
    def last_sync_at(self) -> datetime | None:
        return self._state.last_sync_at

    async def mark_synced(self, at: datetime | None = None) -> None:
        async with self._lock:
            state = replace(self._state, last_sync_at=at or datetime.now())
            self._write_state(state)
            self._state = state

    def needs_sync(self, now: datetime, max_age: timedelta) -> bool:
        """True when no sync has completed within ``max_age`` of ``now``."""
        last = self._state.last_sync_at
        if last is None:
            return True
        return now - last > max_age

    # ------------------------------------------------------------------
    # Legacy migration
    # ------------------------------------------------------------------

    @property
    def migrated(self) -> bool:
        return self._state.migrated

    def _read_legacy(self) -> dict:
        if self._legacy_path is None or not self._legacy_path.exists():
            return {}
        try:
            with self._legacy_path.open("r", encoding="utf-8") as fh:
                return json.load(fh) or {}
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read legacy store {self._legacy_path}: {exc}") from exc

    def _set_migrated(self, migrated: bool) -> None:
        state = replace(self._state, migrated=migrated)
        self._write_state(state)
        self._state = state

    def _remove_legacy_key(self, legacy: dict) -> None:
        remaining = {k: v for k, v in legacy.items() if k != self.LEGACY_KEY}
        if remaining:
            _atomic_write(self._legacy_path, json.dumps(remaining, indent=2).encode("utf-8"))
        else:
            self._legacy_path.unlink(missing_ok=True)

    async def migrate(self) -> bool:
        """Move records out of the legacy key-value file, once.

        Steps:
        1. Skip if the completion flag is set.
        2. No legacy data → set the flag and stop.
        3. Merge the legacy records into the store and write it.
        4. Re-read the store from disk and verify every legacy day is there.
        5. On success set the flag, then remove the legacy key.

        A failed verification leaves the legacy data and the flag untouched
        so the migration runs again on the next start.

        Returns:
            True if the store is migrated after this call.
        """
        async with self._lock:
            if self._state.migrated:
                return True

            legacy = self._read_legacy()
            raw_records = legacy.get(self.LEGACY_KEY)
            if not raw_records:
                self._set_migrated(True)
                logger.info("%s: no legacy data, migration marked complete", type(self).__name__)
                return True

            try:
                records = self._adapter.validate_python(raw_records)
            except ValidationError as exc:
                logger.error("%s: legacy data is invalid, migration skipped: %s",
                             type(self).__name__, exc)
                return False

            staged = dict(self._records)
            for record in records:
                self._merge_into(staged, record)
            self._write_records(staged)
            self._records = staged

            on_disk = self._read_records()
            expected = {r.date for r in records}
            missing = expected - on_disk.keys()
            if missing:
                logger.error(
                    "%s: migration verification failed, %d of %d days missing; "
                    "legacy data kept for retry",
                    type(self).__name__, len(missing), len(expected),
                )
                return False

            self._set_migrated(True)
            self._remove_legacy_key(legacy)
            logger.info("%s: migrated %d legacy records", type(self).__name__, len(records))
            return True

    async def force_migration(self) -> bool:
        """Clear the completion flag and run the migration again."""
        async with self._lock:
            self._set_migrated(False)
        return await self.migrate()


class DailyMetricsStore(DayKeyedStore[DailyMetricRecord]):
    """Store of canonical per-day wellness records."""

    RECORD_TYPE = DailyMetricRecord
    LEGACY_KEY = "daily_metrics"


class TrainingLoadStore(DayKeyedStore[DailyTrainingLoad]):
    """Store of per-day training stress totals."""

    RECORD_TYPE = DailyTrainingLoad
    LEGACY_KEY = "training_load"

    async def fill_missing_days(self, today: date) -> int:
        """Insert zero-load days from the first stored day through ``today``.

        Returns the number of days added.
        """
        async with self._lock:
            if not self._records:
                return 0
            staged = dict(self._records)
            day = min(staged)
            added = 0
            while day <= today:
                if day not in staged:
                    staged[day] = DailyTrainingLoad(
                        date=day, tss=0.0, session_count=0, distance_m=0.0, duration_s=0.0
                    )
                    added += 1
                day += timedelta(days=1)
            if added:
                self._write_records(staged)
                self._records = staged
        logger.debug("TrainingLoadStore: filled %d rest days", added)
        return added

    def weekly_tss(self, today: date) -> float:
        """Total TSS over the 7 days ending ``today``."""
        return sum(
            load.tss or 0.0 for load in self.query_range(today - timedelta(days=6), today)
        )
