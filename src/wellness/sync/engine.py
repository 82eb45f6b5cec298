"""One wellness sync pass across every configured tracker.

Workflow:
1. Fan out: fetch ``[start, end)`` from every fetcher concurrently
2. Fan in: collect samples, recording per-provider failures
3. Bucket samples into metric days
4. Reconcile primary/fallback groups per metric-day
5. Merge the partial records into the DailyMetricsStore
6. Write back the latest body mass, persist ``last_sync_at``, notify observers

A pass is non-reentrant: calling ``sync`` while one is running returns None.
Nothing is written before every fetch has finished, so cancelling the pass
leaves the store untouched.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Sequence

from src.wellness.base import (
    AthleteSettingsProvider,
    DailyMetricRecord,
    FetchError,
    LinkageRequiredError,
    ProviderFetcher,
    Sample,
    SourceId,
    SyncError,
)
from src.wellness.bucketing import bucket_samples
from src.wellness.config_loader import ReconcileConfig, get_reconcile_config
from src.wellness.reconciler import SourceReconciler
from src.wellness.store import DailyMetricsStore

logger = logging.getLogger("wellness.sync.engine")

#: Observer callback, sync or async, called once per successful pass.
SyncObserver = Callable[["SyncResult"], Any]


@dataclass
class ProviderError:
    """A provider that failed during a pass.

    Attributes:
        source:  Failing provider.
        status:  'linkage_required' or 'error'.
        message: Error text.
    """

    source: SourceId
    status: str
    message: str


@dataclass
class SyncResult:
    """Result of one sync pass.

    Attributes:
        start, end:      Requested window.
        samples_fetched: Sample count per provider.
        records:         Merged records written to the store.
        provider_errors: Providers that failed and contributed nothing.
        status:          'success' or 'partial'.
        synced_at:       Completion timestamp.
    """

    start: datetime
    end: datetime
    samples_fetched: dict[SourceId, int] = field(default_factory=dict)
    records: list[DailyMetricRecord] = field(default_factory=list)
    provider_errors: list[ProviderError] = field(default_factory=list)
    status: str = "success"
    synced_at: datetime | None = None

    @property
    def days_updated(self) -> list[date]:
        return [r.date for r in self.records]


class WellnessSync:
    """Coordinate fetch → bucket → reconcile → store for all trackers.

    Usage::

        engine = WellnessSync(
            fetchers=[HealthExportFetcher(path)],
            store=DailyMetricsStore(data_dir / "daily_metrics.json"),
            settings=StaticAthleteSettings(ftp=250),
        )
        result = await engine.sync(start, end)
    """

    def __init__(
        self,
        fetchers: Sequence[ProviderFetcher],
        store: DailyMetricsStore,
        config: ReconcileConfig | None = None,
        settings: AthleteSettingsProvider | None = None,
        observers: Sequence[SyncObserver] = (),
        tz: tzinfo | None = None,
    ) -> None:
        self._fetchers = list(fetchers)
        self._store = store
        self._config = config or get_reconcile_config()
        self._settings = settings
        self._observers = list(observers)
        self._tz = tz
        self._reconciler = SourceReconciler(self._config)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def add_observer(self, observer: SyncObserver) -> None:
        self._observers.append(observer)

    async def sync(
        self, start: datetime, end: datetime, now: datetime | None = None
    ) -> SyncResult | None:
        """Run one sync pass over ``[start, end)``.

        Returns:
            SyncResult, or None if a pass is already in progress.

        Raises:
            LinkageRequiredError: The only configured provider is not linked.
            SyncError:            The only configured provider failed.
        """
        if self._running:
            logger.info("Wellness sync already in progress; skipping")
            return None

        self._running = True
        try:
            return await self._run(start, end, now or datetime.now())
        finally:
            self._running = False

    async def _run(self, start: datetime, end: datetime, now: datetime) -> SyncResult:
        result = SyncResult(start=start, end=end)

        logger.info("Wellness sync: fetching %s → %s from %d providers",
                    start, end, len(self._fetchers))
        outcomes = await asyncio.gather(
            *(self._fetch_one(f, start, end) for f in self._fetchers)
        )

        samples: list[Sample] = []
        failures: list[tuple[ProviderFetcher, Exception]] = []
        for fetcher, fetched, error in outcomes:
            result.samples_fetched[fetcher.source] = len(fetched)
            samples.extend(fetched)
            if error is not None:
                failures.append((fetcher, error))
                result.provider_errors.append(ProviderError(
                    source=fetcher.source,
                    status="linkage_required" if isinstance(error, LinkageRequiredError) else "error",
                    message=str(error),
                ))

        if len(self._fetchers) == 1 and failures:
            fetcher, error = failures[0]
            if isinstance(error, LinkageRequiredError):
                raise error
            raise SyncError(f"Sync failed for {fetcher.source.value}: {error}") from error

        buckets = bucket_samples(samples, self._tz)
        partial_records = self._reconciler.build_records(self._reconciler.reconcile(buckets))
        result.records = await self._store.upsert_many(partial_records, now=now)

        self._write_back_body_mass(result.records)
        await self._store.mark_synced(now)
        result.synced_at = now
        result.status = "partial" if result.provider_errors else "success"

        logger.info(
            "Wellness sync complete: %d samples → %d days, status=%s",
            len(samples), len(result.records), result.status,
        )
        await self._notify(result)
        return result

    async def _fetch_one(
        self, fetcher: ProviderFetcher, start: datetime, end: datetime
    ) -> tuple[ProviderFetcher, list[Sample], Exception | None]:
        """Fetch from one provider; failures become an empty result plus the error."""
        try:
            samples = await fetcher.fetch(start, end)
        except LinkageRequiredError as exc:
            logger.warning("Provider %s is not linked: %s", fetcher.source.value, exc)
            return fetcher, [], exc
        except FetchError as exc:
            logger.warning("Fetch failed for %s: %s", fetcher.source.value, exc)
            return fetcher, [], exc
        except Exception as exc:
            logger.warning("Unexpected fetch error for %s: %s", fetcher.source.value, exc)
            return fetcher, [], exc
        logger.debug("Fetched %d samples from %s", len(samples), fetcher.source.value)
        return fetcher, samples, None

    def _write_back_body_mass(self, records: Sequence[DailyMetricRecord]) -> None:
        if self._settings is None:
            return
        with_mass = [r for r in records if r.body_mass_kg is not None]
        if not with_mass:
            return
        latest = max(with_mass, key=lambda r: r.date)
        self._settings.update_body_mass(latest.body_mass_kg)

    async def _notify(self, result: SyncResult) -> None:
        for observer in self._observers:
            try:
                outcome = observer(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                logger.warning("Sync observer %r failed: %s", observer, exc)
