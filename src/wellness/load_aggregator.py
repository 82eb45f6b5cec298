"""Training-load aggregation from a paginated activity feed.

Pages the feed newest-first, keeps the activities inside the requested
window, estimates TSS for each and sums them per local day into the
TrainingLoadStore.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from typing import Iterable

from src.wellness.base import (
    ActivityFeed,
    ActivitySummary,
    AthleteSettingsProvider,
    DailyTrainingLoad,
)
from src.wellness.bucketing import calendar_day
from src.wellness.config_loader import ReconcileConfig, get_reconcile_config
from src.wellness.store import TrainingLoadStore
from src.wellness.sync.dedup import InMemoryDedupCache, activity_key
from src.wellness.tss import estimate_tss

logger = logging.getLogger("wellness.load_aggregator")


async def fetch_activities(
    feed: ActivityFeed,
    start: datetime,
    end: datetime,
    per_page: int = 200,
    max_pages: int = 50,
) -> list[ActivitySummary]:
    """Collect every activity with ``start <= activity.start <= end``.

    Paging stops on an empty or short page, when a page's oldest item is
    already before ``start``, or at ``max_pages``.  Activities repeated
    across pages are kept once.
    """
    seen = InMemoryDedupCache()
    collected: list[ActivitySummary] = []

    for page in range(1, max_pages + 1):
        items = await feed.fetch_activities(page, per_page)
        if not items:
            break

        for activity in items:
            if not (start <= activity.start <= end):
                continue
            key = activity_key("feed", activity.id)
            if seen.is_seen(key):
                logger.debug("Skipping duplicate activity %s", activity.id)
                continue
            seen.mark_seen(key)
            collected.append(activity)

        oldest = min(a.start for a in items)
        if len(items) < per_page or oldest < start:
            break
    else:
        logger.warning(
            "Activity feed page ceiling reached (%d pages of %d); older activities skipped",
            max_pages, per_page,
        )

    logger.info("Fetched %d activities between %s and %s", len(collected), start, end)
    return collected


def aggregate_daily_loads(
    activities: Iterable[ActivitySummary],
    ftp: float | None = None,
    lthr: float | None = None,
    config: ReconcileConfig | None = None,
    tz: tzinfo | None = None,
) -> list[DailyTrainingLoad]:
    """Sum TSS, session count, distance and moving time per local day.

    Sessions whose TSS is unavailable still count as sessions.  A day with
    no estimable session keeps ``tss=None``.
    """
    cfg = config or get_reconcile_config()
    by_day: dict[date, DailyTrainingLoad] = {}

    for activity in activities:
        day = calendar_day(activity.start, tz)
        load = by_day.setdefault(
            day, DailyTrainingLoad(date=day, tss=None, session_count=0, distance_m=0.0, duration_s=0.0)
        )
        estimate = estimate_tss(activity, ftp, lthr, cfg)
        if estimate is not None:
            load.tss = (load.tss or 0.0) + estimate.value
        load.session_count += 1
        load.distance_m += activity.distance_m or 0.0
        load.duration_s += activity.moving_time_s or 0

    return [by_day[d] for d in sorted(by_day)]


class LoadAggregator:
    """Fetch activities and write daily training load.

    Usage::

        aggregator = LoadAggregator(feed, training_store, settings)
        loads = await aggregator.sync(start, end)
    """

    def __init__(
        self,
        feed: ActivityFeed,
        store: TrainingLoadStore,
        settings: AthleteSettingsProvider,
        config: ReconcileConfig | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self._feed = feed
        self._store = store
        self._settings = settings
        self._config = config or get_reconcile_config()
        self._tz = tz
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def sync(
        self, start: datetime, end: datetime, today: date | None = None
    ) -> list[DailyTrainingLoad] | None:
        """Run one training-load pass.

        Returns the upserted daily loads, or None if a pass is already running.
        """
        if self._running:
            logger.info("Training-load sync already in progress; skipping")
            return None

        self._running = True
        try:
            activities = await fetch_activities(
                self._feed,
                start,
                end,
                per_page=self._config.activity_feed.per_page,
                max_pages=self._config.activity_feed.max_pages,
            )
            loads = aggregate_daily_loads(
                activities,
                ftp=self._settings.ftp,
                lthr=self._settings.lthr,
                config=self._config,
                tz=self._tz,
            )
            merged = await self._store.upsert_many(loads, now=end)
            await self._store.fill_missing_days(today or calendar_day(end, self._tz))
            logger.info("Training-load sync wrote %d days", len(merged))
            return merged
        finally:
            self._running = False
