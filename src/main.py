"""Wellness reconciler command-line entry point.

Run locally:
    python -m src.main sync --days 7 --tsb -4
    python -m src.main summary --tsb 3
    python -m src.main migrate --force
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from src.config import Settings, get_settings
from src.wellness.adapters import HttpActivityFeed, get_fetcher
from src.wellness.base import ProviderFetcher, SourceId, StaticAthleteSettings, WellnessError
from src.wellness.config_loader import get_reconcile_config, load_reconcile_config
from src.wellness.insights import (
    TrainingLoadContext,
    generate_combined_insights,
    generate_insights,
)
from src.wellness.load_aggregator import LoadAggregator
from src.wellness.store import DailyMetricsStore, TrainingLoadStore
from src.wellness.summary import WeeklySummary, build_weekly_summary
from src.wellness.sync.engine import WellnessSync

logger = logging.getLogger("wellness")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def build_fetchers(settings: Settings) -> list[ProviderFetcher]:
    exports = (
        (SourceId.HEALTH_STORE, settings.health_export_path),
        (SourceId.WEARABLE_RELAY, settings.wearable_export_path),
    )
    return [get_fetcher(source.value)(path, source=source) for source, path in exports if path]


def print_report(summary: WeeklySummary, load: TrainingLoadContext | None) -> None:
    def fmt(value: float | None, spec: str = ".1f") -> str:
        return "n/a" if value is None else format(value, spec)

    print(f"Week {summary.period_start} to {summary.period_end} ({len(summary.records)} days)")
    print(f"  avg steps:            {fmt(summary.avg_steps, '.0f')}")
    print(f"  avg sleep (h):        {fmt(summary.avg_sleep_hours)}")
    print(f"  avg sleep efficiency: {fmt(summary.avg_sleep_efficiency)}")
    print(f"  avg activity score:   {fmt(summary.avg_activity_score)}")
    print(f"  sleep debt (h):       {fmt(summary.sleep_debt_hours)}")
    if load is not None:
        print(f"  weekly TSS:           {load.weekly_tss:.0f}")

    insights = generate_insights(summary) + generate_combined_insights(summary, load)
    for insight in insights:
        print(f"[{insight.severity.value}] {insight.title}: {insight.message}")
        print(f"    -> {insight.recommendation}")


async def run_sync(settings: Settings, days: int, tsb: float | None, force: bool = False) -> int:
    tz = ZoneInfo(settings.timezone)
    config = (
        load_reconcile_config(settings.reconcile_config_path)
        if settings.reconcile_config_path else get_reconcile_config()
    )
    retention = config.retention_days

    metrics_store = DailyMetricsStore(
        settings.metrics_store_path, settings.legacy_store_path, retention
    )
    training_store = TrainingLoadStore(
        settings.training_store_path, settings.legacy_store_path, retention
    )
    await metrics_store.migrate()
    await training_store.migrate()

    athlete = StaticAthleteSettings(ftp=settings.ftp, lthr=settings.lthr)
    now = datetime.now(tz)
    start = datetime.combine(now.date() - timedelta(days=days - 1), time.min, tzinfo=tz)

    fetchers = build_fetchers(settings)
    stale_after = timedelta(minutes=config.sync.stale_after_minutes)
    if fetchers and not force and not metrics_store.needs_sync(now, stale_after):
        logger.info("Last sync at %s is still fresh; use --force to resync",
                    metrics_store.last_sync_at)
    elif fetchers:
        engine = WellnessSync(fetchers, metrics_store, config, athlete, tz=tz)
        result = await engine.sync(start, now, now=now)
        if result is not None:
            for err in result.provider_errors:
                logger.warning("%s: %s (%s)", err.source.value, err.status, err.message)
    else:
        logger.info("No tracker exports configured; skipping wellness sync")

    if settings.activity_feed_url:
        feed = HttpActivityFeed(
            settings.activity_feed_url, settings.activity_feed_token, settings.athlete_id
        )
        aggregator = LoadAggregator(feed, training_store, athlete, config, tz)
        await aggregator.sync(start, now, today=now.date())

    today = now.date()
    summary = build_weekly_summary(metrics_store.query_range(today - timedelta(days=6), today), today)
    load = (
        TrainingLoadContext(current_tsb=tsb, weekly_tss=training_store.weekly_tss(today))
        if tsb is not None else None
    )
    print_report(summary, load)
    return 0


async def run_summary(settings: Settings, tsb: float | None) -> int:
    tz = ZoneInfo(settings.timezone)
    today = datetime.now(tz).date()
    metrics_store = DailyMetricsStore(settings.metrics_store_path)
    training_store = TrainingLoadStore(settings.training_store_path)
    summary = build_weekly_summary(metrics_store.all(), today)
    load = (
        TrainingLoadContext(current_tsb=tsb, weekly_tss=training_store.weekly_tss(today))
        if tsb is not None else None
    )
    print_report(summary, load)
    return 0


async def run_migrate(settings: Settings, force: bool) -> int:
    ok = True
    for store in (
        DailyMetricsStore(settings.metrics_store_path, settings.legacy_store_path),
        TrainingLoadStore(settings.training_store_path, settings.legacy_store_path),
    ):
        done = await (store.force_migration() if force else store.migrate())
        ok = ok and done
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile multi-tracker wellness data")
    sub = parser.add_subparsers(dest="command", required=True)

    sync_p = sub.add_parser("sync", help="Fetch, reconcile and store recent days")
    sync_p.add_argument("--days", type=int, default=7, help="Days to sync, ending today")
    sync_p.add_argument("--tsb", type=float, help="Current training-stress balance")
    sync_p.add_argument("--force", action="store_true", help="Sync even if recently synced")

    summary_p = sub.add_parser("summary", help="Print the weekly summary and insights")
    summary_p.add_argument("--tsb", type=float, help="Current training-stress balance")

    migrate_p = sub.add_parser("migrate", help="Move records out of the legacy store")
    migrate_p.add_argument("--force", action="store_true", help="Re-run a completed migration")

    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        if args.command == "sync":
            return asyncio.run(run_sync(settings, max(1, args.days), args.tsb, args.force))
        if args.command == "summary":
            return asyncio.run(run_summary(settings, args.tsb))
        return asyncio.run(run_migrate(settings, args.force))
    except WellnessError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
