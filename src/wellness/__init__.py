"""Multi-tracker wellness reconciliation engine.

Ingests samples from several trackers, reconciles them into one record per
day, estimates training stress and derives weekly summaries and insights.

Subpackages:
    adapters/ - Tracker fetchers (health-store export, HTTP activity feed)
    sync/     - Sync pass engine and interval deduplication

Core modules:
    base            - Canonical models, collaborator ABCs, errors
    config_loader   - Load/validate/hot-reload reconcile_config.yaml
    bucketing       - Calendar-day and sleep-night bucketing
    reconciler      - Primary/fallback source reconciliation
    store           - Retained daily-metrics and training-load stores
    tss             - Training stress estimation
    load_aggregator - Activity feed paging and daily load sums
    summary         - Weekly summary
    insights        - Rule-based insights
"""

from src.wellness.base import (
    ActivitySummary,
    DailyMetricRecord,
    DailyTrainingLoad,
    FetchError,
    LinkageRequiredError,
    MetricKind,
    ProviderFetcher,
    Sample,
    SourceId,
    SyncError,
    WellnessError,
)
from src.wellness.config_loader import ReconcileConfig, get_reconcile_config

__all__ = [
    "ActivitySummary",
    "DailyMetricRecord",
    "DailyTrainingLoad",
    "FetchError",
    "LinkageRequiredError",
    "MetricKind",
    "ProviderFetcher",
    "Sample",
    "SourceId",
    "SyncError",
    "WellnessError",
    "ReconcileConfig",
    "get_reconcile_config",
]
