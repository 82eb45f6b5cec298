"""Load, validate, and hot-reload the wellness reconciliation policy.

The config lives in ``reconcile_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_reconcile_config()`` to
re-read from disk; no restart required.

Usage::

    from src.wellness.config_loader import get_reconcile_config

    config = get_reconcile_config()
    config.primary_source(MetricKind.SLEEP_DEEP)   # SourceId.HEALTH_STORE
    config.assumed_intensity("Ride")               # 0.70
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.wellness.base import MetricGroup, MetricKind, SourceId

logger = logging.getLogger("wellness.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "reconcile_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class ActivityFeedConfig:
    """Paging limits for the activity feed."""

    per_page: int
    max_pages: int


@dataclass
class TrainingStressConfig:
    """Duration-only TSS fallback settings."""

    assumed_intensity: dict[str, float]
    default_intensity: float


@dataclass
class SyncConfig:
    stale_after_minutes: int


@dataclass
class ReconcileConfig:
    """Complete, validated reconciliation configuration.

    Attributes:
        version:          Config schema version string.
        primary_sources:  Metric group → primary provider.
        retention_days:   Records older than this many days are pruned.
        activity_feed:    Feed paging limits.
        training_stress:  Duration-only TSS settings.
        sync:             Sync staleness settings.
    """

    version: str
    primary_sources: dict[MetricGroup, SourceId]
    retention_days: int
    activity_feed: ActivityFeedConfig
    training_stress: TrainingStressConfig
    sync: SyncConfig
    _raw: dict = field(default_factory=dict, repr=False)

    def primary_source(self, kind: MetricKind) -> SourceId:
        """Return the primary provider for a metric kind's group.

        Groups without an explicit entry fall back to the on-device store.
        """
        return self.primary_sources.get(kind.group, SourceId.HEALTH_STORE)

    def assumed_intensity(self, activity_type: str) -> float:
        """Return the assumed intensity factor for an activity type."""
        return self.training_stress.assumed_intensity.get(
            activity_type.strip().lower(), self.training_stress.default_intensity
        )


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when reconcile_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError:     If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Reconcile config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> ReconcileConfig:
    """Validate the raw YAML dict and construct a ReconcileConfig.

    Every problem is collected before raising so one run reports them all.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Primary sources ──
    primary_raw = raw.get("primary_sources", {})
    if not primary_raw:
        errors.append("'primary_sources' section is missing or empty")

    primary_sources: dict[MetricGroup, SourceId] = {}
    for group_name, source_name in (primary_raw or {}).items():
        try:
            group = MetricGroup(str(group_name))
        except ValueError:
            errors.append(
                f"primary_sources.{group_name} is not a metric group "
                f"({[g.value for g in MetricGroup]})"
            )
            continue
        try:
            primary_sources[group] = SourceId.resolve(str(source_name))
        except ValueError as exc:
            errors.append(f"primary_sources.{group_name}: {exc}")

    # ── Retention ──
    retention_raw = raw.get("retention", {}) or {}
    retention_days = 90
    try:
        retention_days = int(retention_raw.get("days", 90))
        if retention_days <= 0:
            errors.append(f"retention.days must be positive, got {retention_days}")
    except (TypeError, ValueError):
        errors.append(f"retention.days must be an integer, got {retention_raw.get('days')!r}")

    # ── Activity feed ──
    feed_raw = raw.get("activity_feed", {}) or {}
    activity_feed = ActivityFeedConfig(per_page=200, max_pages=50)
    try:
        activity_feed = ActivityFeedConfig(
            per_page=int(feed_raw.get("per_page", 200)),
            max_pages=int(feed_raw.get("max_pages", 50)),
        )
        if activity_feed.per_page <= 0 or activity_feed.max_pages <= 0:
            errors.append("activity_feed.per_page and max_pages must be positive")
    except (TypeError, ValueError):
        errors.append("activity_feed.per_page and max_pages must be integers")

    # ── Training stress ──
    ts_raw = raw.get("training_stress", {}) or {}
    intensity: dict[str, float] = {}
    for activity_type, value in (ts_raw.get("assumed_intensity") or {}).items():
        try:
            factor = float(value)
        except (TypeError, ValueError):
            errors.append(
                f"training_stress.assumed_intensity.{activity_type} must be a number, "
                f"got {value!r}"
            )
            continue
        if not (0.0 < factor <= 1.5):
            errors.append(
                f"training_stress.assumed_intensity.{activity_type} = {factor} "
                f"is out of range (0.0, 1.5]"
            )
        intensity[str(activity_type).lower()] = factor
    training_stress = TrainingStressConfig(
        assumed_intensity=intensity,
        default_intensity=float(ts_raw.get("default_intensity", 0.65)),
    )

    # ── Sync ──
    sync_raw = raw.get("sync", {}) or {}
    sync = SyncConfig(stale_after_minutes=int(sync_raw.get("stale_after_minutes", 60)))

    if errors:
        raise ConfigValidationError(
            f"reconcile_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return ReconcileConfig(
        version=version,
        primary_sources=primary_sources,
        retention_days=retention_days,
        activity_feed=activity_feed,
        training_stress=training_stress,
        sync=sync,
        _raw=raw,
    )


def load_reconcile_config(path: Path | None = None) -> ReconcileConfig:
    """Load and validate the reconcile config from disk.

    Args:
        path: Override path to YAML. Uses the bundled reconcile_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded reconcile config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Cached instance with hot-reload support
# ---------------------------------------------------------------------------

_config: ReconcileConfig | None = None
_config_lock = threading.Lock()


def get_reconcile_config() -> ReconcileConfig:
    """Return the cached ReconcileConfig, loading it on first call.

    Thread-safe.  Use ``reload_reconcile_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_reconcile_config()
    return _config


def reload_reconcile_config(path: Path | None = None) -> ReconcileConfig:
    """Reload the reconcile config from disk and replace the cached instance.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_reconcile_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded reconcile config: %s → %s", old_version, new_config.version)
    return new_config
