"""Base classes and canonical data models for the wellness reconciliation engine.

Every provider fetcher must subclass ProviderFetcher and return canonical
Sample objects.  These types are the single source of truth consumed by the
bucketing, reconciliation, store and insight layers.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import date, datetime

logger = logging.getLogger("wellness.base")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class WellnessError(Exception):
    """Base class for every error raised by the wellness engine."""


class FetchError(WellnessError):
    """A provider fetch failed (network, payload, upstream error)."""

    def __init__(self, source: "SourceId | None", message: str) -> None:
        self.source = source
        prefix = f"[{source.value}] " if source is not None else ""
        super().__init__(f"{prefix}{message}")


class LinkageRequiredError(FetchError):
    """The provider is missing the external identity/linkage it needs.

    Distinct from FetchError so callers can tell "no data" apart from
    "the account is not connected".
    """


class SyncError(WellnessError):
    """A sync pass failed as a whole."""


class StoreError(WellnessError):
    """Persistent store could not be read or written."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SourceId(str, enum.Enum):
    """Closed set of tracker sources the engine knows how to reconcile."""

    HEALTH_STORE = "health_store"      # on-device health store
    WEARABLE_RELAY = "wearable_relay"  # cloud relay for a wearable
    ACTIVITY_API = "activity_api"      # third-party activity API

    @classmethod
    def resolve(cls, value: str) -> "SourceId":
        """Resolve a configured source slug to a SourceId.

        Matching is exact (case-insensitive); unknown slugs raise ValueError.
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown source '{value}'. Available: {[s.value for s in cls]}"
            ) from None


class MetricGroup(str, enum.Enum):
    """Metric families that share one primary/fallback provider policy."""

    SLEEP = "sleep"
    ACTIVITY = "activity"
    HEART = "heart"
    BODY = "body"


class Aggregation(str, enum.Enum):
    INTERVAL = "interval"        # covered duration, interval union
    CUMULATIVE = "cumulative"    # summed per day
    INSTANT = "instant"          # latest reading wins


class MetricKind(str, enum.Enum):
    """Canonical metric classification of a Sample."""

    STEPS = "steps"
    ACTIVE_ENERGY = "active_energy"
    DISTANCE = "distance"
    RESTING_HR = "resting_hr"
    BODY_MASS = "body_mass"
    BODY_FAT_PCT = "body_fat_pct"
    LEAN_MASS = "lean_mass"
    SLEEP_DEEP = "sleep_deep"
    SLEEP_REM = "sleep_rem"
    SLEEP_CORE = "sleep_core"
    SLEEP_UNSPECIFIED = "sleep_unspecified"
    SLEEP_AWAKE = "sleep_awake"

    @property
    def is_sleep(self) -> bool:
        return self.value.startswith("sleep_")

    @property
    def aggregation(self) -> Aggregation:
        if self.is_sleep:
            return Aggregation.INTERVAL
        if self in (MetricKind.STEPS, MetricKind.ACTIVE_ENERGY, MetricKind.DISTANCE):
            return Aggregation.CUMULATIVE
        return Aggregation.INSTANT

    @property
    def group(self) -> MetricGroup:
        if self.is_sleep:
            return MetricGroup.SLEEP
        if self is MetricKind.RESTING_HR:
            return MetricGroup.HEART
        if self in (MetricKind.BODY_MASS, MetricKind.BODY_FAT_PCT, MetricKind.LEAN_MASS):
            return MetricGroup.BODY
        return MetricGroup.ACTIVITY

    @property
    def record_field(self) -> str:
        """Name of the DailyMetricRecord field this metric populates."""
        return _RECORD_FIELD_BY_KIND[self]


_RECORD_FIELD_BY_KIND: dict[MetricKind, str] = {
    MetricKind.STEPS: "steps",
    MetricKind.ACTIVE_ENERGY: "active_energy_kcal",
    MetricKind.DISTANCE: "distance_m",
    MetricKind.RESTING_HR: "resting_hr_bpm",
    MetricKind.BODY_MASS: "body_mass_kg",
    MetricKind.BODY_FAT_PCT: "body_fat_pct",
    MetricKind.LEAN_MASS: "lean_mass_kg",
    MetricKind.SLEEP_DEEP: "sleep_deep_s",
    MetricKind.SLEEP_REM: "sleep_rem_s",
    MetricKind.SLEEP_CORE: "sleep_core_s",
    MetricKind.SLEEP_UNSPECIFIED: "sleep_unspecified_s",
    MetricKind.SLEEP_AWAKE: "sleep_awake_s",
}


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sample:
    """One time-stamped observation from a tracker.

    Samples are created by a fetch and consumed within one sync pass; they
    are never persisted.

    Attributes:
        kind:   Metric classification.
        start:  Start of the interval, or the instant of the reading.
        end:    End of the interval; None for instantaneous readings.
        value:  Quantity (steps, kcal, metres, bpm, kg, %).  Ignored for
                sleep stages, whose value is their covered duration.
        source: Tracker that produced the sample.
    """

    kind: MetricKind
    start: datetime
    end: datetime | None
    value: float
    source: SourceId

    @property
    def duration_seconds(self) -> float | None:
        if self.end is None:
            return None
        return (self.end - self.start).total_seconds()


# ---------------------------------------------------------------------------
# Canonical daily records
# ---------------------------------------------------------------------------

# Scoring targets for derived daily scores
_STEP_TARGET = 8000
_IDEAL_STAGE_SECONDS = 1.5 * 3600


@dataclass
class DailyMetricRecord:
    """Canonical per-day wellness record.

    All measurement fields are optional: None means "no data", never zero.
    A record passed to ``DailyMetricsStore.upsert`` is a partial update;
    only its non-None fields overwrite the stored values.
    """

    date: date
    steps: int | None = None
    active_energy_kcal: float | None = None
    resting_hr_bpm: int | None = None
    distance_m: float | None = None
    sleep_deep_s: float | None = None
    sleep_rem_s: float | None = None
    sleep_core_s: float | None = None
    sleep_unspecified_s: float | None = None
    sleep_awake_s: float | None = None
    body_mass_kg: float | None = None
    body_fat_pct: float | None = None
    lean_mass_kg: float | None = None

    @property
    def day_key(self) -> date:
        return self.date

    def merge(self, update: "DailyMetricRecord") -> "DailyMetricRecord":
        """Return a copy with every non-None field of ``update`` applied."""
        merged = DailyMetricRecord(date=self.date)
        for f in fields(self):
            if f.name == "date":
                continue
            incoming = getattr(update, f.name)
            setattr(merged, f.name, incoming if incoming is not None else getattr(self, f.name))
        return merged

    # -- derived --------------------------------------------------------

    @property
    def total_sleep_s(self) -> float | None:
        """Asleep time: every stage except awake."""
        parts = [
            v for v in (self.sleep_deep_s, self.sleep_rem_s,
                        self.sleep_core_s, self.sleep_unspecified_s)
            if v is not None
        ]
        return sum(parts) if parts else None

    @property
    def time_in_bed_s(self) -> float | None:
        parts = [
            v for v in (self.sleep_deep_s, self.sleep_rem_s, self.sleep_core_s,
                        self.sleep_unspecified_s, self.sleep_awake_s)
            if v is not None
        ]
        return sum(parts) if parts else None

    @property
    def sleep_efficiency(self) -> float | None:
        """Asleep / in-bed, as a percentage (0-100)."""
        asleep = self.total_sleep_s
        in_bed = self.time_in_bed_s
        if asleep is None or not in_bed:
            return None
        return asleep / in_bed * 100

    @property
    def activity_score(self) -> int | None:
        if self.steps is None:
            return None
        return min(100, int(self.steps / _STEP_TARGET * 100))

    @property
    def sleep_quality_score(self) -> int | None:
        efficiency = self.sleep_efficiency
        if self.sleep_deep_s is None or self.sleep_rem_s is None or efficiency is None:
            return None
        deep_score = min(100.0, self.sleep_deep_s / _IDEAL_STAGE_SECONDS * 100)
        rem_score = min(100.0, self.sleep_rem_s / _IDEAL_STAGE_SECONDS * 100)
        return int((deep_score + rem_score + efficiency) / 3)


@dataclass(frozen=True)
class ActivitySummary:
    """One completed training session as reported by an activity feed.

    Attributes:
        id:                     Provider activity ID.
        type:                   Provider activity type ("Ride", "Run", ...).
        start:                  Session start.
        moving_time_s:          Moving time in seconds.
        elapsed_time_s:         Elapsed time in seconds.
        distance_m:             Distance in metres.
        average_watts:          Average power.
        weighted_average_watts: Weighted / normalized power if reported.
        suffer_score:           Provider effort score, used verbatim as TSS.
        average_heartrate:      Average heart rate.
        max_heartrate:          Maximum heart rate.
        kilojoules:             Mechanical work.
        name:                   Human-readable title.
    """

    id: str
    type: str
    start: datetime
    moving_time_s: int
    elapsed_time_s: int = 0
    distance_m: float = 0.0
    average_watts: float | None = None
    weighted_average_watts: float | None = None
    suffer_score: float | None = None
    average_heartrate: float | None = None
    max_heartrate: float | None = None
    kilojoules: float | None = None
    name: str = ""


@dataclass
class DailyTrainingLoad:
    """Summed training stress for one day."""

    date: date
    tss: float | None = None
    session_count: int | None = None
    distance_m: float | None = None
    duration_s: float | None = None

    @property
    def day_key(self) -> date:
        return self.date

    def merge(self, update: "DailyTrainingLoad") -> "DailyTrainingLoad":
        """Return a copy with every non-None field of ``update`` applied."""
        return DailyTrainingLoad(
            date=self.date,
            tss=update.tss if update.tss is not None else self.tss,
            session_count=(
                update.session_count if update.session_count is not None
                else self.session_count
            ),
            distance_m=update.distance_m if update.distance_m is not None else self.distance_m,
            duration_s=update.duration_s if update.duration_s is not None else self.duration_s,
        )


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class ProviderFetcher(ABC):
    """Abstract base class for every tracker fetcher.

    Authentication, rate limiting and provider-side pagination belong to the
    implementation; the engine only sees canonical samples.
    """

    #: Source this fetcher reports as.
    SOURCE: SourceId

    @property
    def source(self) -> SourceId:
        return self.SOURCE

    @abstractmethod
    async def fetch(self, start: datetime, end: datetime) -> list[Sample]:
        """Return every sample in ``[start, end)``.

        Raises:
            LinkageRequiredError: The provider account is not linked.
            FetchError:           Any other provider failure.
        """


class ActivityFeed(ABC):
    """Paginated activity feed, newest first."""

    @abstractmethod
    async def fetch_activities(self, page: int, per_page: int) -> list[ActivitySummary]:
        """Return one page (1-based) of activities."""


class AthleteSettingsProvider(ABC):
    """Athlete calibration values read by the TSS estimator."""

    @property
    @abstractmethod
    def ftp(self) -> float | None:
        """Functional threshold power in watts."""

    @property
    @abstractmethod
    def lthr(self) -> float | None:
        """Lactate threshold heart rate in bpm."""

    @abstractmethod
    def update_body_mass(self, kg: float) -> None:
        """Record the most recent body-mass observation."""


class StaticAthleteSettings(AthleteSettingsProvider):
    """In-process settings holder."""

    def __init__(
        self,
        ftp: float | None = None,
        lthr: float | None = None,
        body_mass_kg: float | None = None,
    ) -> None:
        self._ftp = ftp
        self._lthr = lthr
        self.body_mass_kg = body_mass_kg

    @property
    def ftp(self) -> float | None:
        return self._ftp

    @property
    def lthr(self) -> float | None:
        return self._lthr

    def update_body_mass(self, kg: float) -> None:
        logger.info("Athlete body mass updated: %.1f kg", kg)
        self.body_mass_kg = kg


# ---------------------------------------------------------------------------
# Shared parse helpers
# ---------------------------------------------------------------------------


def safe_float(value: object) -> float | None:
    """Safely coerce a value to float, returning None on failure."""
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def safe_int(value: object) -> int | None:
    """Safely coerce a value to int, returning None on failure."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 datetime string.

    Timezone-aware values keep their offset; naive values are returned as-is
    and treated as local time by the bucketing layer.  Returns None if the
    value is missing or unparseable.
    """
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        logger.warning("Could not parse datetime string: %r", value)
        return None
