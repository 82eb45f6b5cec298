"""Training stress score (TSS) estimation for one activity.

The estimator walks a fallback chain and the first applicable step wins:

1. effort score   provider-reported score, used verbatim
2. power          hours × (avg_watts / FTP)² × 100
3. heart rate     hours × (avg_hr / LTHR)² × 100
4. energy         kJ / (FTP × 3.6)
5. duration       hours × IF² × 100, IF assumed from the activity type

``hours`` is moving time / 3600.  The assumed-IF table lives in
reconcile_config.yaml (``training_stress.assumed_intensity``).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from src.wellness.base import ActivitySummary
from src.wellness.config_loader import ReconcileConfig, get_reconcile_config

logger = logging.getLogger("wellness.tss")


class TssMethod(str, enum.Enum):
    EFFORT_SCORE = "effort_score"
    POWER = "power"
    HEART_RATE = "heart_rate"
    ENERGY = "energy"
    DURATION = "duration"


@dataclass(frozen=True)
class TssEstimate:
    value: float
    method: TssMethod


def _positive(value: float | None) -> bool:
    return value is not None and value > 0


def estimate_tss(
    activity: ActivitySummary,
    ftp: float | None = None,
    lthr: float | None = None,
    config: ReconcileConfig | None = None,
) -> TssEstimate | None:
    """Estimate training stress for ``activity``.

    Args:
        activity: The session to score.
        ftp:      Functional threshold power (W); power and energy steps need it.
        lthr:     Lactate threshold heart rate (bpm); heart-rate step needs it.
        config:   Reconcile config supplying the assumed-IF table.

    Returns:
        TssEstimate, or None when the activity has no effort score and no
        moving time to scale by.
    """
    if activity.suffer_score is not None:
        return TssEstimate(float(activity.suffer_score), TssMethod.EFFORT_SCORE)

    hours = (activity.moving_time_s or 0) / 3600
    if hours <= 0:
        logger.debug("Activity %s has no moving time; TSS unavailable", activity.id)
        return None

    if _positive(activity.average_watts) and _positive(ftp):
        intensity = activity.average_watts / ftp
        return TssEstimate(hours * intensity**2 * 100, TssMethod.POWER)

    if activity.average_heartrate is not None and _positive(lthr):
        intensity = activity.average_heartrate / lthr
        return TssEstimate(hours * intensity**2 * 100, TssMethod.HEART_RATE)

    if _positive(activity.kilojoules) and _positive(ftp):
        return TssEstimate(activity.kilojoules / (ftp * 3.6), TssMethod.ENERGY)

    cfg = config or get_reconcile_config()
    intensity = cfg.assumed_intensity(activity.type)
    return TssEstimate(hours * intensity**2 * 100, TssMethod.DURATION)
