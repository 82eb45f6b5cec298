"""Rule-based wellness and training insights.

Each rule is a pure function of a WeeklySummary (and, for combined rules, a
TrainingLoadContext) returning an Insight or None, so rules can be tested
and evaluated independently.  ``generate_insights`` and
``generate_combined_insights`` run the rule sets in a fixed order.

Training-stress balance (TSB) is an input here; this module never computes
fitness/fatigue decay.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from src.wellness.summary import WeeklySummary

logger = logging.getLogger("wellness.insights")


class Severity(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class InsightKind(str, enum.Enum):
    SLEEP_DEBT = "sleep_debt"
    LOW_ACTIVITY = "low_activity"
    SLEEP_QUALITY = "sleep_quality"
    POSITIVE_PROGRESS = "positive_progress"
    INACTIVE_RECOVERY = "inactive_recovery"
    INSUFFICIENT_REST = "insufficient_rest"
    SLEEP_DEBT_LOAD = "sleep_debt_load"
    OPTIMAL_RECOVERY = "optimal_recovery"
    HIGH_VOLUME = "high_volume"


@dataclass(frozen=True)
class Insight:
    kind: InsightKind
    title: str
    message: str
    recommendation: str
    severity: Severity


@dataclass(frozen=True)
class TrainingLoadContext:
    """Caller-supplied training-load state.

    Attributes:
        current_tsb: Training-stress balance (fitness minus fatigue).
        weekly_tss:  Total TSS over the trailing 7 days.
    """

    current_tsb: float
    weekly_tss: float = 0.0


# ---------------------------------------------------------------------------
# Wellness rules
# ---------------------------------------------------------------------------

# Thresholds
SLEEP_DEBT_MEDIUM_H = -5.0
SLEEP_DEBT_HIGH_H = -10.0
LOW_ACTIVITY_STEPS = 5000
SLEEP_EFFICIENCY_TARGET = 85.0
POSITIVE_TREND = 10.0


def sleep_debt_rule(summary: WeeklySummary) -> Insight | None:
    debt = summary.sleep_debt_hours
    if debt is None or debt >= SLEEP_DEBT_MEDIUM_H:
        return None
    return Insight(
        kind=InsightKind.SLEEP_DEBT,
        title="Sleep Debt",
        message=f"You're {abs(int(debt))} hours behind on sleep this week",
        recommendation="Prioritize 8+ hours tonight to support recovery",
        severity=Severity.HIGH if debt < SLEEP_DEBT_HIGH_H else Severity.MEDIUM,
    )


def low_activity_rule(summary: WeeklySummary) -> Insight | None:
    steps = summary.avg_steps
    if steps is None or steps >= LOW_ACTIVITY_STEPS:
        return None
    return Insight(
        kind=InsightKind.LOW_ACTIVITY,
        title="Low Activity",
        message="Daily activity is below recommended levels",
        recommendation="Add light walks on rest days to improve circulation and recovery",
        severity=Severity.MEDIUM,
    )


def sleep_efficiency_rule(summary: WeeklySummary) -> Insight | None:
    efficiency = summary.avg_sleep_efficiency
    if efficiency is None or efficiency >= SLEEP_EFFICIENCY_TARGET:
        return None
    return Insight(
        kind=InsightKind.SLEEP_QUALITY,
        title="Poor Sleep Efficiency",
        message=f"Sleep efficiency is {int(efficiency)}% (target: >{int(SLEEP_EFFICIENCY_TARGET)}%)",
        recommendation="Reduce screen time before bed and keep room cool",
        severity=Severity.MEDIUM,
    )


def activity_trend_rule(summary: WeeklySummary) -> Insight | None:
    trend = summary.activity_trend
    if trend is None or trend <= POSITIVE_TREND:
        return None
    return Insight(
        kind=InsightKind.POSITIVE_PROGRESS,
        title="Activity Trending Up",
        message="Daily activity is trending up",
        recommendation="Keep up the good work with consistent movement",
        severity=Severity.INFO,
    )


WELLNESS_RULES: tuple[Callable[[WeeklySummary], Insight | None], ...] = (
    sleep_debt_rule,
    low_activity_rule,
    sleep_efficiency_rule,
    activity_trend_rule,
)


def generate_insights(summary: WeeklySummary) -> list[Insight]:
    """Evaluate every wellness rule against ``summary``."""
    insights = [i for i in (rule(summary) for rule in WELLNESS_RULES) if i is not None]
    logger.debug("Generated %d wellness insights", len(insights))
    return insights


# ---------------------------------------------------------------------------
# Combined wellness + training-load rules
# ---------------------------------------------------------------------------


def inactive_recovery_rule(summary: WeeklySummary, load: TrainingLoadContext) -> Insight | None:
    steps = summary.avg_steps
    if steps is None or not (load.current_tsb > 5 and steps < 5000):
        return None
    return Insight(
        kind=InsightKind.INACTIVE_RECOVERY,
        title="Inactive Recovery Detected",
        message=(
            f"TSB shows you're recovered (+{int(load.current_tsb)}), "
            f"but you're averaging only {int(steps)} steps/day"
        ),
        recommendation=(
            "Add 20-30min easy walks daily. Active recovery improves circulation "
            "and speeds healing."
        ),
        severity=Severity.MEDIUM,
    )


def insufficient_rest_rule(summary: WeeklySummary, load: TrainingLoadContext) -> Insight | None:
    steps = summary.avg_steps
    if steps is None or not (load.current_tsb < -10 and steps > 12000):
        return None
    return Insight(
        kind=InsightKind.INSUFFICIENT_REST,
        title="Insufficient Rest",
        message=(
            f"TSB is {int(load.current_tsb)} and you're walking {int(steps)} steps/day; "
            "minimal rest is occurring"
        ),
        recommendation="Consider a complete rest day with <5000 steps to allow deep recovery.",
        severity=Severity.HIGH,
    )


def sleep_debt_load_rule(summary: WeeklySummary, load: TrainingLoadContext) -> Insight | None:
    debt = summary.sleep_debt_hours
    if debt is None or not (debt < -3 and load.current_tsb < 0):
        return None
    severe = debt < -5
    return Insight(
        kind=InsightKind.SLEEP_DEBT_LOAD,
        title="Sleep Debt Accumulating",
        message=(
            f"You're {abs(int(debt))} hours behind on sleep "
            f"with a TSB of {load.current_tsb:.1f}"
        ),
        recommendation=(
            "Consider reducing training volume by 20% until sleep normalizes"
            if severe else "Prioritize 8+ hours tonight"
        ),
        severity=Severity.HIGH if severe else Severity.MEDIUM,
    )


def optimal_recovery_rule(summary: WeeklySummary, load: TrainingLoadContext) -> Insight | None:
    sleep = summary.avg_sleep_hours
    steps = summary.avg_steps
    if sleep is None or steps is None:
        return None
    if not (sleep >= 7.5 and steps >= 6000 and load.current_tsb > 0):
        return None
    return Insight(
        kind=InsightKind.OPTIMAL_RECOVERY,
        title="Optimal Recovery Window",
        message=(
            f"Great sleep ({sleep:.1f}h), good activity ({int(steps)} steps), "
            "and positive form"
        ),
        recommendation="Perfect time for a breakthrough workout; your body is ready!",
        severity=Severity.INFO,
    )


def high_volume_rule(summary: WeeklySummary, load: TrainingLoadContext) -> Insight | None:
    body_fat = summary.latest_body_fat_pct
    if body_fat is None or not (load.weekly_tss > 500 and body_fat > 15):
        return None
    return Insight(
        kind=InsightKind.HIGH_VOLUME,
        title="High Volume Training",
        message=f"Logging {int(load.weekly_tss)} TSS/week with current body composition",
        recommendation=(
            "Ensure adequate fueling (300-400 cal/hr on rides >2hrs) to support "
            "training volume."
        ),
        severity=Severity.LOW,
    )


COMBINED_RULES: tuple[
    Callable[[WeeklySummary, TrainingLoadContext], Insight | None], ...
] = (
    inactive_recovery_rule,
    insufficient_rest_rule,
    sleep_debt_load_rule,
    optimal_recovery_rule,
    high_volume_rule,
)


def generate_combined_insights(
    summary: WeeklySummary, load: TrainingLoadContext | None
) -> list[Insight]:
    """Evaluate every combined rule; no training-load context means no insights."""
    if load is None:
        return []
    insights = [i for i in (rule(summary, load) for rule in COMBINED_RULES) if i is not None]
    logger.debug("Generated %d combined insights (TSB %.1f)", len(insights), load.current_tsb)
    return insights
