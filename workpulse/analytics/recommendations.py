"""
Recommendation Engine

Pure function from BehavioralMetrics to at most max_recommendations
suggestions. Every rule is evaluated (no early stop); if more fire than the
limit allows, the highest priorities win and evaluation order breaks ties.

Rules, in evaluation order:
    switches_per_hour > 20      -> high    reduce_switching
    focus_percentage < 30       -> high    increase_focus
    fragmentation_score > 70    -> medium  reduce_fragmentation
    focus_percentage > 50       -> low     maintain_focus

Each suggestion's rationale and action embed the metric value that
triggered it, formatted with format_value().

Usage:
    from workpulse.analytics.recommendations import recommend

    for rec in recommend(metrics):
        print(rec.priority, rec.action)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from workpulse.analytics.models import BehavioralMetrics, Priority, Recommendation
from workpulse.config_models import RecommendationsConfig


def format_value(value: float) -> str:
    """Text form used wherever a metric value is embedded in a suggestion."""
    return f"{value:.1f}"


def format_duration(seconds: float) -> str:
    minutes = int(round(seconds / 60))
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m"


@dataclass(frozen=True)
class Rule:
    category: str
    priority: Priority
    metric: str
    triggered: Callable[[BehavioralMetrics, RecommendationsConfig], bool]
    build: Callable[[BehavioralMetrics], tuple[str, str]]


def _reduce_switching(m: BehavioralMetrics) -> tuple[str, str]:
    rate = format_value(m.switches_per_hour)
    rationale = f"You switched context {rate} times per active hour ({m.switch_count} switches in total)."
    if m.switch_pattern is not None:
        rationale += f" The most common switch was {m.switch_pattern.label} ({m.switch_pattern.count} times)."
    action = (
        f"Batch messages and quick checks into two or three fixed slots a day "
        f"to bring {rate} switches per hour down."
    )
    return rationale, action


def _increase_focus(m: BehavioralMetrics) -> tuple[str, str]:
    pct = format_value(m.focus_percentage)
    rationale = f"Only {pct}% of your active time was spent in focus blocks of 25 minutes or more."
    if m.peak_focus_bucket is not None:
        action = (
            f"Block {m.peak_focus_bucket.label} for deep work, your strongest focus window, "
            f"to raise your {pct}% focus share."
        )
    else:
        action = f"Schedule one uninterrupted 25-minute block tomorrow to raise your {pct}% focus share."
    return rationale, action


def _reduce_fragmentation(m: BehavioralMetrics) -> tuple[str, str]:
    score = format_value(m.fragmentation_score)
    rationale = f"Your fragmentation score was {score} out of 100; switches came in tight clusters."
    action = f"Finish the current task before opening a new context to lower your fragmentation score of {score}."
    return rationale, action


def _maintain_focus(m: BehavioralMetrics) -> tuple[str, str]:
    pct = format_value(m.focus_percentage)
    rationale = f"{pct}% of your active time was focused work ({format_duration(m.focus_time)})."
    action = f"Keep your current routine; it produced a {pct}% focus share."
    return rationale, action


RULES: tuple[Rule, ...] = (
    Rule(
        category="reduce_switching",
        priority=Priority.HIGH,
        metric="switches_per_hour",
        triggered=lambda m, c: m.switches_per_hour > c.switches_per_hour_high,
        build=_reduce_switching,
    ),
    Rule(
        category="increase_focus",
        priority=Priority.HIGH,
        metric="focus_percentage",
        triggered=lambda m, c: m.focus_percentage < c.focus_percentage_low,
        build=_increase_focus,
    ),
    Rule(
        category="reduce_fragmentation",
        priority=Priority.MEDIUM,
        metric="fragmentation_score",
        triggered=lambda m, c: m.fragmentation_score > c.fragmentation_high,
        build=_reduce_fragmentation,
    ),
    Rule(
        category="maintain_focus",
        priority=Priority.LOW,
        metric="focus_percentage",
        triggered=lambda m, c: m.focus_percentage > c.focus_percentage_good,
        build=_maintain_focus,
    ),
)


def recommend(metrics: BehavioralMetrics, config: RecommendationsConfig | None = None) -> list[Recommendation]:
    """Ordered, bounded list of grounded recommendations."""
    config = config or RecommendationsConfig()

    fired: list[tuple[int, Recommendation]] = []
    for order, rule in enumerate(RULES):
        if not rule.triggered(metrics, config):
            continue
        rationale, action = rule.build(metrics)
        fired.append(
            (
                order,
                Recommendation(
                    category=rule.category,
                    priority=rule.priority,
                    rationale=rationale,
                    action=action,
                    metric=rule.metric,
                    metric_value=getattr(metrics, rule.metric),
                ),
            )
        )

    fired.sort(key=lambda item: (item[1].priority.rank, item[0]))
    return [rec for _, rec in fired[: config.max_recommendations]]
