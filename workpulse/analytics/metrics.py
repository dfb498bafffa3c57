"""
Metrics Aggregator

Period-level scalars and distributions computed from sessions plus the
focus analysis of those same sessions.

Definitions:
- active_time: sum of session durations, in session order
- switch_count: adjacent session pairs with differing category
- switches_per_hour: switches per hour of active time
- avg_session_duration: active_time / session_count (0.0 when empty)
- avg_time_in_context[c]: mean duration of sessions in category c
- focus_percentage: 100 * focus_time / active_time (0.0 when empty)
- peak_focus_bucket: time-of-day bucket holding the most focus time,
  earliest bucket on ties

Comparison deltas are filled only when the previous period has the same
length, ends exactly where this one starts, and was fully covered when it
was computed. Otherwise comparison stays None.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Sequence
from zoneinfo import ZoneInfo

from workpulse.analytics import EMPTY_RATIO
from workpulse.analytics.focus import FocusAnalysis
from workpulse.analytics.models import (
    AppUsage,
    BehavioralMetrics,
    FocusPeriod,
    MetricsComparison,
    TimeBucket,
    WorkSession,
)
from workpulse.config_models import MetricsConfig


@dataclass(frozen=True)
class SessionStats:
    active_time: float
    session_count: int
    switch_count: int
    avg_session_duration: float
    time_per_category: dict[str, float]
    avg_time_in_context: dict[str, float]
    app_usage: tuple[AppUsage, ...]


def count_switches(sessions: Sequence[WorkSession]) -> int:
    return sum(1 for a, b in zip(sessions, sessions[1:]) if a.category != b.category)


def rank_applications(sessions: Sequence[WorkSession], active_time: float) -> tuple[AppUsage, ...]:
    """Applications by total duration, descending; ties by app id."""
    durations: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    for session in sessions:
        durations[session.app_id] += session.duration
        counts[session.app_id] += 1

    ranked = sorted(durations, key=lambda app: (-durations[app], app))
    return tuple(
        AppUsage(
            app_id=app,
            duration=durations[app],
            share=100.0 * durations[app] / active_time if active_time > 0 else EMPTY_RATIO,
            session_count=counts[app],
        )
        for app in ranked
    )


def summarize_sessions(sessions: Sequence[WorkSession]) -> SessionStats:
    active_time = sum(s.duration for s in sessions)
    session_count = len(sessions)

    per_category: dict[str, float] = defaultdict(float)
    per_category_count: dict[str, int] = defaultdict(int)
    for session in sessions:
        per_category[session.category.value] += session.duration
        per_category_count[session.category.value] += 1

    return SessionStats(
        active_time=active_time,
        session_count=session_count,
        switch_count=count_switches(sessions),
        avg_session_duration=active_time / session_count if session_count else EMPTY_RATIO,
        time_per_category=dict(per_category),
        avg_time_in_context={c: per_category[c] / per_category_count[c] for c in per_category},
        app_usage=rank_applications(sessions, active_time),
    )


def _microseconds_into_day(moment: datetime) -> int:
    return ((moment.hour * 60 + moment.minute) * 60 + moment.second) * 1_000_000 + moment.microsecond


def peak_focus_bucket(
    focus_periods: Sequence[FocusPeriod],
    bucket_minutes: int = 60,
    tz: str = "UTC",
) -> TimeBucket | None:
    """
    Time-of-day bucket with the highest total focus duration.

    A period spanning a boundary is split by overlap, scaled so the bucket
    totals add up to the period's focus duration (interruptions excluded).
    Multi-day periods fold onto the same day-of-time buckets.
    """
    if not focus_periods:
        return None

    zone = ZoneInfo(tz)
    width = bucket_minutes * 60 * 1_000_000
    totals: dict[int, float] = defaultdict(float)

    for period in focus_periods:
        span = (period.end - period.start).total_seconds()
        if span <= 0:
            continue
        weight = period.duration / span

        cursor = period.start
        while cursor < period.end:
            local = cursor.astimezone(zone)
            into_day = _microseconds_into_day(local)
            index = into_day // width
            remaining = (index + 1) * width - into_day
            step_end = min(period.end, cursor + timedelta(microseconds=remaining))
            totals[index] += (step_end - cursor).total_seconds() * weight
            cursor = step_end

    if not totals:
        return None

    best_index = None
    best_total = -1.0
    for index in sorted(totals):
        if totals[index] > best_total:
            best_index, best_total = index, totals[index]

    return TimeBucket(start_minute=best_index * bucket_minutes, width_minutes=bucket_minutes, focus_seconds=best_total)


def compute_metrics(
    period_start: datetime,
    period_end: datetime,
    sessions: Sequence[WorkSession],
    focus: FocusAnalysis,
    config: MetricsConfig | None = None,
    now: datetime | None = None,
) -> BehavioralMetrics:
    """Build the BehavioralMetrics for one period (without comparison)."""
    config = config or MetricsConfig()
    now = now or datetime.now(timezone.utc)
    stats = summarize_sessions(sessions)

    focus_time = focus.focus_time
    active_hours = stats.active_time / 3600

    return BehavioralMetrics(
        period_start=period_start,
        period_end=period_end,
        active_time=stats.active_time,
        focus_time=focus_time,
        focus_percentage=100.0 * focus_time / stats.active_time if stats.active_time > 0 else EMPTY_RATIO,
        session_count=stats.session_count,
        switch_count=stats.switch_count,
        switches_per_hour=stats.switch_count / active_hours if active_hours > 0 else EMPTY_RATIO,
        avg_session_duration=stats.avg_session_duration,
        fragmentation_score=focus.fragmentation_score,
        focus_period_count=len(focus.focus_periods),
        longest_focus_seconds=max((p.duration for p in focus.focus_periods), default=0.0),
        time_per_category=stats.time_per_category,
        avg_time_in_context=stats.avg_time_in_context,
        top_apps=stats.app_usage[: config.top_apps_limit],
        peak_focus_bucket=peak_focus_bucket(focus.focus_periods, config.bucket_minutes, config.timezone),
        switch_pattern=focus.switch_pattern,
        fully_covered=now >= period_end,
    )


def compare_metrics(current: BehavioralMetrics, previous: BehavioralMetrics | None) -> MetricsComparison | None:
    """Deltas (current - previous), or None if previous isn't comparable."""
    if previous is None or not previous.fully_covered:
        return None
    if previous.period_end != current.period_start:
        return None
    if previous.period_seconds != current.period_seconds:
        return None

    return MetricsComparison(
        previous_start=previous.period_start,
        previous_end=previous.period_end,
        active_time_delta=current.active_time - previous.active_time,
        focus_time_delta=current.focus_time - previous.focus_time,
        focus_percentage_delta=current.focus_percentage - previous.focus_percentage,
        switches_per_hour_delta=current.switches_per_hour - previous.switches_per_hour,
        fragmentation_score_delta=current.fragmentation_score - previous.fragmentation_score,
        session_count_delta=current.session_count - previous.session_count,
    )


def with_comparison(current: BehavioralMetrics, previous: BehavioralMetrics | None) -> BehavioralMetrics:
    return replace(current, comparison=compare_metrics(current, previous))
