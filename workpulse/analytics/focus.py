"""
Focus & Switch Analyzer

Derives context switches and focus periods from an ordered session list.

Context switch:
    Adjacent sessions whose categories differ. Strictly sequential, no
    lookahead.

Focus period:
    A run of same-category sessions. The run continues while the category
    resumes within lookback_seconds of the run's last activity, even if
    other-category sessions sit in between (a "detour"):

    - Detour sessions no longer than interruption_max_seconds are recorded
      as interruptions of the run and don't count against it.
    - Longer detour sessions count as internal switches.

    A run qualifies when its focused duration (same-category sessions only)
    is at least min_focus_seconds and it has fewer than
    max_internal_switches internal switches. A run with too many internal
    switches is split at those detours and each piece is judged on its own,
    so a single long session always qualifies.

Fragmentation score:
    avg_gap = mean seconds between consecutive switches
    score = min(100, constant / avg_gap * 100); 0 with fewer than two
    switches; 100 when every switch lands at the same instant.

Usage:
    from workpulse.analytics.focus import analyze_focus

    analysis = analyze_focus(sessions, config.focus)
    analysis.focus_periods, analysis.switches, analysis.fragmentation_score
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from statistics import fmean
from typing import Sequence

from workpulse.analytics.models import (
    ContextCategory,
    ContextSwitch,
    FocusPeriod,
    Interruption,
    SwitchPattern,
    WorkSession,
)
from workpulse.config_models import FocusConfig


@dataclass(frozen=True)
class FocusAnalysis:
    switches: tuple[ContextSwitch, ...] = ()
    focus_periods: tuple[FocusPeriod, ...] = ()
    fragmentation_score: float = 0.0
    switch_pattern: SwitchPattern | None = None

    @property
    def focus_time(self) -> float:
        return sum(p.duration for p in self.focus_periods)

    @property
    def interruption_count(self) -> int:
        return sum(len(p.interruptions) for p in self.focus_periods)


# =============================================================================
# Switches
# =============================================================================


def detect_switches(sessions: Sequence[WorkSession]) -> list[ContextSwitch]:
    """One switch per adjacent session pair with differing categories."""
    switches: list[ContextSwitch] = []
    previous_at: datetime | None = None

    for before, after in zip(sessions, sessions[1:]):
        if before.category == after.category:
            continue
        at = after.start
        switches.append(
            ContextSwitch(
                from_app=before.app_id,
                to_app=after.app_id,
                from_category=before.category,
                to_category=after.category,
                timestamp=at,
                seconds_since_previous=(at - previous_at).total_seconds() if previous_at else None,
            )
        )
        previous_at = at

    return switches


def fragmentation_score(switches: Sequence[ContextSwitch], constant_seconds: float = 300.0) -> float:
    """Switch density on a 0-100 scale. Needs two switches to define a gap."""
    if len(switches) < 2:
        return 0.0

    gaps = [
        s.seconds_since_previous if s.seconds_since_previous is not None
        else (s.timestamp - prev.timestamp).total_seconds()
        for prev, s in zip(switches, switches[1:])
    ]
    avg_gap = fmean(gaps)
    if avg_gap <= 0:
        return 100.0
    return max(0.0, min(100.0, constant_seconds / avg_gap * 100.0))


def most_common_pattern(switches: Sequence[ContextSwitch]) -> SwitchPattern | None:
    """Most frequent (from, to) pair; ties go to the most recently seen pair."""
    if not switches:
        return None

    counts: Counter[tuple[ContextCategory, ContextCategory]] = Counter()
    last_seen: dict[tuple[ContextCategory, ContextCategory], datetime] = {}
    for switch in switches:
        key = (switch.from_category, switch.to_category)
        counts[key] += 1
        if key not in last_seen or switch.timestamp >= last_seen[key]:
            last_seen[key] = switch.timestamp

    (from_category, to_category), count = max(
        counts.items(), key=lambda item: (item[1], last_seen[item[0]])
    )
    return SwitchPattern(
        from_category=from_category,
        to_category=to_category,
        count=count,
        last_seen=last_seen[(from_category, to_category)],
    )


# =============================================================================
# Focus periods
# =============================================================================


@dataclass
class _Run:
    category: ContextCategory
    members: list[WorkSession]
    # detours[i] sits between members[i] and members[i + 1]
    detours: list[list[WorkSession]] = field(default_factory=list)

    @property
    def last_end(self) -> datetime:
        return self.members[-1].end


def _build_runs(sessions: Sequence[WorkSession], lookback_seconds: float) -> list[_Run]:
    runs: list[_Run] = []
    n = len(sessions)
    i = 0

    while i < n:
        run = _Run(category=sessions[i].category, members=[sessions[i]])
        j = i + 1

        while j < n:
            following = sessions[j]
            if following.category == run.category:
                if (following.start - run.last_end).total_seconds() > lookback_seconds:
                    break
                run.detours.append([])
                run.members.append(following)
                j += 1
                continue

            k = j
            while k < n and sessions[k].category != run.category:
                k += 1
            if k == n or (sessions[k].start - run.last_end).total_seconds() > lookback_seconds:
                break

            run.detours.append(list(sessions[j:k]))
            run.members.append(sessions[k])
            j = k + 1

        runs.append(run)
        i = j

    return runs


def _dominant_app(members: Sequence[WorkSession]) -> str:
    totals: dict[str, float] = {}
    for member in members:
        totals[member.app_id] = totals.get(member.app_id, 0.0) + member.duration
    # max() keeps the first app seen on ties
    return max(totals, key=lambda app: totals[app])


def _to_period(
    category: ContextCategory,
    members: Sequence[WorkSession],
    detours: Sequence[Sequence[WorkSession]],
    interruption_max_seconds: float,
) -> FocusPeriod:
    interruptions: list[Interruption] = []
    internal = 0
    for detour in detours:
        for session in detour:
            if session.duration <= interruption_max_seconds:
                interruptions.append(
                    Interruption(
                        app_id=session.app_id,
                        category=session.category,
                        started_at=session.start,
                        duration=session.duration,
                    )
                )
            else:
                internal += 1

    return FocusPeriod(
        start=members[0].start,
        end=members[-1].end,
        duration=sum(m.duration for m in members),
        app_id=_dominant_app(members),
        category=category,
        session_count=len(members),
        interruptions=tuple(interruptions),
        internal_switches=internal,
    )


def _split_run(run: _Run, interruption_max_seconds: float) -> list[tuple[list[WorkSession], list[list[WorkSession]]]]:
    """Split a run at every detour that holds a counted switch."""
    pieces: list[tuple[list[WorkSession], list[list[WorkSession]]]] = []
    members = [run.members[0]]
    detours: list[list[WorkSession]] = []

    for detour, member in zip(run.detours, run.members[1:]):
        if any(s.duration > interruption_max_seconds for s in detour):
            pieces.append((members, detours))
            members, detours = [member], []
        else:
            detours.append(detour)
            members.append(member)

    pieces.append((members, detours))
    return pieces


def detect_focus_periods(sessions: Sequence[WorkSession], config: FocusConfig | None = None) -> list[FocusPeriod]:
    """Focus periods in chronological order."""
    config = config or FocusConfig()
    periods: list[FocusPeriod] = []

    for run in _build_runs(sessions, config.lookback_seconds):
        candidate = _to_period(run.category, run.members, run.detours, config.interruption_max_seconds)
        if candidate.internal_switches < config.max_internal_switches:
            candidates = [candidate]
        else:
            candidates = [
                _to_period(run.category, members, detours, config.interruption_max_seconds)
                for members, detours in _split_run(run, config.interruption_max_seconds)
            ]

        periods.extend(c for c in candidates if c.duration >= config.min_focus_seconds)

    return periods


def analyze_focus(sessions: Sequence[WorkSession], config: FocusConfig | None = None) -> FocusAnalysis:
    """Run switch detection, focus detection and scoring over one period."""
    config = config or FocusConfig()
    switches = detect_switches(sessions)
    return FocusAnalysis(
        switches=tuple(switches),
        focus_periods=tuple(detect_focus_periods(sessions, config)),
        fragmentation_score=fragmentation_score(switches, config.fragmentation_constant_seconds),
        switch_pattern=most_common_pattern(switches),
    )
