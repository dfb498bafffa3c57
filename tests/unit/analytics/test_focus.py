"""
Unit tests for the focus & switch analyzer.

Covers:
- Context switch detection between adjacent sessions
- Fragmentation score bounds and edge cases
- Most common switch pattern and its tie-break
- Focus periods: single sessions, interruptions, detours and splitting
"""

from datetime import timedelta

import pytest

from workpulse.analytics.focus import (
    analyze_focus,
    detect_focus_periods,
    detect_switches,
    fragmentation_score,
    most_common_pattern,
)
from workpulse.analytics.models import ContextCategory, ContextSwitch
from workpulse.config_models import FocusConfig

DEV = ContextCategory.DEVELOPMENT
COMM = ContextCategory.COMMUNICATION
WEB = ContextCategory.BROWSING

MINUTE = 60


def _chain(make_session, parts):
    """Contiguous sessions from (app, category, seconds) tuples."""
    sessions = []
    offset = 0
    for app, category, duration in parts:
        sessions.append(make_session(app, offset, duration, category))
        offset += duration
    return sessions


def _switch(base_time, seconds, from_category=DEV, to_category=COMM):
    return ContextSwitch(
        from_app="a",
        to_app="b",
        from_category=from_category,
        to_category=to_category,
        timestamp=base_time + timedelta(seconds=seconds),
    )


# ============================================================================
# Switches
# ============================================================================


class TestDetectSwitches:
    """Tests for detect_switches()."""

    def test_counts_category_changes_only(self, make_session):
        sessions = _chain(
            make_session,
            [("Code", DEV, 600), ("Terminal", DEV, 300), ("Slack", COMM, 120), ("Code", DEV, 600)],
        )

        switches = detect_switches(sessions)

        assert len(switches) == 2
        assert switches[0].from_app == "Terminal"
        assert switches[0].to_category == COMM
        assert switches[0].seconds_since_previous is None
        assert switches[1].seconds_since_previous == 120

    def test_no_sessions(self):
        assert detect_switches([]) == []

    def test_single_category(self, make_session):
        sessions = _chain(make_session, [("Code", DEV, 600), ("Vim", DEV, 600)])
        assert detect_switches(sessions) == []


class TestFragmentationScore:
    """Tests for fragmentation_score()."""

    def test_fewer_than_two_switches(self, base_time):
        assert fragmentation_score([]) == 0.0
        assert fragmentation_score([_switch(base_time, 0)]) == 0.0

    @pytest.mark.parametrize(
        "gap,expected",
        [
            (60, 100.0),
            (300, 100.0),
            (600, 50.0),
            (3000, 10.0),
        ],
    )
    def test_score_from_average_gap(self, base_time, gap, expected):
        switches = [_switch(base_time, i * gap) for i in range(4)]
        assert fragmentation_score(switches) == pytest.approx(expected)

    def test_simultaneous_switches_score_maximum(self, base_time):
        switches = [_switch(base_time, 0), _switch(base_time, 0)]
        assert fragmentation_score(switches) == 100.0

    def test_uses_seconds_since_previous_from_detection(self, make_session):
        sessions = _chain(
            make_session,
            [("Code", DEV, 600), ("Slack", COMM, 600), ("Code", DEV, 600), ("Slack", COMM, 600)],
        )
        # 3 switches, 600s apart
        assert fragmentation_score(detect_switches(sessions)) == pytest.approx(50.0)


class TestMostCommonPattern:
    """Tests for most_common_pattern()."""

    def test_none_without_switches(self):
        assert most_common_pattern([]) is None

    def test_highest_count_wins(self, base_time):
        switches = [
            _switch(base_time, 0, DEV, COMM),
            _switch(base_time, 60, COMM, DEV),
            _switch(base_time, 120, DEV, COMM),
        ]

        pattern = most_common_pattern(switches)

        assert (pattern.from_category, pattern.to_category) == (DEV, COMM)
        assert pattern.count == 2
        assert pattern.label == "development -> communication"

    def test_tie_goes_to_most_recent(self, base_time):
        switches = [
            _switch(base_time, 0, DEV, COMM),
            _switch(base_time, 60, COMM, DEV),
            _switch(base_time, 120, DEV, COMM),
            _switch(base_time, 180, COMM, DEV),
        ]

        pattern = most_common_pattern(switches)

        assert (pattern.from_category, pattern.to_category) == (COMM, DEV)
        assert pattern.last_seen == base_time + timedelta(seconds=180)


# ============================================================================
# Focus periods
# ============================================================================


class TestDetectFocusPeriods:
    """Tests for detect_focus_periods()."""

    def test_single_long_session_qualifies(self, make_session):
        periods = detect_focus_periods([make_session("Code", 0, 30 * MINUTE)])

        assert len(periods) == 1
        assert periods[0].duration == 30 * MINUTE
        assert periods[0].app_id == "Code"
        assert periods[0].interruptions == ()

    def test_short_session_does_not_qualify(self, make_session):
        assert detect_focus_periods([make_session("Code", 0, 20 * MINUTE)]) == []

    def test_exactly_min_focus_qualifies(self, make_session):
        assert len(detect_focus_periods([make_session("Code", 0, 25 * MINUTE)])) == 1

    def test_short_interruption_is_absorbed(self, make_session):
        sessions = _chain(
            make_session,
            [("Code", DEV, 20 * MINUTE), ("Slack", COMM, 60), ("Code", DEV, 15 * MINUTE)],
        )

        periods = detect_focus_periods(sessions)

        assert len(periods) == 1
        period = periods[0]
        assert period.duration == 35 * MINUTE
        assert period.session_count == 2
        assert period.internal_switches == 0
        assert len(period.interruptions) == 1
        assert period.interruptions[0].app_id == "Slack"
        assert period.interruptions[0].duration == 60

    def test_one_longer_detour_is_tolerated(self, make_session):
        sessions = _chain(
            make_session,
            [("Code", DEV, 20 * MINUTE), ("Chrome", WEB, 180), ("Code", DEV, 15 * MINUTE)],
        )

        periods = detect_focus_periods(sessions)

        assert len(periods) == 1
        assert periods[0].internal_switches == 1
        assert periods[0].interruptions == ()
        assert periods[0].duration == 35 * MINUTE

    def test_too_many_detours_split_the_run(self, make_session):
        sessions = _chain(
            make_session,
            [
                ("Code", DEV, 30 * MINUTE),
                ("Chrome", WEB, 180),
                ("Code", DEV, 10 * MINUTE),
                ("Chrome", WEB, 180),
                ("Code", DEV, 30 * MINUTE),
            ],
        )

        periods = detect_focus_periods(sessions)

        assert [p.duration for p in periods] == [30 * MINUTE, 30 * MINUTE]
        assert all(p.internal_switches == 0 for p in periods)

    def test_split_pieces_below_minimum_are_dropped(self, make_session):
        sessions = _chain(
            make_session,
            [
                ("Code", DEV, 20 * MINUTE),
                ("Chrome", WEB, 180),
                ("Code", DEV, 10 * MINUTE),
                ("Chrome", WEB, 180),
                ("Code", DEV, 20 * MINUTE),
            ],
        )
        assert detect_focus_periods(sessions) == []

    def test_detour_beyond_lookback_ends_run(self, make_session):
        sessions = _chain(
            make_session,
            [("Code", DEV, 20 * MINUTE), ("Slack", COMM, 6 * MINUTE), ("Code", DEV, 20 * MINUTE)],
        )
        assert detect_focus_periods(sessions) == []

    def test_gap_within_lookback_bridges_same_category(self, make_session):
        sessions = [make_session("Code", 0, 15 * MINUTE), make_session("Vim", 17 * MINUTE, 15 * MINUTE)]

        periods = detect_focus_periods(sessions)

        assert len(periods) == 1
        assert periods[0].duration == 30 * MINUTE
        assert periods[0].app_id in {"Code", "Vim"}

    def test_custom_minimum(self, make_session):
        config = FocusConfig(min_focus_seconds=10 * MINUTE)
        assert len(detect_focus_periods([make_session("Code", 0, 12 * MINUTE)], config)) == 1


class TestAnalyzeFocus:
    """Tests for analyze_focus() as a whole."""

    def test_focus_time_never_exceeds_active_time(self, make_session):
        sessions = _chain(
            make_session,
            [
                ("Code", DEV, 40 * MINUTE),
                ("Slack", COMM, 90),
                ("Code", DEV, 10 * MINUTE),
                ("Chrome", WEB, 20 * MINUTE),
                ("Figma", ContextCategory.DESIGN, 30 * MINUTE),
            ],
        )

        analysis = analyze_focus(sessions)

        assert analysis.focus_time <= sum(s.duration for s in sessions)
        assert analysis.interruption_count == 1
        assert len(analysis.switches) == 4
        assert analysis.switch_pattern is not None

    def test_empty(self):
        analysis = analyze_focus([])

        assert analysis.switches == ()
        assert analysis.focus_periods == ()
        assert analysis.fragmentation_score == 0.0
        assert analysis.switch_pattern is None
