"""
Unit tests for the metrics aggregator.

Covers:
- Sums, averages and ratios over sessions (including the empty period)
- Application ranking
- Peak focus bucket (boundary splitting, ties, timezone)
- Period-over-period comparison rules
"""

from datetime import timedelta

import pytest

from workpulse.analytics.focus import FocusAnalysis, analyze_focus
from workpulse.analytics.metrics import (
    compare_metrics,
    compute_metrics,
    count_switches,
    peak_focus_bucket,
    rank_applications,
    with_comparison,
)
from workpulse.analytics.models import BehavioralMetrics, ContextCategory, FocusPeriod
from workpulse.config_models import MetricsConfig

DEV = ContextCategory.DEVELOPMENT
COMM = ContextCategory.COMMUNICATION


def _period(base_time, start_minutes, length_minutes):
    start = base_time.replace(hour=0) + timedelta(minutes=start_minutes)
    end = start + timedelta(minutes=length_minutes)
    return FocusPeriod(
        start=start,
        end=end,
        duration=length_minutes * 60.0,
        app_id="Code",
        category=DEV,
    )


# ============================================================================
# Session aggregates
# ============================================================================


class TestComputeMetrics:
    """Tests for compute_metrics()."""

    def test_empty_period(self, day_bounds):
        start, end = day_bounds

        metrics = compute_metrics(start, end, [], FocusAnalysis(), now=end)

        assert metrics.active_time == 0.0
        assert metrics.session_count == 0
        assert metrics.avg_session_duration == 0.0
        assert metrics.focus_percentage == 0.0
        assert metrics.switches_per_hour == 0.0
        assert metrics.peak_focus_bucket is None
        assert metrics.switch_pattern is None
        assert metrics.comparison is None
        assert metrics.top_apps == ()

    def test_active_time_is_exact_sum(self, make_session, day_bounds):
        sessions = [
            make_session("Code", 0, 0.1 + 10),
            make_session("Code", 100, 0.2 + 10),
            make_session("Code", 200, 0.3 + 10),
        ]
        start, end = day_bounds

        metrics = compute_metrics(start, end, sessions, analyze_focus(sessions), now=end)

        assert metrics.active_time == sum(s.duration for s in sessions)
        assert metrics.avg_session_duration == pytest.approx(metrics.active_time / 3)

    def test_switch_rate_and_category_breakdown(self, make_session, day_bounds):
        sessions = [
            make_session("Code", 0, 1800, DEV),
            make_session("Slack", 1800, 600, COMM),
            make_session("Code", 2400, 1200, DEV),
        ]
        start, end = day_bounds

        metrics = compute_metrics(start, end, sessions, analyze_focus(sessions), now=end)

        assert metrics.switch_count == 2
        # 2 switches over 1 active hour
        assert metrics.switches_per_hour == pytest.approx(2.0)
        assert metrics.time_per_category == {"development": 3000, "communication": 600}
        assert metrics.avg_time_in_context == {"development": 1500, "communication": 600}

    def test_focus_percentage(self, make_session, day_bounds):
        sessions = [make_session("Code", 0, 1800, DEV), make_session("Slack", 1800, 1800, COMM)]
        start, end = day_bounds

        metrics = compute_metrics(start, end, sessions, analyze_focus(sessions), now=end)

        assert metrics.focus_time == 3600
        assert metrics.focus_percentage == pytest.approx(100.0)
        assert metrics.focus_period_count == 2
        assert metrics.longest_focus_seconds == 1800

    def test_fully_covered_depends_on_now(self, day_bounds):
        start, end = day_bounds

        assert compute_metrics(start, end, [], FocusAnalysis(), now=end).fully_covered is True
        assert compute_metrics(start, end, [], FocusAnalysis(), now=end - timedelta(hours=1)).fully_covered is False

    def test_top_apps_limited(self, make_session, day_bounds):
        sessions = [make_session(f"app{i}", i * 100, 50 + i, ContextCategory.OTHER) for i in range(8)]
        start, end = day_bounds

        metrics = compute_metrics(start, end, sessions, FocusAnalysis(), MetricsConfig(top_apps_limit=3), now=end)

        assert [a.app_id for a in metrics.top_apps] == ["app7", "app6", "app5"]


class TestHelpers:
    def test_count_switches_is_order_sensitive(self, make_session):
        a = make_session("Code", 0, 60, DEV)
        b = make_session("Vim", 60, 60, DEV)
        c = make_session("Slack", 120, 60, COMM)

        assert count_switches([a, b, c]) == 1
        assert count_switches([a, c, b]) == 2

    def test_rank_applications_ties_by_name(self, make_session):
        sessions = [make_session("zed", 0, 60), make_session("code", 60, 60), make_session("vim", 120, 30)]

        ranked = rank_applications(sessions, 150)

        assert [a.app_id for a in ranked] == ["code", "zed", "vim"]
        assert ranked[0].share == pytest.approx(40.0)


# ============================================================================
# Peak focus bucket
# ============================================================================


class TestPeakFocusBucket:
    """Tests for peak_focus_bucket()."""

    def test_none_without_focus(self):
        assert peak_focus_bucket([]) is None

    def test_bucket_with_most_focus_wins(self, base_time):
        periods = [_period(base_time, 9 * 60, 40), _period(base_time, 14 * 60, 50)]

        bucket = peak_focus_bucket(periods)

        assert bucket.label == "14:00-15:00"
        assert bucket.focus_seconds == pytest.approx(50 * 60)

    def test_tie_goes_to_earliest_bucket(self, base_time):
        periods = [_period(base_time, 14 * 60, 30), _period(base_time, 9 * 60, 30)]
        assert peak_focus_bucket(periods).label == "09:00-10:00"

    def test_period_split_across_boundary(self, base_time):
        # 09:40-10:30: 20 minutes in the 09:00 bucket, 30 in the 10:00 bucket
        bucket = peak_focus_bucket([_period(base_time, 9 * 60 + 40, 50)])

        assert bucket.label == "10:00-11:00"
        assert bucket.focus_seconds == pytest.approx(30 * 60)

    def test_narrow_buckets(self, base_time):
        bucket = peak_focus_bucket([_period(base_time, 9 * 60 + 40, 50)], bucket_minutes=30)
        assert bucket.label == "10:00-10:30"
        assert bucket.focus_seconds == pytest.approx(30 * 60)

    def test_local_timezone(self, base_time):
        # 14:00 UTC is 10:00 in New York during daylight saving time
        bucket = peak_focus_bucket([_period(base_time, 14 * 60, 50)], tz="America/New_York")
        assert bucket.label == "10:00-11:00"

    def test_interruptions_excluded_from_weight(self, base_time):
        period = _period(base_time, 9 * 60, 60)
        shortened = FocusPeriod(
            start=period.start,
            end=period.end,
            duration=45 * 60,
            app_id="Code",
            category=DEV,
        )
        assert peak_focus_bucket([shortened]).focus_seconds == pytest.approx(45 * 60)


# ============================================================================
# Comparison
# ============================================================================


class TestCompareMetrics:
    """Tests for compare_metrics() and with_comparison()."""

    @pytest.fixture
    def today(self, day_bounds):
        start, end = day_bounds
        return BehavioralMetrics(
            period_start=start,
            period_end=end,
            active_time=7200,
            focus_time=3600,
            focus_percentage=50.0,
            session_count=10,
            switches_per_hour=6.0,
        )

    @pytest.fixture
    def yesterday(self, day_bounds):
        start, _ = day_bounds
        return BehavioralMetrics(
            period_start=start - timedelta(days=1),
            period_end=start,
            active_time=5400,
            focus_time=1800,
            focus_percentage=33.3,
            session_count=12,
            switches_per_hour=8.0,
            fully_covered=True,
        )

    def test_deltas(self, today, yesterday):
        comparison = compare_metrics(today, yesterday)

        assert comparison.active_time_delta == 1800
        assert comparison.focus_time_delta == 1800
        assert comparison.focus_percentage_delta == pytest.approx(16.7)
        assert comparison.switches_per_hour_delta == pytest.approx(-2.0)
        assert comparison.session_count_delta == -2
        assert comparison.previous_end == today.period_start

    def test_no_previous(self, today):
        assert compare_metrics(today, None) is None

    def test_previous_not_fully_covered(self, today, yesterday):
        from dataclasses import replace

        assert compare_metrics(today, replace(yesterday, fully_covered=False)) is None

    def test_previous_different_length(self, today, yesterday):
        from dataclasses import replace

        shorter = replace(yesterday, period_start=yesterday.period_start + timedelta(hours=1))
        assert compare_metrics(today, shorter) is None

    def test_previous_not_adjacent(self, today, yesterday):
        from dataclasses import replace

        earlier = replace(
            yesterday,
            period_start=yesterday.period_start - timedelta(days=1),
            period_end=yesterday.period_end - timedelta(days=1),
        )
        assert compare_metrics(today, earlier) is None

    def test_identical_periods_give_zero_deltas_not_none(self, today, yesterday):
        from dataclasses import replace

        same = replace(
            today,
            period_start=yesterday.period_start,
            period_end=yesterday.period_end,
            fully_covered=True,
        )

        comparison = compare_metrics(today, same)

        assert comparison is not None
        assert comparison.active_time_delta == 0

    def test_with_comparison_returns_new_metrics(self, today, yesterday):
        compared = with_comparison(today, yesterday)

        assert compared.comparison is not None
        assert today.comparison is None
