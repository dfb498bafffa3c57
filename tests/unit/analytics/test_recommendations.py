"""
Unit tests for the recommendation engine.

Every suggestion must be traceable to the metric value that produced it,
and the engine never returns more than max_recommendations items.
"""

import pytest

from workpulse.analytics.models import BehavioralMetrics, Priority, TimeBucket
from workpulse.analytics.recommendations import RULES, format_duration, format_value, recommend
from workpulse.config_models import RecommendationsConfig


@pytest.fixture
def metrics_for(day_bounds):
    start, end = day_bounds

    def _make(**values) -> BehavioralMetrics:
        values.setdefault("active_time", 6 * 3600.0)
        return BehavioralMetrics(period_start=start, period_end=end, **values)

    return _make


class TestFormatting:
    def test_format_value(self):
        assert format_value(45) == "45.0"
        assert format_value(20.04) == "20.0"

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "0m"), (59, "1m"), (1500, "25m"), (3600, "1h 00m"), (7 * 3600 + 5 * 60, "7h 05m")],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestRecommend:
    """Tests for recommend()."""

    def test_high_switching_with_moderate_focus(self, metrics_for):
        recs = recommend(metrics_for(switches_per_hour=25, focus_percentage=45, fragmentation_score=40))

        assert len(recs) == 1
        assert recs[0].category == "reduce_switching"
        assert recs[0].priority == Priority.HIGH
        assert "25.0" in recs[0].action

    def test_good_focus_only(self, metrics_for):
        recs = recommend(metrics_for(switches_per_hour=5, focus_percentage=65, fragmentation_score=30))

        assert [r.category for r in recs] == ["maintain_focus"]
        assert recs[0].priority == Priority.LOW
        assert "65.0" in recs[0].action

    def test_nothing_fires(self, metrics_for):
        assert recommend(metrics_for(switches_per_hour=5, focus_percentage=40, fragmentation_score=10)) == []

    def test_thresholds_are_strict(self, metrics_for):
        recs = recommend(metrics_for(switches_per_hour=20, focus_percentage=30, fragmentation_score=70))
        assert recs == []

    def test_three_rules_fire_in_priority_order(self, metrics_for):
        recs = recommend(metrics_for(switches_per_hour=30, focus_percentage=10, fragmentation_score=90))

        assert [r.category for r in recs] == ["reduce_switching", "increase_focus", "reduce_fragmentation"]
        assert [r.priority for r in recs] == [Priority.HIGH, Priority.HIGH, Priority.MEDIUM]

    def test_truncated_to_highest_priority(self, metrics_for):
        config = RecommendationsConfig(max_recommendations=2)

        recs = recommend(metrics_for(switches_per_hour=30, focus_percentage=10, fragmentation_score=90), config)

        assert [r.category for r in recs] == ["reduce_switching", "increase_focus"]

    def test_medium_before_low(self, metrics_for):
        recs = recommend(metrics_for(switches_per_hour=10, focus_percentage=60, fragmentation_score=80))
        assert [r.category for r in recs] == ["reduce_fragmentation", "maintain_focus"]

    def test_increase_focus_names_peak_window(self, metrics_for):
        metrics = metrics_for(
            switches_per_hour=5,
            focus_percentage=12.5,
            peak_focus_bucket=TimeBucket(start_minute=10 * 60, width_minutes=60, focus_seconds=1800),
        )

        recs = recommend(metrics)

        assert recs[0].category == "increase_focus"
        assert "10:00-11:00" in recs[0].action
        assert "12.5" in recs[0].action

    def test_increase_focus_without_peak_window(self, metrics_for):
        recs = recommend(metrics_for(focus_percentage=0.0))

        assert recs[0].category == "increase_focus"
        assert "0.0" in recs[0].action

    @pytest.mark.parametrize("sph", [0, 15, 21.5, 40])
    @pytest.mark.parametrize("focus", [0, 29.9, 45, 80])
    @pytest.mark.parametrize("frag", [0, 71, 100])
    def test_bounded_and_grounded(self, metrics_for, sph, focus, frag):
        recs = recommend(metrics_for(switches_per_hour=sph, focus_percentage=focus, fragmentation_score=frag))

        assert len(recs) <= 3
        for rec in recs:
            assert format_value(rec.metric_value) in rec.action
            assert format_value(rec.metric_value) in rec.rationale

    def test_metric_value_matches_source_metric(self, metrics_for):
        metrics = metrics_for(switches_per_hour=31.25, focus_percentage=12.0, fragmentation_score=88.8)

        for rec in recommend(metrics):
            assert rec.metric_value == getattr(metrics, rec.metric)

    def test_rules_cover_every_metric_name(self):
        for rule in RULES:
            assert rule.metric in BehavioralMetrics.__dataclass_fields__

    def test_deterministic(self, metrics_for):
        metrics = metrics_for(switches_per_hour=25, focus_percentage=20, fragmentation_score=75)
        assert recommend(metrics) == recommend(metrics)
