"""
Narrative Generator Base Classes

Capability interface for turning period metrics into a short narrative.
Two implementations exist: a remote text-completion call and a
deterministic template. Which one runs is chosen by configuration
(narrative.provider), never by code paths.

Design Principles:
- The context object carries only the fields the metrics stage computes
- Providers return raw text; the insight assembler validates it
- Async-first so a slow provider never blocks other period runs
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from workpulse.analytics.models import BehavioralMetrics
from workpulse.analytics.recommendations import format_duration, format_value
from workpulse.config_models import NarrativeConfig


class NarrativeError(Exception):
    """Narrative provider failed to produce text."""


class NarrativeValidationError(NarrativeError):
    """Provider returned something that isn't usable narrative text."""


@dataclass(frozen=True)
class NarrativeContext:
    """Structured input for narrative generation."""

    period_start: datetime
    period_end: datetime
    active_time: str
    active_seconds: float
    focus_time: str
    focus_percentage: str
    session_count: int
    switch_count: int
    switches_per_hour: str
    fragmentation_score: str
    top_apps: list[dict[str, Any]] = field(default_factory=list)
    peak_bucket: str | None = None
    comparison: dict[str, Any] | None = None

    @classmethod
    def from_metrics(cls, metrics: BehavioralMetrics) -> NarrativeContext:
        return cls(
            period_start=metrics.period_start,
            period_end=metrics.period_end,
            active_time=format_duration(metrics.active_time),
            active_seconds=metrics.active_time,
            focus_time=format_duration(metrics.focus_time),
            focus_percentage=format_value(metrics.focus_percentage),
            session_count=metrics.session_count,
            switch_count=metrics.switch_count,
            switches_per_hour=format_value(metrics.switches_per_hour),
            fragmentation_score=format_value(metrics.fragmentation_score),
            top_apps=[
                {"app": a.app_id, "time": format_duration(a.duration), "share": format_value(a.share)}
                for a in metrics.top_apps
            ],
            peak_bucket=metrics.peak_focus_bucket.label if metrics.peak_focus_bucket else None,
            comparison=(
                {
                    "active_time_delta": format_duration(metrics.comparison.active_time_delta)
                    if metrics.comparison.active_time_delta >= 0
                    else "-" + format_duration(-metrics.comparison.active_time_delta),
                    "focus_percentage_delta": format_value(metrics.comparison.focus_percentage_delta),
                    "switches_per_hour_delta": format_value(metrics.comparison.switches_per_hour_delta),
                    "fragmentation_score_delta": format_value(metrics.comparison.fragmentation_score_delta),
                    "session_count_delta": metrics.comparison.session_count_delta,
                }
                if metrics.comparison
                else None
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "active_time": self.active_time,
            "focus_time": self.focus_time,
            "focus_percentage": self.focus_percentage,
            "session_count": self.session_count,
            "switch_count": self.switch_count,
            "switches_per_hour": self.switches_per_hour,
            "fragmentation_score": self.fragmentation_score,
            "top_apps": self.top_apps,
            "peak_bucket": self.peak_bucket,
            "comparison": self.comparison,
        }


def validate_narrative(text: Any, max_chars: int) -> str:
    """
    Structural check on provider output.

    Raises:
        NarrativeValidationError: not a string, empty, or too long
    """
    if not isinstance(text, str):
        raise NarrativeValidationError(f"Expected text, got {type(text).__name__}")
    stripped = text.strip()
    if not stripped:
        raise NarrativeValidationError("Empty narrative")
    if len(stripped) > max_chars:
        raise NarrativeValidationError(f"Narrative too long ({len(stripped)} > {max_chars} chars)")
    return stripped


class NarrativeGenerator(ABC):
    """A source of narrative text for a period summary."""

    name: str = "base"
    remote: bool = False

    @abstractmethod
    async def generate(self, context: NarrativeContext, config: NarrativeConfig) -> str:
        """
        Produce narrative text for one period.

        Raises:
            NarrativeError: provider could not produce text
        """
