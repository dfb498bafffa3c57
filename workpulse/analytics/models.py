"""
Analytics Data Model

Immutable records passed between pipeline stages. Observations come in from
the capture service; everything else is derived fresh on every run and never
mutated after construction.

Design Principles:
- Frozen dataclasses: a stage can't modify upstream data
- Timestamps are timezone-aware UTC, durations are float seconds
- to_dict/from_dict round-trip through JSON for the store and the CLI
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any, Mapping


class ContextCategory(StrEnum):
    """Closed set of work contexts a session can belong to."""

    COMMUNICATION = "communication"
    DEVELOPMENT = "development"
    DOCUMENTATION = "documentation"
    BROWSING = "browsing"
    DESIGN = "design"
    OTHER = "other"


class Priority(StrEnum):
    """Recommendation priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class NarrativeSource(StrEnum):
    """Where an insight's narrative text came from."""

    GENERATED = "generated"
    TEMPLATE = "template"


class ObservationError(ValueError):
    """A raw activity record is missing a field or has an invalid value."""


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string, datetime, or epoch seconds into aware UTC."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, bool):
        raise ObservationError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        ts = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        try:
            ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ObservationError(f"Invalid timestamp: {value!r}") from e
    else:
        raise ObservationError(f"Invalid timestamp: {value!r}")

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# Input
# =============================================================================


@dataclass(frozen=True)
class ActivityObservation:
    """
    One raw activity record from the capture service.

    duration is the wall-clock span from this observation's start to the
    next observation's start (or an explicit end marker).
    """

    app_id: str
    window_title: str
    timestamp: datetime
    duration: float
    pid: int | None = None
    is_idle: bool = False

    @property
    def end(self) -> datetime:
        return self.timestamp + timedelta(seconds=self.duration)

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_id": self.app_id,
            "window_title": self.window_title,
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration,
            "pid": self.pid,
            "is_idle": self.is_idle,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ActivityObservation:
        """
        Build an observation from a raw capture record.

        Raises:
            ObservationError: required field missing or value invalid
        """
        if not isinstance(data, Mapping):
            raise ObservationError(f"Expected a mapping, got {type(data).__name__}")

        if data.get("timestamp") is None:
            raise ObservationError("Missing required field: timestamp")
        if data.get("duration") is None:
            raise ObservationError("Missing required field: duration")

        is_idle = bool(data.get("is_idle", False))
        app_id = data.get("app_id")
        if not is_idle and (not isinstance(app_id, str) or not app_id.strip()):
            raise ObservationError("Missing required field: app_id")

        try:
            duration = float(data["duration"])
        except (TypeError, ValueError) as e:
            raise ObservationError(f"Invalid duration: {data['duration']!r}") from e
        if duration < 0 or duration != duration:
            raise ObservationError(f"Negative or NaN duration: {duration}")

        pid = data.get("pid")
        if pid is not None:
            try:
                pid = int(pid)
            except (TypeError, ValueError) as e:
                raise ObservationError(f"Invalid pid: {pid!r}") from e

        return cls(
            app_id=(app_id or "").strip(),
            window_title=str(data.get("window_title") or ""),
            timestamp=parse_timestamp(data["timestamp"]),
            duration=duration,
            pid=pid,
            is_idle=is_idle,
        )


# =============================================================================
# Derived
# =============================================================================


@dataclass(frozen=True)
class WorkSession:
    """Merged run of observations sharing app, window and context category."""

    start: datetime
    end: datetime
    app_id: str
    window_title: str
    duration: float
    event_count: int
    category: ContextCategory = ContextCategory.OTHER

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "app_id": self.app_id,
            "window_title": self.window_title,
            "duration": self.duration,
            "event_count": self.event_count,
            "category": self.category.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkSession:
        return cls(
            start=parse_timestamp(data["start"]),
            end=parse_timestamp(data["end"]),
            app_id=data["app_id"],
            window_title=data.get("window_title", ""),
            duration=float(data["duration"]),
            event_count=int(data.get("event_count", 1)),
            category=ContextCategory(data.get("category", "other")),
        )


@dataclass(frozen=True)
class ContextSwitch:
    """Category change between two temporally adjacent sessions."""

    from_app: str
    to_app: str
    from_category: ContextCategory
    to_category: ContextCategory
    timestamp: datetime
    seconds_since_previous: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_app": self.from_app,
            "to_app": self.to_app,
            "from_category": self.from_category.value,
            "to_category": self.to_category.value,
            "timestamp": self.timestamp.isoformat(),
            "seconds_since_previous": self.seconds_since_previous,
        }


@dataclass(frozen=True)
class Interruption:
    """Short different-context session inside a focus period."""

    app_id: str
    category: ContextCategory
    started_at: datetime
    duration: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_id": self.app_id,
            "category": self.category.value,
            "started_at": self.started_at.isoformat(),
            "duration": self.duration,
        }


@dataclass(frozen=True)
class FocusPeriod:
    """A session, or run of same-context sessions, of sustained attention."""

    start: datetime
    end: datetime
    duration: float
    app_id: str
    category: ContextCategory
    session_count: int = 1
    interruptions: tuple[Interruption, ...] = ()
    internal_switches: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration": self.duration,
            "app_id": self.app_id,
            "category": self.category.value,
            "session_count": self.session_count,
            "interruptions": [i.to_dict() for i in self.interruptions],
            "internal_switches": self.internal_switches,
        }


@dataclass(frozen=True)
class AppUsage:
    app_id: str
    duration: float
    share: float  # percent of active time
    session_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_id": self.app_id,
            "duration": self.duration,
            "share": self.share,
            "session_count": self.session_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AppUsage:
        return cls(
            app_id=data["app_id"],
            duration=float(data["duration"]),
            share=float(data["share"]),
            session_count=int(data["session_count"]),
        )


@dataclass(frozen=True)
class TimeBucket:
    """Fixed-width slice of the day, measured in minutes from midnight."""

    start_minute: int
    width_minutes: int
    focus_seconds: float = 0.0

    @property
    def label(self) -> str:
        end = self.start_minute + self.width_minutes
        return (
            f"{self.start_minute // 60:02d}:{self.start_minute % 60:02d}-"
            f"{(end // 60) % 24:02d}:{end % 60:02d}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_minute": self.start_minute,
            "width_minutes": self.width_minutes,
            "focus_seconds": self.focus_seconds,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TimeBucket:
        return cls(
            start_minute=int(data["start_minute"]),
            width_minutes=int(data["width_minutes"]),
            focus_seconds=float(data.get("focus_seconds", 0.0)),
        )


@dataclass(frozen=True)
class SwitchPattern:
    """Most frequent (from, to) category transition in a period."""

    from_category: ContextCategory
    to_category: ContextCategory
    count: int
    last_seen: datetime

    @property
    def label(self) -> str:
        return f"{self.from_category.value} -> {self.to_category.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_category": self.from_category.value,
            "to_category": self.to_category.value,
            "count": self.count,
            "last_seen": self.last_seen.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SwitchPattern:
        return cls(
            from_category=ContextCategory(data["from_category"]),
            to_category=ContextCategory(data["to_category"]),
            count=int(data["count"]),
            last_seen=parse_timestamp(data["last_seen"]),
        )


@dataclass(frozen=True)
class MetricsComparison:
    """Deltas against the immediately preceding period of equal length."""

    previous_start: datetime
    previous_end: datetime
    active_time_delta: float
    focus_time_delta: float
    focus_percentage_delta: float
    switches_per_hour_delta: float
    fragmentation_score_delta: float
    session_count_delta: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous_start": self.previous_start.isoformat(),
            "previous_end": self.previous_end.isoformat(),
            "active_time_delta": self.active_time_delta,
            "focus_time_delta": self.focus_time_delta,
            "focus_percentage_delta": self.focus_percentage_delta,
            "switches_per_hour_delta": self.switches_per_hour_delta,
            "fragmentation_score_delta": self.fragmentation_score_delta,
            "session_count_delta": self.session_count_delta,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MetricsComparison:
        return cls(
            previous_start=parse_timestamp(data["previous_start"]),
            previous_end=parse_timestamp(data["previous_end"]),
            active_time_delta=float(data["active_time_delta"]),
            focus_time_delta=float(data["focus_time_delta"]),
            focus_percentage_delta=float(data["focus_percentage_delta"]),
            switches_per_hour_delta=float(data["switches_per_hour_delta"]),
            fragmentation_score_delta=float(data["fragmentation_score_delta"]),
            session_count_delta=int(data["session_count_delta"]),
        )


@dataclass(frozen=True)
class BehavioralMetrics:
    """
    Aggregate behavior for one analyzed period.

    focus_percentage is 0.0 when active_time is 0 (no division). comparison
    is None when no equal-length, fully covered prior period exists; that is
    distinct from a comparison whose deltas are all zero.
    """

    period_start: datetime
    period_end: datetime
    active_time: float = 0.0
    focus_time: float = 0.0
    focus_percentage: float = 0.0
    session_count: int = 0
    switch_count: int = 0
    switches_per_hour: float = 0.0
    avg_session_duration: float = 0.0
    fragmentation_score: float = 0.0
    focus_period_count: int = 0
    longest_focus_seconds: float = 0.0
    time_per_category: dict[str, float] = field(default_factory=dict)
    avg_time_in_context: dict[str, float] = field(default_factory=dict)
    top_apps: tuple[AppUsage, ...] = ()
    peak_focus_bucket: TimeBucket | None = None
    switch_pattern: SwitchPattern | None = None
    fully_covered: bool = False
    comparison: MetricsComparison | None = None

    @property
    def period_seconds(self) -> float:
        return (self.period_end - self.period_start).total_seconds()

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
            "avg_session_duration": self.avg_session_duration,
            "fragmentation_score": self.fragmentation_score,
            "focus_period_count": self.focus_period_count,
            "longest_focus_seconds": self.longest_focus_seconds,
            "time_per_category": dict(self.time_per_category),
            "avg_time_in_context": dict(self.avg_time_in_context),
            "top_apps": [a.to_dict() for a in self.top_apps],
            "peak_focus_bucket": self.peak_focus_bucket.to_dict() if self.peak_focus_bucket else None,
            "switch_pattern": self.switch_pattern.to_dict() if self.switch_pattern else None,
            "fully_covered": self.fully_covered,
            "comparison": self.comparison.to_dict() if self.comparison else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BehavioralMetrics:
        peak = data.get("peak_focus_bucket")
        pattern = data.get("switch_pattern")
        comparison = data.get("comparison")
        return cls(
            period_start=parse_timestamp(data["period_start"]),
            period_end=parse_timestamp(data["period_end"]),
            active_time=float(data.get("active_time", 0.0)),
            focus_time=float(data.get("focus_time", 0.0)),
            focus_percentage=float(data.get("focus_percentage", 0.0)),
            session_count=int(data.get("session_count", 0)),
            switch_count=int(data.get("switch_count", 0)),
            switches_per_hour=float(data.get("switches_per_hour", 0.0)),
            avg_session_duration=float(data.get("avg_session_duration", 0.0)),
            fragmentation_score=float(data.get("fragmentation_score", 0.0)),
            focus_period_count=int(data.get("focus_period_count", 0)),
            longest_focus_seconds=float(data.get("longest_focus_seconds", 0.0)),
            time_per_category=dict(data.get("time_per_category") or {}),
            avg_time_in_context=dict(data.get("avg_time_in_context") or {}),
            top_apps=tuple(AppUsage.from_dict(a) for a in data.get("top_apps") or []),
            peak_focus_bucket=TimeBucket.from_dict(peak) if peak else None,
            switch_pattern=SwitchPattern.from_dict(pattern) if pattern else None,
            fully_covered=bool(data.get("fully_covered", False)),
            comparison=MetricsComparison.from_dict(comparison) if comparison else None,
        )


@dataclass(frozen=True)
class Recommendation:
    """
    One suggestion, always traceable to the metric value that triggered it.

    rationale and action both embed metric_value as formatted text.
    """

    category: str
    priority: Priority
    rationale: str
    action: str
    metric: str
    metric_value: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "priority": self.priority.value,
            "rationale": self.rationale,
            "action": self.action,
            "metric": self.metric,
            "metric_value": self.metric_value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Recommendation:
        return cls(
            category=data["category"],
            priority=Priority(data["priority"]),
            rationale=data["rationale"],
            action=data["action"],
            metric=data["metric"],
            metric_value=float(data["metric_value"]),
        )


@dataclass(frozen=True)
class PeriodInsight:
    """Final summary record for one analyzed period."""

    period_start: datetime
    period_end: datetime
    generated_at: datetime
    metrics: BehavioralMetrics
    recommendations: tuple[Recommendation, ...]
    narrative: str
    narrative_source: NarrativeSource
    low_confidence: bool = False
    drop_rate_alert: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "generated_at": _iso(self.generated_at),
            "metrics": self.metrics.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "narrative": self.narrative,
            "narrative_source": self.narrative_source.value,
            "low_confidence": self.low_confidence,
            "drop_rate_alert": self.drop_rate_alert,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PeriodInsight:
        return cls(
            period_start=parse_timestamp(data["period_start"]),
            period_end=parse_timestamp(data["period_end"]),
            generated_at=parse_timestamp(data["generated_at"]),
            metrics=BehavioralMetrics.from_dict(data["metrics"]),
            recommendations=tuple(Recommendation.from_dict(r) for r in data.get("recommendations") or []),
            narrative=data.get("narrative", ""),
            narrative_source=NarrativeSource(data.get("narrative_source", "template")),
            low_confidence=bool(data.get("low_confidence", False)),
            drop_rate_alert=bool(data.get("drop_rate_alert", False)),
        )
