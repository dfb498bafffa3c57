"""
Analytics Pipeline

Wires the stages together for one analysis period:

    normalize -> sessionize -> analyze_focus -> compute_metrics
              -> recommend -> assemble_insight -> (store.commit_run)

Everything up to the insight is synchronous and pure. The narrative call is
the only await. Nothing is persisted until the insight is assembled, and
the commit is a single transaction, so cancelling a period at any point
before the commit leaves no trace.

Backfill runs several periods concurrently. Each task works on its own
immutable snapshot of events, and tasks share no mutable state other than
the narrative circuit breaker.

Usage:
    from workpulse.analytics.pipeline import AnalyticsPipeline

    pipeline = AnalyticsPipeline(config, store=AnalyticsStore())
    result = await pipeline.run_period(source, start, end)
    results = await pipeline.backfill(source, end=today, periods=7)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Protocol, Sequence

import structlog

from workpulse.analytics.categories import CategoryMap
from workpulse.analytics.focus import FocusAnalysis, analyze_focus
from workpulse.analytics.insights import assemble_insight
from workpulse.analytics.metrics import compute_metrics, with_comparison
from workpulse.analytics.models import BehavioralMetrics, PeriodInsight, Recommendation, WorkSession, parse_timestamp
from workpulse.analytics.normalizer import NormalizationResult, RawRecord, normalize
from workpulse.analytics.recommendations import recommend
from workpulse.analytics.sessionizer import group_by_time_bucket, sessionize
from workpulse.config_models import AnalyticsConfig
from workpulse.logging_config import get_logger
from workpulse.narrative import CircuitBreaker, NarrativeGenerator, get_generator
from workpulse.storage.store import AnalyticsStore

logger = get_logger(__name__)


class EventSource(Protocol):
    """Time-range query over the capture service's observations."""

    async def fetch(self, start: datetime, end: datetime) -> Sequence[RawRecord]: ...


class InMemoryEventSource:
    """Event source over an in-memory list of raw records."""

    def __init__(self, records: Iterable[RawRecord]):
        self._records = list(records)

    async def fetch(self, start: datetime, end: datetime) -> Sequence[RawRecord]:
        selected = []
        start, end = parse_timestamp(start), parse_timestamp(end)
        for record in self._records:
            raw_ts = record.timestamp if hasattr(record, "timestamp") else record.get("timestamp")
            try:
                ts = parse_timestamp(raw_ts)
            except ValueError:
                continue
            if start <= ts < end:
                selected.append(record)
        return tuple(selected)


@dataclass(frozen=True)
class PipelineResult:
    period_start: datetime
    period_end: datetime
    normalization: NormalizationResult
    sessions: tuple[WorkSession, ...]
    focus: FocusAnalysis
    metrics: BehavioralMetrics
    recommendations: tuple[Recommendation, ...]
    insight: PeriodInsight
    used_fallback_grouping: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "normalization": self.normalization.to_dict(),
            "sessions": [s.to_dict() for s in self.sessions],
            "switches": [s.to_dict() for s in self.focus.switches],
            "focus_periods": [p.to_dict() for p in self.focus.focus_periods],
            "metrics": self.metrics.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "insight": self.insight.to_dict(),
            "used_fallback_grouping": self.used_fallback_grouping,
        }


@dataclass(frozen=True)
class _Computed:
    """Everything up to metrics, before comparison and narrative."""

    period_start: datetime
    period_end: datetime
    normalization: NormalizationResult
    sessions: tuple[WorkSession, ...]
    focus: FocusAnalysis
    metrics: BehavioralMetrics
    used_fallback_grouping: bool


class AnalyticsPipeline:
    """
    Runs the analytics stages for one period at a time.

    Args:
        config: Pipeline configuration (defaults if omitted)
        generator: Narrative generator (chosen from config.narrative if omitted)
        store: Where committed runs go; None means run-and-discard
        categories: Category lookup (built from config.categories if omitted)
        on_drop_alert: Called when a batch's malformed-record rate is too high
    """

    def __init__(
        self,
        config: AnalyticsConfig | None = None,
        generator: NarrativeGenerator | None = None,
        store: AnalyticsStore | None = None,
        categories: CategoryMap | None = None,
        on_drop_alert: Callable[[NormalizationResult], None] | None = None,
    ):
        self.config = config or AnalyticsConfig()
        self.generator = generator or get_generator(self.config.narrative)
        self.store = store
        self.categories = categories or CategoryMap.from_config(self.config.categories)
        self.on_drop_alert = on_drop_alert
        self.breaker = CircuitBreaker(
            failure_threshold=self.config.narrative.circuit_failure_threshold,
            recovery_timeout=self.config.narrative.circuit_recovery_seconds,
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _sessionize(self, observations: Sequence[Any]) -> tuple[list[WorkSession], bool]:
        try:
            return sessionize(observations, self.config.sessionizer, self.categories), False
        except Exception:
            logger.exception("sessionizer_fault", observations=len(observations))
            fallback = group_by_time_bucket(
                observations, self.config.sessionizer.fallback_bucket_minutes, self.categories
            )
            return fallback, True

    def compute(
        self,
        records: Iterable[RawRecord],
        period_start: datetime,
        period_end: datetime,
        now: datetime | None = None,
    ) -> _Computed:
        """Synchronous stages: normalize through metrics."""
        normalization = normalize(records, self.config.normalizer, self.on_drop_alert)
        sessions, used_fallback = self._sessionize(normalization.observations)
        focus = analyze_focus(sessions, self.config.focus)
        metrics = compute_metrics(period_start, period_end, sessions, focus, self.config.metrics, now=now)
        return _Computed(
            period_start=period_start,
            period_end=period_end,
            normalization=normalization,
            sessions=tuple(sessions),
            focus=focus,
            metrics=metrics,
            used_fallback_grouping=used_fallback,
        )

    async def _finish(
        self,
        computed: _Computed,
        previous: BehavioralMetrics | None,
        now: datetime | None = None,
    ) -> PipelineResult:
        metrics = with_comparison(computed.metrics, previous)
        recommendations = recommend(metrics, self.config.recommendations)
        insight = await assemble_insight(
            metrics,
            recommendations,
            generator=self.generator,
            config=self.config,
            breaker=self.breaker,
            drop_rate_alert=computed.normalization.alert,
            now=now,
        )
        return PipelineResult(
            period_start=computed.period_start,
            period_end=computed.period_end,
            normalization=computed.normalization,
            sessions=computed.sessions,
            focus=computed.focus,
            metrics=metrics,
            recommendations=tuple(recommendations),
            insight=insight,
            used_fallback_grouping=computed.used_fallback_grouping,
        )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def analyze_period(
        self,
        records: Iterable[RawRecord],
        period_start: datetime,
        period_end: datetime,
        previous: BehavioralMetrics | None = None,
        now: datetime | None = None,
    ) -> PipelineResult:
        """Run every stage for one period. Persists nothing."""
        period_start, period_end = _utc_bounds(period_start, period_end)
        now = parse_timestamp(now) if now is not None else None

        with structlog.contextvars.bound_contextvars(period_start=period_start.isoformat()):
            computed = self.compute(tuple(records), period_start, period_end, now=now)
            return await self._finish(computed, previous, now=now)

    def _previous_metrics(self, period_start: datetime, period_end: datetime) -> BehavioralMetrics | None:
        if self.store is None:
            return None
        length = period_end - period_start
        return self.store.get_metrics(period_start - length, period_start)

    async def _run_and_commit(self, computed: _Computed, previous: BehavioralMetrics | None) -> PipelineResult:
        with structlog.contextvars.bound_contextvars(period_start=computed.period_start.isoformat()):
            try:
                result = await self._finish(computed, previous)
            except asyncio.CancelledError:
                logger.info("period_cancelled")
                raise
            if self.store is not None:
                self.store.commit_run(result)
            return result

    async def run_period(self, source: EventSource, period_start: datetime, period_end: datetime) -> PipelineResult:
        """Fetch, analyze and commit one period."""
        period_start, period_end = _utc_bounds(period_start, period_end)

        snapshot = tuple(await source.fetch(period_start, period_end))
        computed = self.compute(snapshot, period_start, period_end)
        return await self._run_and_commit(computed, self._previous_metrics(period_start, period_end))

    async def backfill(
        self,
        source: EventSource,
        end: datetime,
        periods: int,
        period_length: timedelta = timedelta(days=1),
    ) -> list[PipelineResult]:
        """
        Analyze the `periods` consecutive periods ending at `end`, oldest first.

        Metrics for every period are computed first so each one can be
        compared with its predecessor; narratives and commits then run
        concurrently.
        """
        if periods < 1:
            return []
        end = parse_timestamp(end)

        bounds = [
            (end - period_length * (periods - i), end - period_length * (periods - i - 1))
            for i in range(periods)
        ]
        snapshots = await asyncio.gather(*(source.fetch(s, e) for s, e in bounds))
        computed = [self.compute(tuple(snap), s, e) for snap, (s, e) in zip(snapshots, bounds)]

        previous: list[BehavioralMetrics | None] = [self._previous_metrics(*bounds[0])]
        previous.extend(c.metrics for c in computed[:-1])

        logger.info("backfill_started", periods=periods, end=end.isoformat())
        return list(await asyncio.gather(*(self._run_and_commit(c, p) for c, p in zip(computed, previous))))


def _utc_bounds(period_start: datetime, period_end: datetime) -> tuple[datetime, datetime]:
    """Aware UTC bounds; naive datetimes are read as UTC like capture timestamps."""
    period_start, period_end = parse_timestamp(period_start), parse_timestamp(period_end)
    if period_end <= period_start:
        raise ValueError("period_end must be after period_start")
    return period_start, period_end


def day_bounds(day: datetime) -> tuple[datetime, datetime]:
    """UTC midnight-to-midnight bounds for the day containing `day`."""
    start = day.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)
