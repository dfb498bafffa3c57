"""
Sessionizer

Single-pass state machine that merges a chronological observation sequence
into work sessions. The accumulator is either NO_SESSION or IN_SESSION.

Rules, evaluated per observation in order:
    1. Idle longer than idle_threshold: close and emit the open session,
       go to NO_SESSION, start nothing from this observation.
    2. Shorter than noise_threshold: discard. Noise doesn't extend the open
       session, so it doesn't reset the merge gap either.
    3. NO_SESSION: start a session from this observation.
    4. Same app, same window, same category, and the gap since the open
       session's end is under merge_threshold: extend the open session.
    5. Otherwise: close and emit the open session, start a new one.
At end of input the open session, if any, is emitted.

Idle observations that don't exceed the idle threshold are discarded like
noise: they never start or extend a session.

Output depends only on input order and the three thresholds.

Usage:
    from workpulse.analytics.sessionizer import sessionize

    sessions = sessionize(observations, config.sessionizer, categories)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Iterable

from workpulse.analytics.categories import CategoryMap
from workpulse.analytics.models import ActivityObservation, ContextCategory, WorkSession
from workpulse.config_models import SessionizerConfig


class SessionState(StrEnum):
    NO_SESSION = "no_session"
    IN_SESSION = "in_session"


@dataclass
class _OpenSession:
    start: datetime
    end: datetime
    app_id: str
    window_title: str
    duration: float
    event_count: int
    category: ContextCategory

    @classmethod
    def begin(cls, observation: ActivityObservation, category: ContextCategory) -> _OpenSession:
        return cls(
            start=observation.timestamp,
            end=observation.end,
            app_id=observation.app_id,
            window_title=observation.window_title,
            duration=observation.duration,
            event_count=1,
            category=category,
        )

    def absorb(self, observation: ActivityObservation) -> None:
        self.end = max(self.end, observation.end)
        self.duration += observation.duration
        self.event_count += 1

    def close(self) -> WorkSession:
        return WorkSession(
            start=self.start,
            end=self.end,
            app_id=self.app_id,
            window_title=self.window_title,
            duration=self.duration,
            event_count=self.event_count,
            category=self.category,
        )


class Sessionizer:
    """Incremental sessionizer. feed() observations in order, then finish()."""

    def __init__(self, config: SessionizerConfig | None = None, categories: CategoryMap | None = None):
        self.config = config or SessionizerConfig()
        self.categories = categories or CategoryMap.from_config()
        self._current: _OpenSession | None = None

    @property
    def state(self) -> SessionState:
        return SessionState.NO_SESSION if self._current is None else SessionState.IN_SESSION

    def _emit(self) -> WorkSession | None:
        current, self._current = self._current, None
        return current.close() if current is not None else None

    def _can_merge(self, observation: ActivityObservation, category: ContextCategory) -> bool:
        current = self._current
        gap = (observation.timestamp - current.end).total_seconds()
        return (
            observation.app_id == current.app_id
            and observation.window_title == current.window_title
            and gap < self.config.merge_threshold_seconds
            and category == current.category
        )

    def feed(self, observation: ActivityObservation) -> WorkSession | None:
        """
        Apply one observation.

        Returns:
            The session closed by this observation, or None
        """
        # Rule 1
        if observation.is_idle and observation.duration > self.config.idle_threshold_seconds:
            return self._emit()

        # Rule 2 (zero-length observations can't form a session with end > start)
        if observation.duration <= 0 or observation.duration < self.config.noise_threshold_seconds:
            return None

        if observation.is_idle:
            return None

        category = self.categories.lookup(observation.app_id)

        # Rule 3
        if self._current is None:
            self._current = _OpenSession.begin(observation, category)
            return None

        # Rule 4
        if self._can_merge(observation, category):
            self._current.absorb(observation)
            return None

        # Rule 5
        closed = self._emit()
        self._current = _OpenSession.begin(observation, category)
        return closed

    def finish(self) -> WorkSession | None:
        """Close and return the open session at end of input."""
        return self._emit()


def sessionize(
    observations: Iterable[ActivityObservation],
    config: SessionizerConfig | None = None,
    categories: CategoryMap | None = None,
) -> list[WorkSession]:
    """Merge an ordered observation sequence into work sessions."""
    sessionizer = Sessionizer(config, categories)
    sessions: list[WorkSession] = []

    for observation in observations:
        closed = sessionizer.feed(observation)
        if closed is not None:
            sessions.append(closed)

    last = sessionizer.finish()
    if last is not None:
        sessions.append(last)

    return sessions


def group_by_time_bucket(
    observations: Iterable[ActivityObservation],
    bucket_minutes: int = 60,
    categories: CategoryMap | None = None,
) -> list[WorkSession]:
    """
    Naive grouping used when sessionize() faults.

    Consecutive active observations with the same app and window in the same
    fixed-width wall-clock bucket become one session. No noise, idle or
    merge-gap rules apply.
    """
    categories = categories or CategoryMap.from_config()
    width = bucket_minutes * 60
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)

    sessions: list[WorkSession] = []
    current: _OpenSession | None = None
    current_bucket: int | None = None

    for observation in observations:
        if observation.is_idle or observation.duration <= 0:
            continue

        bucket = int((observation.timestamp - epoch).total_seconds() // width)
        if (
            current is not None
            and bucket == current_bucket
            and observation.app_id == current.app_id
            and observation.window_title == current.window_title
        ):
            current.absorb(observation)
            continue

        if current is not None:
            sessions.append(current.close())
        current = _OpenSession.begin(observation, categories.lookup(observation.app_id))
        current_bucket = bucket

    if current is not None:
        sessions.append(current.close())

    return sessions
