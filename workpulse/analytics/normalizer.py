"""
Event Normalizer

Cleans a raw observation batch before anything else sees it:

- Excluded applications and window-title patterns are removed outright.
  They are never forwarded and never stored; this runs before the store.
- Malformed records (missing field, negative duration) are dropped and
  counted, never raised.
- Idle stretches shorter than min_idle_seconds are folded into the
  preceding active observation.

If the malformed fraction of a batch exceeds the alert threshold the
result is flagged and the caller's on_drop_alert callback runs. The
normalizer only reports it; it does not change what gets processed.

Usage:
    from workpulse.analytics.normalizer import normalize

    result = normalize(raw_records, config.normalizer, on_drop_alert=notify)
    result.observations  # tuple[ActivityObservation, ...]
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Mapping

from workpulse.analytics.categories import normalize_app_id
from workpulse.analytics.models import ActivityObservation, ObservationError
from workpulse.config_models import NormalizerConfig
from workpulse.logging_config import get_logger

logger = get_logger(__name__)

RawRecord = Mapping[str, Any] | ActivityObservation


@dataclass(frozen=True)
class NormalizationResult:
    observations: tuple[ActivityObservation, ...]
    total: int
    malformed: int
    excluded: int
    idle_collapsed: int
    alert: bool = False

    @property
    def drop_rate(self) -> float:
        """Fraction of the batch dropped as malformed."""
        if self.total == 0:
            return 0.0
        return self.malformed / self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "kept": len(self.observations),
            "total": self.total,
            "malformed": self.malformed,
            "excluded": self.excluded,
            "idle_collapsed": self.idle_collapsed,
            "drop_rate": round(self.drop_rate, 4),
            "alert": self.alert,
        }


class PrivacyFilter:
    """Matches observations the user asked never to record."""

    def __init__(self, excluded_apps: Iterable[str] = (), window_patterns: Iterable[str] = ()):
        self._apps = {normalize_app_id(a) for a in excluded_apps if a}
        self._patterns = [p.lower() for p in window_patterns if p]

    def excludes(self, observation: ActivityObservation) -> bool:
        if observation.app_id and normalize_app_id(observation.app_id) in self._apps:
            return True
        title = observation.window_title.lower()
        return any(fnmatch.fnmatchcase(title, pattern) for pattern in self._patterns)


def _parse(record: RawRecord) -> ActivityObservation:
    if isinstance(record, ActivityObservation):
        if record.duration < 0:
            raise ObservationError(f"Negative duration: {record.duration}")
        return record
    return ActivityObservation.from_dict(record)


def normalize(
    records: Iterable[RawRecord],
    config: NormalizerConfig | None = None,
    on_drop_alert: Callable[[NormalizationResult], None] | None = None,
) -> NormalizationResult:
    """
    Validate and clean a raw observation batch.

    Args:
        records: Raw capture records (mappings) or already-built observations
        config: Normalizer settings (defaults if omitted)
        on_drop_alert: Called once with the result when the drop rate
            exceeds config.drop_rate_alert_threshold

    Returns:
        NormalizationResult with the cleaned, time-ordered observations
    """
    config = config or NormalizerConfig()
    privacy = PrivacyFilter(config.excluded_apps, config.excluded_window_patterns)

    total = 0
    malformed = 0
    excluded = 0

    # (observation, follows_kept_record) so idle collapse never bridges a
    # dropped or excluded record
    kept: list[tuple[ActivityObservation, bool]] = []
    previous_kept = False

    for record in records:
        total += 1
        try:
            observation = _parse(record)
        except ObservationError as e:
            malformed += 1
            previous_kept = False
            logger.debug("observation_dropped", reason=str(e), index=total - 1)
            continue

        if privacy.excludes(observation):
            excluded += 1
            previous_kept = False
            continue

        kept.append((observation, previous_kept))
        previous_kept = True

    # Stable: already-ordered input keeps its exact order
    kept.sort(key=lambda item: item[0].timestamp)

    observations: list[ActivityObservation] = []
    collapsed = 0
    for observation, follows_kept in kept:
        if (
            observation.is_idle
            and observation.duration < config.min_idle_seconds
            and follows_kept
            and observations
            and not observations[-1].is_idle
        ):
            last = observations[-1]
            observations[-1] = replace(last, duration=last.duration + observation.duration)
            collapsed += 1
            continue
        observations.append(observation)

    drop_rate = malformed / total if total else 0.0
    alert = drop_rate > config.drop_rate_alert_threshold

    result = NormalizationResult(
        observations=tuple(observations),
        total=total,
        malformed=malformed,
        excluded=excluded,
        idle_collapsed=collapsed,
        alert=alert,
    )

    if alert:
        logger.warning(
            "high_drop_rate",
            drop_rate=round(drop_rate, 4),
            malformed=malformed,
            total=total,
            threshold=config.drop_rate_alert_threshold,
        )
        if on_drop_alert is not None:
            on_drop_alert(result)

    return result
