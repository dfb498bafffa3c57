"""
Circuit Breaker for narrative providers

Several period runs can share one remote provider (a backfill runs them
concurrently). Once the provider has failed repeatedly, runs skip it and
go straight to the template instead of each paying for their own retries.

States:
    closed    - Normal operation, requests pass through
    open      - Provider skipped, failures reached the threshold
    half_open - One probe request allowed after the recovery timeout

Usage:
    breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=120)

    if breaker.can_execute("anthropic"):
        try:
            text = await generator.generate(context, config)
            breaker.record_success("anthropic")
        except NarrativeError:
            breaker.record_failure("anthropic")
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from workpulse.logging_config import get_logger

logger = get_logger(__name__)


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class _Circuit:
    failure_count: int = 0
    opened_at: float = 0.0
    state: CircuitState = CircuitState.CLOSED
    probe_in_flight: bool = False


class CircuitBreaker:
    """Thread-safe per-provider circuit breaker.

    Args:
        failure_threshold: Consecutive failures before the circuit opens.
        recovery_timeout: Seconds an open circuit waits before allowing a probe.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 120.0, clock=time.monotonic):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._circuits: dict[str, _Circuit] = {}
        self._lock = threading.Lock()

    def _circuit(self, provider: str) -> _Circuit:
        """Must hold _lock."""
        return self._circuits.setdefault(provider, _Circuit())

    def can_execute(self, provider: str) -> bool:
        with self._lock:
            circuit = self._circuit(provider)

            if circuit.state == CircuitState.CLOSED:
                return True

            if circuit.state == CircuitState.OPEN:
                if self._clock() - circuit.opened_at < self.recovery_timeout:
                    return False
                circuit.state = CircuitState.HALF_OPEN
                circuit.probe_in_flight = False
                logger.info("circuit_half_open", provider=provider)

            # HALF_OPEN: a single probe at a time
            if circuit.probe_in_flight:
                return False
            circuit.probe_in_flight = True
            return True

    def record_success(self, provider: str) -> None:
        with self._lock:
            circuit = self._circuit(provider)
            if circuit.state != CircuitState.CLOSED:
                logger.info("circuit_closed", provider=provider)
            circuit.state = CircuitState.CLOSED
            circuit.failure_count = 0
            circuit.probe_in_flight = False

    def record_failure(self, provider: str) -> None:
        with self._lock:
            circuit = self._circuit(provider)
            circuit.failure_count += 1

            if circuit.state == CircuitState.HALF_OPEN or circuit.failure_count >= self.failure_threshold:
                if circuit.state != CircuitState.OPEN:
                    logger.warning("circuit_opened", provider=provider, failures=circuit.failure_count)
                circuit.state = CircuitState.OPEN
                circuit.opened_at = self._clock()
                circuit.probe_in_flight = False

    def release(self, provider: str) -> None:
        """Give back a half-open probe whose request was abandoned without an outcome."""
        with self._lock:
            self._circuit(provider).probe_in_flight = False

    def get_state(self, provider: str) -> CircuitState:
        with self._lock:
            circuit = self._circuit(provider)
            if circuit.state == CircuitState.OPEN and self._clock() - circuit.opened_at >= self.recovery_timeout:
                return CircuitState.HALF_OPEN
            return circuit.state

    def get_all_states(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                name: {"state": c.state.value, "failure_count": c.failure_count}
                for name, c in self._circuits.items()
            }

    def reset(self, provider: str | None = None) -> None:
        with self._lock:
            if provider is None:
                self._circuits.clear()
            else:
                self._circuits.pop(provider, None)
