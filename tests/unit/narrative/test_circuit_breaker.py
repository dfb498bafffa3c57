"""Tests for the narrative provider circuit breaker."""

import pytest

from workpulse.narrative.circuit_breaker import CircuitBreaker, CircuitState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(failure_threshold=3, recovery_timeout=60, clock=clock)


class TestCircuitBreaker:
    """State transitions: closed -> open -> half_open -> closed/open."""

    def test_starts_closed(self, breaker):
        assert breaker.get_state("anthropic") == CircuitState.CLOSED
        assert breaker.can_execute("anthropic") is True

    def test_opens_at_threshold(self, breaker):
        for _ in range(2):
            breaker.record_failure("anthropic")
        assert breaker.get_state("anthropic") == CircuitState.CLOSED

        breaker.record_failure("anthropic")

        assert breaker.get_state("anthropic") == CircuitState.OPEN
        assert breaker.can_execute("anthropic") is False

    def test_success_resets_count(self, breaker):
        breaker.record_failure("anthropic")
        breaker.record_failure("anthropic")
        breaker.record_success("anthropic")
        breaker.record_failure("anthropic")

        assert breaker.get_state("anthropic") == CircuitState.CLOSED

    def test_half_open_after_recovery_timeout(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure("anthropic")

        clock.advance(60)

        assert breaker.get_state("anthropic") == CircuitState.HALF_OPEN
        assert breaker.can_execute("anthropic") is True
        # One probe at a time
        assert breaker.can_execute("anthropic") is False

    def test_probe_success_closes(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure("anthropic")
        clock.advance(61)
        breaker.can_execute("anthropic")

        breaker.record_success("anthropic")

        assert breaker.get_state("anthropic") == CircuitState.CLOSED
        assert breaker.can_execute("anthropic") is True

    def test_probe_failure_reopens(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure("anthropic")
        clock.advance(61)
        breaker.can_execute("anthropic")

        breaker.record_failure("anthropic")

        assert breaker.get_state("anthropic") == CircuitState.OPEN
        clock.advance(30)
        assert breaker.can_execute("anthropic") is False

    def test_released_probe_can_be_retaken(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure("anthropic")
        clock.advance(61)
        assert breaker.can_execute("anthropic") is True

        breaker.release("anthropic")

        assert breaker.get_state("anthropic") == CircuitState.HALF_OPEN
        assert breaker.can_execute("anthropic") is True

    def test_providers_are_independent(self, breaker):
        for _ in range(3):
            breaker.record_failure("anthropic")

        assert breaker.can_execute("template") is True

    def test_get_all_states_and_reset(self, breaker):
        breaker.record_failure("anthropic")

        assert breaker.get_all_states() == {"anthropic": {"state": "closed", "failure_count": 1}}

        breaker.reset("anthropic")
        assert breaker.get_all_states() == {}

        breaker.record_failure("a")
        breaker.record_failure("b")
        breaker.reset()
        assert breaker.get_all_states() == {}
