import pytest

from ciaociao.providers.circuit_breaker import CircuitBreaker
from ciaociao.providers.errors import ProviderCircuitOpenError
from ciaociao.providers.execution_types import CircuitState


def test_circuit_breaker_opens_after_threshold() -> None:
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout=5.0)
    breaker.before_call(now=100.0)
    breaker.record_failure(now=100.0)
    breaker.before_call(now=100.1)
    breaker.record_failure(now=100.1)
    with pytest.raises(ProviderCircuitOpenError):
        breaker.before_call(now=101.0)
    assert breaker.snapshot(now=101.0).cooldown_until == pytest.approx(105.1)


def test_success_resets_consecutive_failures() -> None:
    breaker = CircuitBreaker(failure_threshold=3, reset_timeout=5.0)
    breaker.record_failure(now=1.0)
    breaker.record_failure(now=2.0)
    breaker.record_success()
    breaker.record_failure(now=3.0)
    breaker.record_failure(now=4.0)
    assert breaker.state(now=4.0) == CircuitState.CLOSED
    assert breaker.snapshot(now=4.0).consecutive_failures == 2


def test_circuit_breaker_transitions_to_half_open_and_closes_on_success() -> None:
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=3.0)
    breaker.before_call(now=10.0)
    breaker.record_failure(now=10.0)
    with pytest.raises(ProviderCircuitOpenError):
        breaker.before_call(now=11.0)
    assert breaker.state(now=13.1) == CircuitState.HALF_OPEN
    breaker.before_call(now=13.1)
    breaker.record_success()
    assert breaker.state(now=13.2) == CircuitState.CLOSED
    breaker.before_call(now=13.2)


def test_half_open_admits_a_single_probe() -> None:
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=3.0)
    breaker.record_failure(now=10.0)
    breaker.before_call(now=13.5)
    with pytest.raises(ProviderCircuitOpenError):
        breaker.before_call(now=13.6)
    breaker.release_probe()
    breaker.before_call(now=13.7)


def test_circuit_breaker_half_open_failed_probe_reopens_with_backoff() -> None:
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=2.0, backoff_multiplier=2.0, max_reset_timeout=5.0)
    breaker.before_call(now=20.0)
    breaker.record_failure(now=20.0)
    breaker.before_call(now=22.1)
    breaker.record_failure(now=22.1)
    with pytest.raises(ProviderCircuitOpenError):
        breaker.before_call(now=22.2)
    assert breaker.snapshot(now=22.2).cooldown_until == pytest.approx(26.1)

    breaker.before_call(now=26.2)
    breaker.record_failure(now=26.2)
    # capped at max_reset_timeout
    assert breaker.snapshot(now=26.3).cooldown_until == pytest.approx(31.2)


def test_disabled_breaker_stays_open() -> None:
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=1.0)
    breaker.disable()
    assert breaker.state(now=10_000.0) == CircuitState.OPEN
    with pytest.raises(ProviderCircuitOpenError, match="disabled"):
        breaker.before_call(now=10_000.0)
    breaker.record_success()
    assert breaker.disabled
