from __future__ import annotations

import time

from ciaociao.providers.errors import ProviderCircuitOpenError
from ciaociao.providers.execution_types import CircuitBreakerSnapshot, CircuitState


class CircuitBreaker:
    """Failure-tracking state machine for a single provider.

    Not thread-safe on its own; callers serialize access per provider
    (see ``ProviderSlot``).
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        reset_timeout: float = 60.0,
        backoff_multiplier: float = 2.0,
        max_reset_timeout: float = 900.0,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.backoff_multiplier = backoff_multiplier
        self.max_reset_timeout = max_reset_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._trips = 0
        self._last_failure_at: float | None = None
        self._open_until_epoch_seconds: float | None = None
        self._half_open_probe_in_flight = False
        self._disabled = False

    def disable(self) -> None:
        self._disabled = True
        self._state = CircuitState.OPEN
        self._open_until_epoch_seconds = None

    @property
    def disabled(self) -> bool:
        return self._disabled

    def snapshot(self, *, now: float | None = None) -> CircuitBreakerSnapshot:
        return CircuitBreakerSnapshot(
            state=self.state(now=now),
            consecutive_failures=self._consecutive_failures,
            last_failure_at=self._last_failure_at,
            cooldown_until=self._open_until_epoch_seconds,
            trips=self._trips,
        )

    def state(self, *, now: float | None = None) -> CircuitState:
        if self._disabled:
            return CircuitState.OPEN
        now_value = time.time() if now is None else now
        if (
            self._state == CircuitState.OPEN
            and self._open_until_epoch_seconds is not None
            and now_value >= self._open_until_epoch_seconds
        ):
            self._state = CircuitState.HALF_OPEN
            self._half_open_probe_in_flight = False
        return self._state

    def current_reset_timeout(self) -> float:
        exponent = max(0, self._trips - 1)
        return min(self.max_reset_timeout, self.reset_timeout * (self.backoff_multiplier**exponent))

    def before_call(self, *, now: float | None = None) -> None:
        state = self.state(now=now)
        if state == CircuitState.OPEN:
            if self._disabled:
                raise ProviderCircuitOpenError("Provider is disabled: credentials are not configured.")
            raise ProviderCircuitOpenError()
        if state == CircuitState.HALF_OPEN:
            if self._half_open_probe_in_flight:
                raise ProviderCircuitOpenError("Provider circuit half-open probe already in progress.")
            self._half_open_probe_in_flight = True

    def release_probe(self) -> None:
        self._half_open_probe_in_flight = False

    def record_success(self) -> None:
        if self._disabled:
            return
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._trips = 0
        self._open_until_epoch_seconds = None
        self._half_open_probe_in_flight = False

    def record_failure(self, *, now: float | None = None) -> None:
        if self._disabled:
            return
        now_value = time.time() if now is None else now
        self._last_failure_at = now_value
        if self.state(now=now_value) == CircuitState.HALF_OPEN:
            self._consecutive_failures += 1
            self._trip(now_value)
            return

        self._consecutive_failures += 1
        if self._state == CircuitState.CLOSED and self._consecutive_failures >= self.failure_threshold:
            self._trip(now_value)

    def _trip(self, now_value: float) -> None:
        self._trips += 1
        self._state = CircuitState.OPEN
        self._open_until_epoch_seconds = now_value + self.current_reset_timeout()
        self._half_open_probe_in_flight = False
