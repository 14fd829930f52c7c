from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerSnapshot:
    state: CircuitState
    consecutive_failures: int
    last_failure_at: float | None
    cooldown_until: float | None
    trips: int


@dataclass(frozen=True)
class QuotaSnapshot:
    limit: int
    window_seconds: float
    quota_window_start: float | None
    requests_in_window: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.requests_in_window)


@dataclass(frozen=True)
class ProviderState:
    source_id: str
    enabled: bool
    circuit_state: CircuitState
    consecutive_failures: int
    last_failure_at: float | None
    cooldown_until: float | None
    quota_window_start: float | None
    requests_in_window: int
    quota_limit: int

    def as_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "enabled": self.enabled,
            "circuit_state": self.circuit_state.value,
            "consecutive_failures": self.consecutive_failures,
            "last_failure_at": self.last_failure_at,
            "cooldown_until": self.cooldown_until,
            "quota_window_start": self.quota_window_start,
            "requests_in_window": self.requests_in_window,
            "quota_limit": self.quota_limit,
        }
