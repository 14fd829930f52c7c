from __future__ import annotations

from dataclasses import dataclass
import time

from ciaociao.providers.errors import ProviderQuotaExceededError
from ciaociao.providers.execution_types import QuotaSnapshot


@dataclass
class RateWindowState:
    limit: int
    window_seconds: float
    window_start: float | None = None
    requests_in_window: int = 0


class RateLimiter:
    def __init__(self, state: RateWindowState) -> None:
        if state.limit < 1:
            raise ValueError("limit must be at least 1")
        if state.window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")
        self.state = state

    @classmethod
    def per_window(cls, *, limit: int, window_seconds: float) -> "RateLimiter":
        return cls(RateWindowState(limit=limit, window_seconds=window_seconds))

    def roll(self, *, now: float) -> None:
        start = self.state.window_start
        # a clock that moved backwards starts a fresh window
        if start is None or now < start or now - start >= self.state.window_seconds:
            self.state.window_start = now
            self.state.requests_in_window = 0

    def try_acquire(self, *, now: float | None = None) -> None:
        now_value = time.time() if now is None else now
        self.roll(now=now_value)
        if self.state.requests_in_window >= self.state.limit:
            raise ProviderQuotaExceededError(
                f"Provider quota of {self.state.limit} requests per {self.state.window_seconds:g}s exhausted."
            )
        self.state.requests_in_window += 1

    def exhaust(self, *, now: float | None = None) -> None:
        now_value = time.time() if now is None else now
        self.roll(now=now_value)
        self.state.requests_in_window = self.state.limit

    def snapshot(self) -> QuotaSnapshot:
        return QuotaSnapshot(
            limit=self.state.limit,
            window_seconds=self.state.window_seconds,
            quota_window_start=self.state.window_start,
            requests_in_window=self.state.requests_in_window,
        )
