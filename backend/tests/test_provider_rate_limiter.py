import pytest

from ciaociao.providers.errors import ProviderQuotaExceededError
from ciaociao.providers.rate_limiter import RateLimiter, RateWindowState


def test_limit_plus_one_is_denied_within_window() -> None:
    limiter = RateLimiter.per_window(limit=3, window_seconds=60.0)
    for offset in range(3):
        limiter.try_acquire(now=1000.0 + offset)
    with pytest.raises(ProviderQuotaExceededError):
        limiter.try_acquire(now=1010.0)
    assert limiter.snapshot().requests_in_window == 3
    assert limiter.snapshot().remaining == 0


def test_window_rolls_over_after_window_seconds() -> None:
    limiter = RateLimiter.per_window(limit=1, window_seconds=60.0)
    limiter.try_acquire(now=1000.0)
    with pytest.raises(ProviderQuotaExceededError):
        limiter.try_acquire(now=1059.9)
    limiter.try_acquire(now=1060.0)
    snapshot = limiter.snapshot()
    assert snapshot.quota_window_start == 1060.0
    assert snapshot.requests_in_window == 1


def test_clock_moving_backwards_starts_fresh_window() -> None:
    limiter = RateLimiter(RateWindowState(limit=1, window_seconds=60.0, window_start=5000.0, requests_in_window=1))
    limiter.try_acquire(now=4000.0)
    assert limiter.snapshot().quota_window_start == 4000.0


def test_exhaust_consumes_remaining_quota() -> None:
    limiter = RateLimiter.per_window(limit=10, window_seconds=60.0)
    limiter.try_acquire(now=0.0)
    limiter.exhaust(now=1.0)
    with pytest.raises(ProviderQuotaExceededError):
        limiter.try_acquire(now=2.0)
    limiter.try_acquire(now=60.0)


@pytest.mark.parametrize("limit, window", [(0, 60.0), (1, 0.0)])
def test_invalid_limits_are_rejected(limit: int, window: float) -> None:
    with pytest.raises(ValueError):
        RateLimiter.per_window(limit=limit, window_seconds=window)
