import os
os.environ["APP_ENV"] = "test"

# THEN import anything else
import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterator

import httpx
import pytest

from ciaociao.core.config import get_settings
from ciaociao.providers.base import PriceProvider
from ciaociao.providers.circuit_breaker import CircuitBreaker
from ciaociao.providers.rate_limiter import RateLimiter
from ciaociao.providers.registry import ProviderRegistry, ProviderSlot
from ciaociao.services.price_engine.cache import PriceCache
from ciaociao.services.price_engine.orchestrator import PriceOrchestrator
from ciaociao.services.price_engine.policy import ResolutionPolicy
from ciaociao.services.price_engine.schemas import ConsensusQuote, Currency, Metal, PriceKey, Quote, ResolutionMethod, Unit


FIXED_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
GOLD_USD = PriceKey(Metal.GOLD, Currency.USD)
GOLD_MXN = PriceKey(Metal.GOLD, Currency.MXN)
USD_MXN = PriceKey(Currency.USD, Currency.MXN)


class ScriptedProvider(PriceProvider):
    """Provider double answering from a per-key script.

    A script entry is a value (quoted at ``observed_at``), an exception
    instance (raised), or a ``(delay_seconds, value)`` tuple.
    """

    requires_credentials = False

    def __init__(
        self,
        source_id: str,
        script: dict[PriceKey, object],
        *,
        observed_at: datetime | None = None,
        configured: bool = True,
    ) -> None:
        super().__init__(client=httpx.AsyncClient(transport=httpx.MockTransport(_unused_transport)))
        self.source_id = source_id
        self.script = dict(script)
        self.observed_at = observed_at or FIXED_NOW
        self.calls: list[PriceKey] = []
        self.cancelled = False
        if not configured:
            self.requires_credentials = True

    def supports(self, key: PriceKey) -> bool:
        return key in self.script

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        self.calls.append(key)
        outcome = self.script[key]
        if isinstance(outcome, tuple):
            delay, outcome = outcome
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if isinstance(outcome, BaseException):
            raise outcome
        return self._quote(key, outcome, self.observed_at)


def _unused_transport(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected HTTP call to {request.url}")


def make_slot(provider: PriceProvider, *, failure_threshold: int = 3, limit: int = 100) -> ProviderSlot:
    return ProviderSlot(
        provider,
        breaker=CircuitBreaker(failure_threshold=failure_threshold, reset_timeout=60.0),
        limiter=RateLimiter.per_window(limit=limit, window_seconds=60.0),
    )


def make_orchestrator(
    providers: list[PriceProvider],
    *,
    policy: ResolutionPolicy | None = None,
    cache: PriceCache | None = None,
    clock: Callable[[], datetime] = lambda: FIXED_NOW,
    failure_threshold: int = 3,
) -> PriceOrchestrator:
    return PriceOrchestrator(
        registry=ProviderRegistry(make_slot(provider, failure_threshold=failure_threshold) for provider in providers),
        cache=cache or PriceCache(clock=clock),
        policy=policy or ResolutionPolicy(),
        clock=clock,
    )


def make_quote(
    value: str,
    *,
    key: PriceKey = GOLD_USD,
    source_id: str = "metalpriceapi",
    observed_at: datetime = FIXED_NOW,
) -> Quote:
    return Quote(
        asset=key.asset,
        currency=key.currency,
        unit=None if key.is_fx else Unit.TROY_OUNCE,
        value=Decimal(value),
        observed_at=observed_at,
        source_id=source_id,
    )


def make_consensus(
    value: str,
    *,
    key: PriceKey = GOLD_USD,
    observed_at: datetime = FIXED_NOW,
    confidence: float = 0.9,
    sources: tuple[str, ...] = ("metalpriceapi", "goldapi"),
) -> ConsensusQuote:
    return ConsensusQuote(
        asset=key.asset,
        currency=key.currency,
        unit=None if key.is_fx else Unit.TROY_OUNCE,
        value=Decimal(value),
        observed_at=observed_at,
        source_id="consensus",
        confidence=confidence,
        contributing_sources=len(sources),
        method=ResolutionMethod.LIVE_CONSENSUS,
        sources=sources,
    )


def hours_later(hours: float) -> datetime:
    return FIXED_NOW + timedelta(hours=hours)


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
