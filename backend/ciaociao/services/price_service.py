from __future__ import annotations

import asyncio
from dataclasses import replace
import logging

import httpx

from ciaociao.core.config import Settings
from ciaociao.providers.execution_types import ProviderState
from ciaociao.providers.registry import ProviderRegistry, build_provider_registry
from ciaociao.services.price_engine.cache import PriceCache
from ciaociao.services.price_engine.errors import AllSourcesExhaustedError
from ciaociao.services.price_engine.orchestrator import PriceOrchestrator
from ciaociao.services.price_engine.policy import ResolutionPolicy
from ciaociao.services.price_engine.schemas import (
    TROY_OUNCE_IN_GRAMS,
    ConsensusQuote,
    Currency,
    Metal,
    PriceKey,
    ResolutionMethod,
    Unit,
)


logger = logging.getLogger("ciaociao.pricing")

DERIVED_CONFIDENCE_FACTOR = 0.95
DERIVED_SOURCE_ID = "derived"

_METHOD_RANK = {
    ResolutionMethod.LIVE_CONSENSUS: 0,
    ResolutionMethod.CACHE_HIT: 1,
    ResolutionMethod.FALLBACK_INTERPOLATED: 2,
}


def convert_unit(quote: ConsensusQuote, unit: Unit) -> ConsensusQuote:
    if quote.unit is None or quote.unit == unit:
        return quote
    if quote.unit == Unit.TROY_OUNCE and unit == Unit.GRAM:
        return replace(quote, value=quote.value / TROY_OUNCE_IN_GRAMS, unit=Unit.GRAM)
    if quote.unit == Unit.GRAM and unit == Unit.TROY_OUNCE:
        return replace(quote, value=quote.value * TROY_OUNCE_IN_GRAMS, unit=Unit.TROY_OUNCE)
    raise ValueError(f"cannot convert {quote.unit} to {unit}")


def combine_cross_rate(metal_quote: ConsensusQuote, fx_quote: ConsensusQuote, *, currency: Currency) -> ConsensusQuote:
    """Metal price in ``currency`` from a USD metal price and a USD->``currency`` rate."""
    method = max(metal_quote.method, fx_quote.method, key=_METHOD_RANK.__getitem__)
    return ConsensusQuote(
        asset=metal_quote.asset,
        currency=currency,
        unit=metal_quote.unit,
        value=metal_quote.value * fx_quote.value,
        observed_at=min(metal_quote.observed_at, fx_quote.observed_at),
        source_id=DERIVED_SOURCE_ID,
        confidence=round(metal_quote.confidence * fx_quote.confidence * DERIVED_CONFIDENCE_FACTOR, 4),
        contributing_sources=metal_quote.contributing_sources + fx_quote.contributing_sources,
        method=method,
        sources=metal_quote.sources + fx_quote.sources,
        stale=metal_quote.stale or fx_quote.stale,
    )


class PriceService:
    """Entry point for the receipt calculator: current metal prices and FX rates.

    Both calls return a ``ConsensusQuote`` or raise ``AllSourcesExhaustedError``;
    provider failures never escape. Worst-case latency is bounded by
    ``request_timeout_seconds``.
    """

    def __init__(
        self,
        orchestrator: PriceOrchestrator,
        *,
        request_timeout_seconds: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._request_timeout_seconds = request_timeout_seconds
        self._client = client

    @property
    def registry(self) -> ProviderRegistry:
        return self._orchestrator.registry

    def _deadline(self) -> float:
        return asyncio.get_running_loop().time() + self._request_timeout_seconds

    async def get_price(
        self,
        metal: Metal,
        currency: Currency = Currency.USD,
        unit: Unit = Unit.TROY_OUNCE,
    ) -> ConsensusQuote:
        deadline = self._deadline()
        key = PriceKey(metal, currency)
        try:
            quote = await self._orchestrator.resolve(key, deadline=deadline)
        except AllSourcesExhaustedError:
            if currency == Currency.USD:
                raise
            quote = await self._derive_via_usd(key, deadline=deadline)
        return convert_unit(quote, unit)

    async def get_exchange_rate(self, base: Currency, quote: Currency) -> ConsensusQuote:
        if base == quote:
            raise ValueError("base and quote currencies must differ")
        return await self._orchestrator.resolve(PriceKey(base, quote), deadline=self._deadline())

    def provider_states(self) -> list[ProviderState]:
        return self.registry.snapshot()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _derive_via_usd(self, key: PriceKey, *, deadline: float) -> ConsensusQuote:
        logger.warning("Direct %s price exhausted; deriving from USD price and FX rate.", key.label)
        try:
            usd_quote, fx_quote = await asyncio.gather(
                self._orchestrator.resolve(PriceKey(key.asset, Currency.USD), deadline=deadline),
                self._orchestrator.resolve(PriceKey(Currency.USD, key.currency), deadline=deadline),
            )
        except AllSourcesExhaustedError as exc:
            raise AllSourcesExhaustedError(key) from exc
        return combine_cross_rate(usd_quote, fx_quote, currency=key.currency)


def build_price_service(settings: Settings, *, client: httpx.AsyncClient | None = None) -> PriceService:
    http_client = client or httpx.AsyncClient(
        timeout=settings.provider_timeout_seconds,
        follow_redirects=True,
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=30),
        headers={"User-Agent": f"{settings.app_name}/1.0"},
    )
    policy = ResolutionPolicy.from_settings(settings)
    orchestrator = PriceOrchestrator(
        registry=build_provider_registry(settings, http_client),
        cache=PriceCache(history_size=settings.cache_history_size),
        policy=policy,
    )
    return PriceService(
        orchestrator,
        request_timeout_seconds=settings.request_timeout_seconds,
        client=http_client if client is None else None,
    )
