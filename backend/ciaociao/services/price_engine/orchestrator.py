from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Callable

from ciaociao.core.metrics import (
    price_exhaustions_total,
    price_resolutions_total,
    provider_calls_total,
    provider_gate_rejections_total,
)
from ciaociao.observability.events import (
    emit_fallback_used,
    emit_price_resolved,
    emit_provider_failure,
    emit_provider_skipped,
    emit_quorum_reached,
    emit_sources_exhausted,
)
from ciaociao.providers.errors import ProviderError, ProviderTimeoutError, classify_provider_error
from ciaociao.providers.registry import ProviderRegistry, ProviderSlot
from ciaociao.services.price_engine.cache import CacheEntry, PriceCache, utc_now
from ciaociao.services.price_engine.errors import AllSourcesExhaustedError, NoLiveDataError, PriceResolutionError
from ciaociao.services.price_engine.fallback import estimate_from_history
from ciaociao.services.price_engine.policy import ResolutionPolicy
from ciaociao.services.price_engine.schemas import ConsensusQuote, PriceKey, Quote, ResolutionMethod
from ciaociao.services.price_engine.validator import CrossSourceValidator, quorum_reached


class PriceOrchestrator:
    """Resolves one ``PriceKey`` per call: cache, gated fan-out, validation, fallback."""

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        cache: PriceCache,
        policy: ResolutionPolicy,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._policy = policy
        self._validator = CrossSourceValidator(policy)
        self._clock = clock

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def cache(self) -> PriceCache:
        return self._cache

    async def resolve(self, key: PriceKey, *, deadline: float | None = None) -> ConsensusQuote:
        """Resolve ``key``; ``deadline`` is an event-loop time bounding all provider calls."""
        entry = self._cache.get(key)
        if entry is not None and self._policy.prefer_cache and self._cache.is_fresh(entry):
            return self._finish(key, self._cache_hit(entry))

        timeout = self._call_timeout(deadline)
        admitted = self._admit(key) if timeout > 0 else []
        quotes = await self._fan_out(key, admitted, timeout) if admitted else []

        try:
            consensus = self._validator.validate(quotes, key=key, now=self._clock())
        except PriceResolutionError as exc:
            reason = exc.code if admitted else NoLiveDataError.code
            return self._finish(key, self._fall_back(key, entry, reason=reason))

        self._cache.put(key, consensus, self._policy.ttl_for(key))
        return self._finish(key, consensus)

    def _admit(self, key: PriceKey) -> list[ProviderSlot]:
        admitted: list[ProviderSlot] = []
        for slot in self._registry.for_key(key):
            try:
                slot.admit()
            except ProviderError as exc:
                provider_gate_rejections_total.labels(source_id=slot.source_id, reason=exc.reason_code).inc()
                emit_provider_skipped(source_id=slot.source_id, key=key.label, reason=exc.reason_code)
                continue
            admitted.append(slot)
        return admitted

    def _call_timeout(self, deadline: float | None) -> float:
        timeout = self._policy.call_timeout_seconds
        if deadline is None:
            return timeout
        return min(timeout, deadline - asyncio.get_running_loop().time())

    async def _fan_out(self, key: PriceKey, slots: list[ProviderSlot], timeout: float) -> list[Quote]:
        tolerance = self._policy.tolerance_for(key)
        quorum = self._policy.quorum_size
        pending = {asyncio.create_task(self._call(slot, key, timeout), name=f"fetch:{slot.source_id}") for slot in slots}
        quotes: list[Quote] = []
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    quote = task.result()
                    if quote is not None:
                        quotes.append(quote)
                if pending and quorum_reached(self._usable(quotes, key), tolerance=tolerance, quorum=quorum):
                    emit_quorum_reached(key=key.label, quotes_received=len(quotes), cancelled=len(pending))
                    break
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        return quotes

    async def _call(self, slot: ProviderSlot, key: PriceKey, timeout: float) -> Quote | None:
        try:
            quote = await asyncio.wait_for(slot.provider.fetch(key.asset, key.currency), timeout=timeout)
        except asyncio.CancelledError:
            slot.record_cancelled()
            provider_calls_total.labels(source_id=slot.source_id, outcome="cancelled").inc()
            raise
        except asyncio.TimeoutError:
            self._record_failure(slot, key, ProviderTimeoutError(f"{slot.source_id} exceeded {timeout:g}s."))
            return None
        except Exception as exc:  # noqa: BLE001
            self._record_failure(slot, key, classify_provider_error(exc))
            return None
        slot.record_success()
        provider_calls_total.labels(source_id=slot.source_id, outcome="success").inc()
        return quote

    def _record_failure(self, slot: ProviderSlot, key: PriceKey, error: ProviderError) -> None:
        slot.record_failure(error)
        provider_calls_total.labels(source_id=slot.source_id, outcome=error.reason_code).inc()
        emit_provider_failure(source_id=slot.source_id, key=key.label, error_code=error.error_code, message=str(error))

    def _fall_back(self, key: PriceKey, entry: CacheEntry | None, *, reason: str) -> ConsensusQuote:
        if entry is not None and self._cache.is_fresh(entry):
            return self._cache_hit(entry)
        history = self._cache.history(key)
        emit_fallback_used(key=key.label, reason=reason, history_points=len(history))
        try:
            return estimate_from_history(
                history,
                key=key,
                now=self._clock(),
                confidence_ceiling=self._policy.fallback_confidence_ceiling,
            )
        except AllSourcesExhaustedError:
            price_exhaustions_total.labels(asset=key.asset.value, currency=key.currency.value).inc()
            emit_sources_exhausted(key=key.label, reason=reason)
            raise

    def _usable(self, quotes: list[Quote], key: PriceKey) -> list[Quote]:
        return self._validator.screen(quotes, key=key, now=self._clock()).usable

    def _cache_hit(self, entry: CacheEntry) -> ConsensusQuote:
        cached = entry.value
        return replace(
            cached,
            method=ResolutionMethod.CACHE_HIT,
            confidence=min(cached.confidence, self._policy.cache_hit_confidence_cap),
        )

    def _finish(self, key: PriceKey, quote: ConsensusQuote) -> ConsensusQuote:
        price_resolutions_total.labels(
            asset=key.asset.value,
            currency=key.currency.value,
            method=quote.method.value,
        ).inc()
        emit_price_resolved(key=key.label, quote=quote)
        return quote
