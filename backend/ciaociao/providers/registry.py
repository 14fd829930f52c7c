from __future__ import annotations

import logging
import threading
from typing import Iterable

import httpx

from ciaociao.core.config import Settings
from ciaociao.core.metrics import observe_circuit_state
from ciaociao.observability.events import emit_circuit_transition
from ciaociao.providers.banxico import BanxicoProvider
from ciaociao.providers.base import PriceProvider
from ciaociao.providers.circuit_breaker import CircuitBreaker
from ciaociao.providers.errors import ProviderError, ProviderHttpStatusError
from ciaociao.providers.exchangerate_api import ExchangeRateApiProvider
from ciaociao.providers.execution_types import CircuitState, ProviderState
from ciaociao.providers.freecurrencyapi import FreeCurrencyApiProvider
from ciaociao.providers.goldapi import GoldApiProvider
from ciaociao.providers.metalpriceapi import MetalpriceApiProvider
from ciaociao.providers.metals_dev import MetalsDevProvider
from ciaociao.providers.open_er_api import OpenErApiProvider
from ciaociao.providers.rate_limiter import RateLimiter
from ciaociao.services.price_engine.schemas import PriceKey


logger = logging.getLogger("ciaociao.providers")


class ProviderSlot:
    """A provider together with the circuit breaker and quota that gate it.

    Every read or write of breaker/limiter state goes through this slot's
    lock, so concurrent requests see a serialized view per provider.
    """

    def __init__(self, provider: PriceProvider, *, breaker: CircuitBreaker, limiter: RateLimiter) -> None:
        self.provider = provider
        self.breaker = breaker
        self.limiter = limiter
        self._lock = threading.Lock()
        if not provider.is_configured:
            breaker.disable()

    @property
    def source_id(self) -> str:
        return self.provider.source_id

    def supports(self, key: PriceKey) -> bool:
        return self.provider.supports(key)

    def admit(self, *, now: float | None = None) -> None:
        with self._lock:
            prior = self.breaker.state(now=now)
            self.breaker.before_call(now=now)
            try:
                self.limiter.try_acquire(now=now)
            except ProviderError:
                self.breaker.release_probe()
                raise
            finally:
                self._observe_transition(prior, now=now)

    def record_success(self) -> None:
        with self._lock:
            prior = self.breaker.state()
            self.breaker.record_success()
            self._observe_transition(prior)

    def record_failure(self, error: ProviderError, *, now: float | None = None) -> None:
        with self._lock:
            prior = self.breaker.state(now=now)
            self.breaker.record_failure(now=now)
            if isinstance(error, ProviderHttpStatusError) and error.status_code == 429:
                self.limiter.exhaust(now=now)
            self._observe_transition(prior, now=now)

    def record_cancelled(self) -> None:
        with self._lock:
            self.breaker.release_probe()

    def snapshot(self, *, now: float | None = None) -> ProviderState:
        with self._lock:
            breaker = self.breaker.snapshot(now=now)
            quota = self.limiter.snapshot()
        return ProviderState(
            source_id=self.source_id,
            enabled=not self.breaker.disabled,
            circuit_state=breaker.state,
            consecutive_failures=breaker.consecutive_failures,
            last_failure_at=breaker.last_failure_at,
            cooldown_until=breaker.cooldown_until,
            quota_window_start=quota.quota_window_start,
            requests_in_window=quota.requests_in_window,
            quota_limit=quota.limit,
        )

    def _observe_transition(self, prior: CircuitState, *, now: float | None = None) -> None:
        current = self.breaker.state(now=now)
        if current != prior:
            emit_circuit_transition(
                source_id=self.source_id,
                prior_state=prior.value,
                new_state=current.value,
                cooldown_until=self.breaker.snapshot(now=now).cooldown_until,
            )
        observe_circuit_state(self.source_id, current.value)


class ProviderRegistry:
    def __init__(self, slots: Iterable[ProviderSlot]) -> None:
        self._slots: dict[str, ProviderSlot] = {}
        for slot in slots:
            if slot.source_id in self._slots:
                raise ValueError(f"duplicate provider source_id {slot.source_id!r}")
            self._slots[slot.source_id] = slot

    def __iter__(self):
        return iter(self._slots.values())

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, source_id: str) -> ProviderSlot:
        return self._slots[source_id]

    def for_key(self, key: PriceKey) -> list[ProviderSlot]:
        return [slot for slot in self._slots.values() if slot.supports(key)]

    def snapshot(self, *, now: float | None = None) -> list[ProviderState]:
        return [slot.snapshot(now=now) for slot in self._slots.values()]


PROVIDER_CLASSES: tuple[type[PriceProvider], ...] = (
    MetalpriceApiProvider,
    MetalsDevProvider,
    GoldApiProvider,
    ExchangeRateApiProvider,
    OpenErApiProvider,
    FreeCurrencyApiProvider,
    BanxicoProvider,
)

_CREDENTIAL_FIELDS = {
    MetalpriceApiProvider.source_id: "metalpriceapi_key",
    MetalsDevProvider.source_id: "metalsdev_key",
    GoldApiProvider.source_id: "goldapi_key",
    FreeCurrencyApiProvider.source_id: "freecurrencyapi_key",
    BanxicoProvider.source_id: "banxico_token",
}


def build_slot(provider: PriceProvider, settings: Settings) -> ProviderSlot:
    limit = settings.provider_rate_limits.get(provider.source_id, settings.rate_limit_requests_per_window)
    return ProviderSlot(
        provider,
        breaker=CircuitBreaker(
            failure_threshold=settings.breaker_failure_threshold,
            reset_timeout=settings.breaker_cooldown_seconds,
            backoff_multiplier=settings.breaker_backoff_multiplier,
            max_reset_timeout=settings.breaker_max_cooldown_seconds,
        ),
        limiter=RateLimiter.per_window(limit=limit, window_seconds=settings.rate_limit_window_seconds),
    )


def build_provider_registry(settings: Settings, client: httpx.AsyncClient) -> ProviderRegistry:
    slots = []
    for provider_class in PROVIDER_CLASSES:
        field_name = _CREDENTIAL_FIELDS.get(provider_class.source_id)
        api_key = getattr(settings, field_name) if field_name else ""
        provider = provider_class(client=client, api_key=api_key, timeout_seconds=settings.provider_timeout_seconds)
        if not provider.is_configured:
            logger.warning("Provider %s disabled: %s is not set.", provider.source_id, field_name.upper())
        slots.append(build_slot(provider, settings))
    return ProviderRegistry(slots)
