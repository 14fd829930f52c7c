from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from ciaociao.core.config import Settings
from ciaociao.services.price_engine.schemas import Currency, PriceKey


@dataclass(frozen=True)
class ResolutionPolicy:
    metal_tolerance: Decimal = Decimal("0.03")
    fx_tolerance: Decimal = Decimal("0.01")
    metal_ttl: timedelta = timedelta(seconds=60)
    fx_ttl: timedelta = timedelta(minutes=15)
    metal_max_quote_age: timedelta = timedelta(minutes=15)
    fx_max_quote_age: timedelta = timedelta(hours=48)
    quorum_size: int = 2
    single_source_confidence: float = 0.6
    survivor_penalty: float = 0.1
    fallback_confidence_ceiling: float = 0.5
    cache_hit_confidence_cap: float = 0.95
    prefer_cache: bool = True
    provider_timeout_seconds: float = 4.0
    request_timeout_seconds: float = 8.0
    plausibility_bounds: dict[PriceKey, tuple[Decimal, Decimal]] = field(default_factory=dict)

    @property
    def live_confidence_floor(self) -> float:
        return self.fallback_confidence_ceiling

    def tolerance_for(self, key: PriceKey) -> Decimal:
        return self.fx_tolerance if key.is_fx else self.metal_tolerance

    def ttl_for(self, key: PriceKey) -> timedelta:
        return self.fx_ttl if key.is_fx else self.metal_ttl

    def max_quote_age_for(self, key: PriceKey) -> timedelta:
        return self.fx_max_quote_age if key.is_fx else self.metal_max_quote_age

    def bounds_for(self, key: PriceKey) -> tuple[Decimal, Decimal] | None:
        return self.plausibility_bounds.get(key)

    @property
    def call_timeout_seconds(self) -> float:
        return min(self.provider_timeout_seconds, self.request_timeout_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolutionPolicy":
        usd_mxn_min = Decimal(str(settings.usd_mxn_min_rate))
        usd_mxn_max = Decimal(str(settings.usd_mxn_max_rate))
        return cls(
            metal_tolerance=Decimal(str(settings.metal_tolerance_ratio)),
            fx_tolerance=Decimal(str(settings.fx_tolerance_ratio)),
            metal_ttl=timedelta(seconds=settings.metal_cache_ttl_seconds),
            fx_ttl=timedelta(seconds=settings.fx_cache_ttl_seconds),
            metal_max_quote_age=timedelta(seconds=settings.metal_max_quote_age_seconds),
            fx_max_quote_age=timedelta(seconds=settings.fx_max_quote_age_seconds),
            quorum_size=settings.quorum_size,
            single_source_confidence=settings.single_source_confidence,
            fallback_confidence_ceiling=settings.fallback_confidence_ceiling,
            cache_hit_confidence_cap=settings.cache_hit_confidence_cap,
            prefer_cache=settings.prefer_cache,
            provider_timeout_seconds=settings.provider_timeout_seconds,
            request_timeout_seconds=settings.request_timeout_seconds,
            plausibility_bounds={
                PriceKey(Currency.USD, Currency.MXN): (usd_mxn_min, usd_mxn_max),
                PriceKey(Currency.MXN, Currency.USD): (1 / usd_mxn_max, 1 / usd_mxn_min),
            },
        )
