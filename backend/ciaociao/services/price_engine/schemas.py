from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


TROY_OUNCE_IN_GRAMS = Decimal("31.1034768")


class Metal(str, Enum):
    GOLD = "XAU"
    SILVER = "XAG"
    PLATINUM = "XPT"
    PALLADIUM = "XPD"

    @property
    def label(self) -> str:
        return self.name.lower()


class Currency(str, Enum):
    USD = "USD"
    MXN = "MXN"


class Unit(str, Enum):
    TROY_OUNCE = "troy_ounce"
    GRAM = "gram"


class ResolutionMethod(str, Enum):
    LIVE_CONSENSUS = "live_consensus"
    CACHE_HIT = "cache_hit"
    FALLBACK_INTERPOLATED = "fallback_interpolated"


Asset = Metal | Currency


@dataclass(frozen=True)
class PriceKey:
    asset: Asset
    currency: Currency

    @property
    def is_fx(self) -> bool:
        return isinstance(self.asset, Currency)

    @property
    def label(self) -> str:
        return f"{self.asset.value}/{self.currency.value}"


@dataclass(frozen=True)
class Quote:
    asset: Asset
    currency: Currency
    value: Decimal
    observed_at: datetime
    source_id: str
    unit: Unit | None = Unit.TROY_OUNCE

    def __post_init__(self) -> None:
        if self.value <= 0:
            raise ValueError(f"quote value must be positive, got {self.value}")
        if self.observed_at.tzinfo is None:
            raise ValueError("observed_at must be timezone-aware")

    @property
    def key(self) -> PriceKey:
        return PriceKey(self.asset, self.currency)


@dataclass(frozen=True)
class ConsensusQuote:
    asset: Asset
    currency: Currency
    value: Decimal
    observed_at: datetime
    source_id: str
    confidence: float
    contributing_sources: int
    method: ResolutionMethod
    unit: Unit | None = Unit.TROY_OUNCE
    sources: tuple[str, ...] = ()
    stale: bool = False

    def __post_init__(self) -> None:
        if self.value <= 0:
            raise ValueError(f"consensus value must be positive, got {self.value}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def key(self) -> PriceKey:
        return PriceKey(self.asset, self.currency)
