from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import Sequence

from ciaociao.observability.events import emit_quotes_rejected
from ciaociao.services.price_engine.errors import NoLiveDataError, ValidationRejectedError
from ciaociao.services.price_engine.policy import ResolutionPolicy
from ciaociao.services.price_engine.schemas import ConsensusQuote, PriceKey, Quote, ResolutionMethod


logger = logging.getLogger("ciaociao.pricing.validator")

CONSENSUS_SOURCE_ID = "consensus"


def median(values: Sequence[Decimal]) -> Decimal:
    if not values:
        raise ValueError("median of an empty sequence")
    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) / 2


def deviation(value: Decimal, reference: Decimal) -> Decimal:
    return abs(value - reference) / reference


def split_outliers(quotes: Sequence[Quote], tolerance: Decimal) -> tuple[list[Quote], list[Quote], Decimal]:
    center = median([quote.value for quote in quotes])
    survivors = [quote for quote in quotes if deviation(quote.value, center) <= tolerance]
    outliers = [quote for quote in quotes if deviation(quote.value, center) > tolerance]
    return survivors, outliers, center


def quorum_reached(quotes: Sequence[Quote], *, tolerance: Decimal, quorum: int) -> bool:
    if len(quotes) < quorum:
        return False
    survivors, _, _ = split_outliers(quotes, tolerance)
    return len(survivors) >= quorum


@dataclass(frozen=True)
class ScreenedQuotes:
    usable: list[Quote]
    stale: list[Quote]
    implausible: list[Quote]


class CrossSourceValidator:
    def __init__(self, policy: ResolutionPolicy) -> None:
        self._policy = policy

    def screen(self, quotes: Sequence[Quote], *, key: PriceKey, now: datetime) -> ScreenedQuotes:
        max_age = self._policy.max_quote_age_for(key)
        bounds = self._policy.bounds_for(key)
        usable: list[Quote] = []
        stale: list[Quote] = []
        implausible: list[Quote] = []
        for quote in quotes:
            if now - quote.observed_at > max_age:
                stale.append(quote)
            elif bounds is not None and not bounds[0] <= quote.value <= bounds[1]:
                implausible.append(quote)
            else:
                usable.append(quote)
        return ScreenedQuotes(usable=usable, stale=stale, implausible=implausible)

    def validate(self, quotes: Sequence[Quote], *, key: PriceKey, now: datetime) -> ConsensusQuote:
        screened = self.screen(quotes, key=key, now=now)
        if screened.stale:
            logger.info(
                "Dropped %d stale quote(s) for %s: %s",
                len(screened.stale),
                key.label,
                ", ".join(quote.source_id for quote in screened.stale),
            )
        if screened.implausible:
            emit_quotes_rejected(key=key.label, reason="implausible", quotes=screened.implausible)
        if not screened.usable:
            if screened.implausible:
                raise ValidationRejectedError(screened.implausible)
            raise NoLiveDataError(f"No fresh live quotes for {key.label}.")

        usable = screened.usable
        if len(usable) == 1:
            return self._build(usable, usable[0].value, confidence=self._policy.single_source_confidence)

        survivors, outliers, _ = split_outliers(usable, self._policy.tolerance_for(key))
        if outliers:
            emit_quotes_rejected(key=key.label, reason="outlier", quotes=outliers)
        if not survivors:
            raise ValidationRejectedError(outliers + screened.implausible)

        total = len(usable) + len(screened.implausible)
        confidence = self._confidence(survivors=len(survivors), total=total)
        return self._build(survivors, median([quote.value for quote in survivors]), confidence=confidence)

    def _confidence(self, *, survivors: int, total: int) -> float:
        ratio = survivors / total
        confidence = 0.5 + 0.5 * ratio
        if survivors < 2:
            confidence = min(confidence, self._policy.single_source_confidence) - self._policy.survivor_penalty
        return round(max(self._policy.live_confidence_floor, min(1.0, confidence)), 4)

    def _build(self, contributors: Sequence[Quote], value: Decimal, *, confidence: float) -> ConsensusQuote:
        first = contributors[0]
        sources = tuple(quote.source_id for quote in contributors)
        return ConsensusQuote(
            asset=first.asset,
            currency=first.currency,
            unit=first.unit,
            value=value,
            observed_at=max(quote.observed_at for quote in contributors),
            source_id=sources[0] if len(sources) == 1 else CONSENSUS_SOURCE_ID,
            confidence=confidence,
            contributing_sources=len(contributors),
            method=ResolutionMethod.LIVE_CONSENSUS,
            sources=sources,
        )
