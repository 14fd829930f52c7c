from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from ciaociao.services.price_engine.errors import AllSourcesExhaustedError
from ciaociao.services.price_engine.schemas import ConsensusQuote, PriceKey, ResolutionMethod


SINGLE_POINT_WEIGHT = 0.4
TWO_POINT_WEIGHT = 0.7
REGRESSION_WEIGHT = 0.9
DAILY_CONFIDENCE_DECAY = 0.02
MIN_AGE_FACTOR = 0.5
MAX_DRIFT_RATIO = Decimal("0.10")
FALLBACK_SOURCE_ID = "fallback"


def _seconds_axis(history: Sequence[ConsensusQuote]) -> list[Decimal]:
    start = history[0].observed_at
    return [Decimal(str((point.observed_at - start).total_seconds())) for point in history]


def _least_squares(xs: Sequence[Decimal], ys: Sequence[Decimal]) -> tuple[Decimal, Decimal]:
    mean_x = sum(xs) / len(xs)
    mean_y = sum(ys) / len(ys)
    denom = sum((x - mean_x) ** 2 for x in xs)
    if denom == 0:
        return Decimal(0), mean_y
    slope = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys, strict=True)) / denom
    return slope, mean_y - slope * mean_x


def _age_factor(last_observed_at: datetime, now: datetime) -> float:
    age_days = max(0.0, (now - last_observed_at).total_seconds() / 86400.0)
    return max(MIN_AGE_FACTOR, 1.0 - DAILY_CONFIDENCE_DECAY * age_days)


def _fallback_confidence(weight: float, ceiling: float, age_factor: float) -> float:
    # strictly below the ceiling even when weight * age_factor rounds up
    return min(round(ceiling * weight * age_factor, 4), ceiling * 0.99)


def estimate_from_history(
    history: Sequence[ConsensusQuote],
    *,
    key: PriceKey,
    now: datetime,
    confidence_ceiling: float,
) -> ConsensusQuote:
    """Best-effort estimate for ``key`` from previously accepted quotes.

    History must be ordered oldest first. A single point is returned as-is
    and flagged stale; two or more points are extrapolated along a
    least-squares line by at most one mean sampling step past the last
    point. Raises ``AllSourcesExhaustedError`` when history is empty.
    """
    if not history:
        raise AllSourcesExhaustedError(key)

    last = history[-1]
    age_factor = _age_factor(last.observed_at, now)

    if len(history) == 1:
        return replace(
            last,
            method=ResolutionMethod.FALLBACK_INTERPOLATED,
            confidence=_fallback_confidence(SINGLE_POINT_WEIGHT, confidence_ceiling, age_factor),
            stale=True,
        )

    xs = _seconds_axis(history)
    ys = [point.value for point in history]
    slope, intercept = _least_squares(xs, ys)

    mean_step = (xs[-1] - xs[0]) / (len(xs) - 1)
    elapsed = Decimal(str(max(0.0, (now - last.observed_at).total_seconds())))
    target_x = xs[-1] + min(elapsed, mean_step)
    estimate = intercept + slope * target_x

    max_drift = last.value * MAX_DRIFT_RATIO
    estimate = min(max(estimate, last.value - max_drift), last.value + max_drift)
    if estimate <= 0:
        estimate = last.value

    weight = TWO_POINT_WEIGHT if len(history) == 2 else REGRESSION_WEIGHT
    return ConsensusQuote(
        asset=last.asset,
        currency=last.currency,
        unit=last.unit,
        value=estimate,
        observed_at=now,
        source_id=FALLBACK_SOURCE_ID,
        confidence=_fallback_confidence(weight, confidence_ceiling, age_factor),
        contributing_sources=len(history),
        method=ResolutionMethod.FALLBACK_INTERPOLATED,
        sources=tuple(dict.fromkeys(source for point in history for source in point.sources)),
        stale=True,
    )
