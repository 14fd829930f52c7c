from datetime import timedelta
from decimal import Decimal

import pytest

from ciaociao.services.price_engine.errors import AllSourcesExhaustedError
from ciaociao.services.price_engine.fallback import estimate_from_history
from ciaociao.services.price_engine.schemas import ResolutionMethod

from conftest import FIXED_NOW, GOLD_USD, hours_later, make_consensus


def test_two_points_extrapolate_one_step_forward() -> None:
    history = [make_consensus("1900", observed_at=FIXED_NOW), make_consensus("1920", observed_at=hours_later(1))]

    estimate = estimate_from_history(history, key=GOLD_USD, now=hours_later(2), confidence_ceiling=0.5)

    assert estimate.value == Decimal("1940")
    assert estimate.value >= Decimal("1920")
    assert estimate.method == ResolutionMethod.FALLBACK_INTERPOLATED
    assert estimate.stale is True
    assert estimate.confidence < 0.5
    assert estimate.source_id == "fallback"
    assert estimate.contributing_sources == 2


def test_extrapolation_never_runs_past_one_sampling_step() -> None:
    history = [make_consensus("1900", observed_at=FIXED_NOW), make_consensus("1920", observed_at=hours_later(1))]
    estimate = estimate_from_history(history, key=GOLD_USD, now=hours_later(10), confidence_ceiling=0.5)
    assert estimate.value == Decimal("1940")


def test_drift_is_clamped_to_ten_percent_of_last_value() -> None:
    history = [
        make_consensus("1000", observed_at=FIXED_NOW),
        make_consensus("1800", observed_at=hours_later(1)),
    ]
    estimate = estimate_from_history(history, key=GOLD_USD, now=hours_later(2), confidence_ceiling=0.5)
    assert estimate.value == Decimal("1980")


def test_single_point_is_returned_verbatim_and_flagged_stale() -> None:
    point = make_consensus("2900", observed_at=FIXED_NOW)
    estimate = estimate_from_history([point], key=GOLD_USD, now=hours_later(3), confidence_ceiling=0.5)

    assert estimate.value == point.value
    assert estimate.observed_at == point.observed_at
    assert estimate.stale is True
    assert estimate.method == ResolutionMethod.FALLBACK_INTERPOLATED
    assert 0 < estimate.confidence < 0.5


def test_confidence_decays_with_age_and_regression_outranks_single_point() -> None:
    history = [make_consensus(value, observed_at=hours_later(index)) for index, value in enumerate(["1", "2", "3"])]
    fresh = estimate_from_history(history, key=GOLD_USD, now=hours_later(3), confidence_ceiling=0.5)
    old = estimate_from_history(history, key=GOLD_USD, now=hours_later(2) + timedelta(days=10), confidence_ceiling=0.5)
    single = estimate_from_history(history[-1:], key=GOLD_USD, now=hours_later(3), confidence_ceiling=0.5)

    assert old.confidence < fresh.confidence
    assert single.confidence < fresh.confidence < 0.5


def test_empty_history_exhausts_sources() -> None:
    with pytest.raises(AllSourcesExhaustedError) as exc_info:
        estimate_from_history([], key=GOLD_USD, now=FIXED_NOW, confidence_ceiling=0.5)
    assert exc_info.value.key == GOLD_USD
    assert exc_info.value.code == "all_sources_exhausted"
