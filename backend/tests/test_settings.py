from decimal import Decimal

import pytest
from pydantic import ValidationError

from ciaociao.core.config import Settings, get_settings
from ciaociao.services.price_engine.policy import ResolutionPolicy
from ciaociao.services.price_engine.schemas import Currency, PriceKey


def test_defaults_match_resolution_policy_defaults() -> None:
    policy = ResolutionPolicy.from_settings(Settings(_env_file=None))
    defaults = ResolutionPolicy()

    assert policy.metal_tolerance == defaults.metal_tolerance
    assert policy.fx_tolerance == defaults.fx_tolerance
    assert policy.metal_ttl == defaults.metal_ttl
    assert policy.fx_ttl == defaults.fx_ttl
    assert policy.quorum_size == 2
    assert policy.call_timeout_seconds == 4.0


def test_usd_mxn_bounds_include_inverse_pair() -> None:
    policy = ResolutionPolicy.from_settings(Settings(_env_file=None, usd_mxn_min_rate=16, usd_mxn_max_rate=20))
    low, high = policy.bounds_for(PriceKey(Currency.MXN, Currency.USD))
    assert low == Decimal("0.05")
    assert high == Decimal("0.0625")


def test_settings_read_credentials_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('BANXICO_TOKEN', 'token-from-env')
    monkeypatch.setenv('PROVIDER_RATE_LIMITS', '{"goldapi": 3}')
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.banxico_token == 'token-from-env'
    assert settings.provider_rate_limits == {'goldapi': 3}


def test_inverted_confidence_settings_are_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None, fallback_confidence_ceiling=0.7, single_source_confidence=0.6)
    assert 'FALLBACK_CONFIDENCE_CEILING' in str(exc_info.value)


def test_inverted_usd_mxn_bounds_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, usd_mxn_min_rate=25, usd_mxn_max_rate=15)


def test_cache_hit_confidence_cap_must_stay_below_one() -> None:
    assert ResolutionPolicy.from_settings(Settings(_env_file=None)).cache_hit_confidence_cap == 0.95
    with pytest.raises(ValidationError):
        Settings(_env_file=None, cache_hit_confidence_cap=1.0)
