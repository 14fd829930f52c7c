import asyncio
from decimal import Decimal

import pytest

from ciaociao.providers.errors import ProviderConnectionError
from ciaociao.services.price_engine.errors import AllSourcesExhaustedError
from ciaociao.services.price_engine.schemas import Currency, Metal, ResolutionMethod, Unit
from ciaociao.services.price_service import PriceService

from conftest import GOLD_MXN, GOLD_USD, USD_MXN, ScriptedProvider, make_orchestrator


def _service(providers) -> PriceService:
    return PriceService(make_orchestrator(providers), request_timeout_seconds=8.0)


def test_price_per_gram_divides_by_troy_ounce_weight() -> None:
    service = _service([ScriptedProvider("goldapi", {GOLD_USD: "3110.34768"})])

    quote = asyncio.run(service.get_price(Metal.GOLD, Currency.USD, Unit.GRAM))

    assert quote.unit == Unit.GRAM
    assert quote.value == Decimal("100")


def test_mxn_price_is_derived_from_usd_price_and_fx_rate() -> None:
    service = _service(
        [
            ScriptedProvider("metalpriceapi", {GOLD_USD: "2000", GOLD_MXN: ProviderConnectionError()}),
            ScriptedProvider("goldapi", {GOLD_USD: "2000"}),
            ScriptedProvider("banxico", {USD_MXN: "17.5"}),
            ScriptedProvider("open_er_api", {USD_MXN: "17.5"}),
        ]
    )

    quote = asyncio.run(service.get_price(Metal.GOLD, Currency.MXN))

    assert quote.currency == Currency.MXN
    assert quote.value == Decimal("35000")
    assert quote.source_id == "derived"
    assert quote.method == ResolutionMethod.LIVE_CONSENSUS
    assert quote.confidence == pytest.approx(0.95)
    assert set(quote.sources) == {"metalpriceapi", "goldapi", "banxico", "open_er_api"}


def test_derivation_failure_reports_the_requested_key() -> None:
    service = _service([ScriptedProvider("goldapi", {GOLD_USD: "2000"})])

    with pytest.raises(AllSourcesExhaustedError) as exc_info:
        asyncio.run(service.get_price(Metal.GOLD, Currency.MXN))
    assert exc_info.value.key == GOLD_MXN


def test_usd_exhaustion_is_not_derived() -> None:
    provider = ScriptedProvider("goldapi", {GOLD_USD: ProviderConnectionError()})
    service = _service([provider])

    with pytest.raises(AllSourcesExhaustedError):
        asyncio.run(service.get_price(Metal.GOLD))
    assert len(provider.calls) == 1


def test_exchange_rate_and_same_currency_guard() -> None:
    service = _service([ScriptedProvider("banxico", {USD_MXN: "17.25"})])

    rate = asyncio.run(service.get_exchange_rate(Currency.USD, Currency.MXN))
    assert rate.value == Decimal("17.25")
    assert rate.unit is None
    with pytest.raises(ValueError):
        asyncio.run(service.get_exchange_rate(Currency.USD, Currency.USD))


def test_provider_states_cover_every_registered_provider() -> None:
    service = _service([ScriptedProvider("goldapi", {GOLD_USD: "1"}), ScriptedProvider("banxico", {USD_MXN: "17"})])
    assert [state.source_id for state in service.provider_states()] == ["goldapi", "banxico"]
