from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from ciaociao.providers.base import PriceProvider, positive_decimal
from ciaociao.providers.errors import ProviderResponseFormatError
from ciaociao.services.price_engine.schemas import Currency, PriceKey, Quote


FIX_SERIES_ID = "SF43718"
_SUPPORTED = {
    PriceKey(Currency.USD, Currency.MXN),
    PriceKey(Currency.MXN, Currency.USD),
}


class BanxicoProvider(PriceProvider):
    """Banco de México SIE API, official USD/MXN FIX rate.

    Only quotes MXN per USD; the reverse pair is the reciprocal.
    """

    source_id = "banxico"
    base_url = "https://www.banxico.org.mx/SieAPIRest/service/v1"

    def supports(self, key: PriceKey) -> bool:
        return key in _SUPPORTED

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        body = await self._get_json(
            f"series/{FIX_SERIES_ID}/datos/oportuno",
            headers={"Bmx-Token": self._api_key, "Accept": "application/json"},
        )
        try:
            series = body["bmx"]["series"]
            row = next(item for item in series if item.get("idSerie") == FIX_SERIES_ID)
            latest = row["datos"][-1]
            raw_rate, raw_date = latest["dato"], latest.get("fecha")
        except (KeyError, IndexError, TypeError, StopIteration, AttributeError) as exc:
            raise ProviderResponseFormatError("banxico response has no data for the FIX series.", upstream_payload=body) from exc

        mxn_per_usd = positive_decimal(str(raw_rate).replace(",", ""), source_id=self.source_id)
        value = mxn_per_usd if key.asset == Currency.USD else Decimal(1) / mxn_per_usd
        return self._quote(key, value, _parse_fecha(raw_date))


def _parse_fecha(raw_value: object) -> datetime | None:
    if not isinstance(raw_value, str):
        return None
    try:
        # FIX is published for the whole banking day; noon Mexico City is close to 18:00 UTC
        return datetime.strptime(raw_value.strip(), "%d/%m/%Y").replace(hour=18, tzinfo=UTC)
    except ValueError:
        return None
