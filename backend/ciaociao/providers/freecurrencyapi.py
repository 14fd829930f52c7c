from __future__ import annotations

from ciaociao.providers.base import PriceProvider, rate_from_table
from ciaociao.services.price_engine.schemas import PriceKey, Quote


class FreeCurrencyApiProvider(PriceProvider):
    """freecurrencyapi.com; the payload carries no as-of time, so the fetch time is used."""

    source_id = "freecurrencyapi"
    base_url = "https://api.freecurrencyapi.com/v1"

    def supports(self, key: PriceKey) -> bool:
        return key.is_fx and key.asset != key.currency

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        body = await self._get_json(
            "latest",
            params={
                "apikey": self._api_key,
                "base_currency": key.asset.value,
                "currencies": key.currency.value,
            },
        )
        rate = rate_from_table(body.get("data"), key.currency, source_id=self.source_id)
        return self._quote(key, rate)
