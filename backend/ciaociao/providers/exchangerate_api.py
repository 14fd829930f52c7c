from __future__ import annotations

from ciaociao.providers.base import PriceProvider, epoch_to_datetime, rate_from_table
from ciaociao.providers.errors import ProviderResponseFormatError
from ciaociao.services.price_engine.schemas import PriceKey, Quote


class ExchangeRateApiProvider(PriceProvider):
    source_id = "exchangerate_api"
    base_url = "https://api.exchangerate-api.com/v4"
    requires_credentials = False

    def supports(self, key: PriceKey) -> bool:
        return key.is_fx and key.asset != key.currency

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        body = await self._get_json(f"latest/{key.asset.value}")
        if body.get("base") not in (None, key.asset.value):
            raise ProviderResponseFormatError(
                f"exchangerate-api answered for base {body.get('base')}.",
                upstream_payload=body,
            )
        rate = rate_from_table(body.get("rates"), key.currency, source_id=self.source_id)
        return self._quote(key, rate, epoch_to_datetime(body.get("time_last_updated")))
