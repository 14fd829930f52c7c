from __future__ import annotations

from ciaociao.providers.base import PriceProvider, epoch_to_datetime
from ciaociao.providers.errors import ProviderResponseFormatError
from ciaociao.services.price_engine.schemas import Metal, PriceKey, Quote


class GoldApiProvider(PriceProvider):
    source_id = "goldapi"
    base_url = "https://www.goldapi.io/api"

    def supports(self, key: PriceKey) -> bool:
        return isinstance(key.asset, Metal)

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        body = await self._get_json(
            f"{key.asset.value}/{key.currency.value}",
            headers={"x-access-token": self._api_key, "Content-Type": "application/json"},
        )
        if body.get("error"):
            raise ProviderResponseFormatError(str(body["error"]), upstream_payload=body)
        if body.get("metal") not in (None, key.asset.value) or body.get("currency") not in (None, key.currency.value):
            raise ProviderResponseFormatError("goldapi answered for a different symbol pair.", upstream_payload=body)
        # timestamp is in milliseconds on current plans, seconds on legacy ones
        raw_timestamp = body.get("timestamp")
        if isinstance(raw_timestamp, int | float) and raw_timestamp > 10**11:
            raw_timestamp = raw_timestamp / 1000
        return self._quote(key, body.get("price"), epoch_to_datetime(raw_timestamp))
