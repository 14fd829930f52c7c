from __future__ import annotations

from ciaociao.providers.base import PriceProvider, epoch_to_datetime, rate_from_table
from ciaociao.providers.errors import ProviderHttpStatusError, ProviderResponseFormatError
from ciaociao.services.price_engine.schemas import PriceKey, Quote


class OpenErApiProvider(PriceProvider):
    source_id = "open_er_api"
    base_url = "https://open.er-api.com/v6"
    requires_credentials = False

    def supports(self, key: PriceKey) -> bool:
        return key.is_fx and key.asset != key.currency

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        body = await self._get_json(f"latest/{key.asset.value}")
        if body.get("result") != "success":
            error_type = str(body.get("error-type") or "unknown-error")
            if error_type == "rate-limited":
                raise ProviderHttpStatusError(429, "open.er-api rate limited the request.", upstream_payload=body)
            raise ProviderResponseFormatError(f"open.er-api reported {error_type}.", upstream_payload=body)
        rate = rate_from_table(body.get("rates"), key.currency, source_id=self.source_id)
        return self._quote(key, rate, epoch_to_datetime(body.get("time_last_update_unix")))
