from __future__ import annotations

from ciaociao.providers.base import PriceProvider, iso_to_datetime
from ciaociao.providers.errors import ProviderAuthError, ProviderHttpStatusError, ProviderResponseFormatError
from ciaociao.services.price_engine.schemas import Metal, PriceKey, Quote


_INVALID_KEY_CODES = {1101, 1102, 1103}
_QUOTA_CODES = {1201, 1202, 1203}


class MetalsDevProvider(PriceProvider):
    source_id = "metalsdev"
    base_url = "https://api.metals.dev/v1"

    def supports(self, key: PriceKey) -> bool:
        return isinstance(key.asset, Metal)

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        body = await self._get_json(
            "latest",
            params={"api_key": self._api_key, "currency": key.currency.value, "unit": "toz"},
        )
        if body.get("status") != "success":
            code = body.get("error_code")
            message = str(body.get("error_message") or "metals.dev reported a failure.")
            if code in _INVALID_KEY_CODES:
                raise ProviderAuthError(message, upstream_payload=body)
            if code in _QUOTA_CODES:
                raise ProviderHttpStatusError(429, message, upstream_payload=body)
            raise ProviderResponseFormatError(message, upstream_payload=body)

        if body.get("currency") not in (None, key.currency.value):
            raise ProviderResponseFormatError(
                f"metals.dev answered in {body.get('currency')} instead of {key.currency.value}.",
                upstream_payload=body,
            )
        metals = body.get("metals")
        if not isinstance(metals, dict):
            raise ProviderResponseFormatError("metals.dev response has no metals object.", upstream_payload=body)

        timestamps = body.get("timestamps") if isinstance(body.get("timestamps"), dict) else {}
        return self._quote(key, metals.get(key.asset.label), iso_to_datetime(timestamps.get("metal")))
