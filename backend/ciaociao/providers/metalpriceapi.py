from __future__ import annotations

from decimal import Decimal

from ciaociao.providers.base import PriceProvider, epoch_to_datetime, positive_decimal
from ciaociao.providers.errors import ProviderAuthError, ProviderHttpStatusError, ProviderResponseFormatError
from ciaociao.services.price_engine.schemas import Metal, PriceKey, Quote


class MetalpriceApiProvider(PriceProvider):
    """metalpriceapi.com ``/latest``; rates are quoted as metal per currency unit."""

    source_id = "metalpriceapi"
    base_url = "https://api.metalpriceapi.com/v1"

    def supports(self, key: PriceKey) -> bool:
        return isinstance(key.asset, Metal)

    async def _fetch_impl(self, key: PriceKey) -> Quote:
        symbol = key.asset.value
        body = await self._get_json(
            "latest",
            params={"api_key": self._api_key, "base": key.currency.value, "currencies": symbol},
        )
        if body.get("success") is False:
            _raise_for_api_error(body)

        rates = body.get("rates")
        if not isinstance(rates, dict):
            raise ProviderResponseFormatError("metalpriceapi response has no rates object.", upstream_payload=body)

        direct = rates.get(f"{key.currency.value}{symbol}")
        if direct is not None:
            price = direct
        elif rates.get(symbol) is not None:
            price = Decimal(1) / positive_decimal(rates[symbol], source_id=self.source_id)
        else:
            raise ProviderResponseFormatError(f"metalpriceapi response has no rate for {symbol}.", upstream_payload=body)

        return self._quote(key, price, epoch_to_datetime(body.get("timestamp")))


def _raise_for_api_error(body: dict) -> None:
    error = body.get("error") if isinstance(body.get("error"), dict) else {}
    status = error.get("statusCode")
    message = str(error.get("message") or "metalpriceapi reported an error.")
    if status in {101, 102, 401, 403}:
        raise ProviderAuthError(message, upstream_payload=body)
    if isinstance(status, int) and 400 <= status < 600:
        raise ProviderHttpStatusError(status, message, upstream_payload=body)
    raise ProviderResponseFormatError(message, upstream_payload=body)
