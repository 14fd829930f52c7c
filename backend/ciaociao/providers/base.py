from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from ciaociao.providers.errors import (
    ProviderAuthError,
    ProviderConnectionError,
    ProviderHttpStatusError,
    ProviderResponseFormatError,
    ProviderTimeoutError,
)
from ciaociao.services.price_engine.schemas import Asset, Currency, Metal, PriceKey, Quote, Unit


class PriceProvider(ABC):
    """One external price or FX source normalized into ``Quote`` objects.

    Subclasses implement ``supports`` and ``_fetch_impl``; everything that
    can go wrong on the wire surfaces as a ``ProviderError`` subclass.
    """

    source_id: str = ""
    base_url: str = ""
    requires_credentials: bool = True

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        api_key: str = "",
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._client = client
        self._api_key = api_key.strip()
        self._base_url = (base_url or self.base_url).rstrip("/")
        self._timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key) or not self.requires_credentials

    @abstractmethod
    def supports(self, key: PriceKey) -> bool:
        raise NotImplementedError

    async def fetch(self, asset: Asset, currency: Currency) -> Quote:
        key = PriceKey(asset, currency)
        if not self.supports(key):
            raise ValueError(f"{self.source_id} does not quote {key.label}")
        return await self._fetch_impl(key)

    @abstractmethod
    async def _fetch_impl(self, key: PriceKey) -> Quote:
        raise NotImplementedError

    async def _get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            response = await self._client.get(
                url,
                params=params,
                headers=headers,
                timeout=self._timeout_seconds if self._timeout_seconds is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"{self.source_id} request timed out.") from exc
        except httpx.HTTPError as exc:
            raise ProviderConnectionError(f"{self.source_id} connection failed: {exc.__class__.__name__}.") from exc

        if response.status_code >= 400:
            body = _safe_json(response)
            if response.status_code in {401, 403}:
                raise ProviderAuthError(
                    f"{self.source_id} rejected credentials with status {response.status_code}.",
                    upstream_payload=body,
                )
            raise ProviderHttpStatusError(response.status_code, upstream_payload=body)

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderResponseFormatError(f"{self.source_id} response is not valid JSON.") from exc
        if not isinstance(body, dict):
            raise ProviderResponseFormatError(f"{self.source_id} response must be a JSON object.")
        return body

    def _quote(self, key: PriceKey, raw_value: Any, observed_at: datetime | None = None) -> Quote:
        value = positive_decimal(raw_value, source_id=self.source_id)
        return Quote(
            asset=key.asset,
            currency=key.currency,
            unit=Unit.TROY_OUNCE if isinstance(key.asset, Metal) else None,
            value=value,
            observed_at=observed_at or datetime.now(UTC),
            source_id=self.source_id,
        )


def positive_decimal(raw_value: Any, *, source_id: str) -> Decimal:
    if isinstance(raw_value, bool) or raw_value is None:
        raise ProviderResponseFormatError(f"{source_id} response is missing a numeric price.")
    try:
        value = Decimal(str(raw_value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ProviderResponseFormatError(f"{source_id} price {raw_value!r} is not numeric.") from exc
    if not value.is_finite() or value <= 0:
        raise ProviderResponseFormatError(f"{source_id} price {raw_value!r} is not a positive number.")
    return value


def epoch_to_datetime(raw_value: Any) -> datetime | None:
    if raw_value is None or isinstance(raw_value, bool):
        return None
    try:
        return datetime.fromtimestamp(float(raw_value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def iso_to_datetime(raw_value: Any) -> datetime | None:
    if not isinstance(raw_value, str) or not raw_value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(raw_value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _safe_json(response: httpx.Response) -> dict[str, Any] | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def rate_from_table(rates: Any, currency: Currency, *, source_id: str) -> Decimal:
    if not isinstance(rates, dict):
        raise ProviderResponseFormatError(f"{source_id} response has no rates object.")
    if currency.value not in rates:
        raise ProviderResponseFormatError(f"{source_id} response has no rate for {currency.value}.")
    return positive_decimal(rates[currency.value], source_id=source_id)
