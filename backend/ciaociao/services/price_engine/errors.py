from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ciaociao.services.price_engine.schemas import PriceKey, Quote


class PriceResolutionError(Exception):
    code = "price_resolution_failed"


class NoLiveDataError(PriceResolutionError):
    code = "no_live_data"

    def __init__(self, message: str = "No usable live quotes were obtained.") -> None:
        super().__init__(message)


class ValidationRejectedError(PriceResolutionError):
    code = "validation_rejected"

    def __init__(self, outliers: "list[Quote]", message: str | None = None) -> None:
        super().__init__(message or f"All {len(outliers)} live quotes were rejected as outliers.")
        self.outliers = outliers


class AllSourcesExhaustedError(PriceResolutionError):
    code = "all_sources_exhausted"

    def __init__(self, key: "PriceKey", message: str | None = None) -> None:
        super().__init__(message or f"No live data and no usable history for {key.label}.")
        self.key = key
