from ciaociao.services.price_engine.errors import (
    AllSourcesExhaustedError,
    NoLiveDataError,
    PriceResolutionError,
    ValidationRejectedError,
)
from ciaociao.services.price_engine.schemas import (
    ConsensusQuote,
    Currency,
    Metal,
    PriceKey,
    Quote,
    ResolutionMethod,
    Unit,
)

__all__ = [
    "AllSourcesExhaustedError",
    "ConsensusQuote",
    "Currency",
    "Metal",
    "NoLiveDataError",
    "PriceKey",
    "PriceResolutionError",
    "Quote",
    "ResolutionMethod",
    "Unit",
    "ValidationRejectedError",
]
