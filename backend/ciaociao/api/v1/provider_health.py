from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request

from ciaociao.api.deps import get_price_service
from ciaociao.api.response import envelope
from ciaociao.schemas.pricing import ProviderStateOut
from ciaociao.services.price_service import PriceService


router = APIRouter(prefix="/provider-health", tags=["provider-health"])


@router.get("")
def provider_health(request: Request, service: PriceService = Depends(get_price_service)) -> dict:
    providers = [ProviderStateOut.model_validate(state).model_dump(mode="json") for state in service.provider_states()]
    return envelope(
        request,
        {
            "generated_at": datetime.now(UTC).isoformat(),
            "providers": providers,
        },
    )
