from fastapi import APIRouter, Depends, Request

from ciaociao.api.deps import get_price_service
from ciaociao.api.response import envelope
from ciaociao.providers.execution_types import CircuitState
from ciaociao.services.price_service import PriceService

router = APIRouter(tags=["ops"])


@router.get("/health")
def health(request: Request, service: PriceService = Depends(get_price_service)) -> dict:
    states = service.provider_states()
    available = [state for state in states if state.enabled and state.circuit_state != CircuitState.OPEN]
    return envelope(
        request,
        {
            "status": "ok" if available else "degraded",
            "providers_total": len(states),
            "providers_available": len(available),
        },
    )
