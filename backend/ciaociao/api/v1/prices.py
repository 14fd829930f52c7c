from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ciaociao.api.deps import get_price_service
from ciaociao.api.response import envelope
from ciaociao.schemas.pricing import ConsensusQuoteOut
from ciaociao.services.price_engine.schemas import Currency, Metal, Unit
from ciaociao.services.price_service import PriceService


router = APIRouter(tags=["prices"])


@router.get("/prices/{metal}")
async def get_price(
    request: Request,
    metal: Metal,
    currency: Currency = Query(default=Currency.USD),
    unit: Unit = Query(default=Unit.TROY_OUNCE),
    service: PriceService = Depends(get_price_service),
) -> dict:
    quote = await service.get_price(metal, currency, unit)
    return envelope(request, ConsensusQuoteOut.model_validate(quote).model_dump(mode="json"))


@router.get("/exchange-rates/{base}/{quote}")
async def get_exchange_rate(
    request: Request,
    base: Currency,
    quote: Currency,
    service: PriceService = Depends(get_price_service),
) -> dict:
    if base == quote:
        raise HTTPException(status_code=422, detail="Base and quote currencies must differ")
    rate = await service.get_exchange_rate(base, quote)
    return envelope(request, ConsensusQuoteOut.model_validate(rate).model_dump(mode="json"))
