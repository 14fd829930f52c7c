from fastapi import Request

from ciaociao.services.price_service import PriceService


def get_price_service(request: Request) -> PriceService:
    return request.app.state.price_service
