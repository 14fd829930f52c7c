from fastapi import APIRouter

from ciaociao.api.v1 import health, prices, provider_health


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(prices.router)
api_router.include_router(provider_health.router)
