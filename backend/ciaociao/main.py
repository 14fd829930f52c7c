from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from ciaociao.api.response import exception_envelope
from ciaociao.api.v1.router import api_router
from ciaociao.core.config import Settings, get_settings
from ciaociao.core.logging_config import configure_logging
from ciaociao.core.metrics import render_metrics
from ciaociao.core.middleware import RequestLoggingMiddleware
from ciaociao.services.price_engine.errors import AllSourcesExhaustedError
from ciaociao.services.price_service import PriceService, build_price_service


logger = logging.getLogger("ciaociao.api")


def create_app(settings: Settings | None = None, *, price_service: PriceService | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(log_level=settings.log_level, app_env=settings.app_env)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        service = price_service or build_price_service(settings)
        app.state.price_service = service
        logger.info("Price service ready with %d providers.", len(service.registry))
        try:
            yield
        finally:
            await service.aclose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    if settings.metrics_enabled:
        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            payload, content_type = render_metrics()
            return Response(content=payload, media_type=content_type)

    @app.exception_handler(AllSourcesExhaustedError)
    async def sources_exhausted_handler(request: Request, exc: AllSourcesExhaustedError) -> JSONResponse:
        payload = exception_envelope(
            request=request,
            status_code=503,
            message=str(exc),
            code=exc.code,
            details={"asset": exc.key.asset.value, "currency": exc.key.currency.value},
        )
        return JSONResponse(status_code=503, content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        details: dict[str, object] = exc.detail if isinstance(exc.detail, dict) else {}
        payload = exception_envelope(
            request=request,
            status_code=exc.status_code,
            message=message,
            code=f"http_{exc.status_code}",
            details=details,
        )
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        payload = exception_envelope(
            request=request,
            status_code=422,
            message="Validation failed",
            code="validation_error",
            details={"errors": _jsonable_errors(exc)},
        )
        return JSONResponse(status_code=422, content=payload)

    return app


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")} for error in exc.errors()]


app = create_app()
