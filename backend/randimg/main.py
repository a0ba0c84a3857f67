from __future__ import annotations

import time

import httpx
from fastapi import FastAPI, Request

from randimg.api.metrics import router as metrics_router
from randimg.api.public.healthz import router as healthz_router
from randimg.api.public.random import router as random_router
from randimg.api.public.version import router as version_router
from randimg.core.config import Settings, load_settings
from randimg.core.errors import ApiError, ErrorCode, json_error_response
from randimg.core.logging import configure_logging, get_logger
from randimg.core.metrics import observe_random_result
from randimg.core.request_id import RequestIdMiddleware
from randimg.db.engine import create_engine
from randimg.db.schema import create_schema
from randimg.services import build_services

log = get_logger(__name__)

_RANDOM_PATHS = frozenset({"/", "/random"})


def create_app(
    settings: Settings | None = None,
    *,
    origin_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    configure_logging()
    settings = settings or load_settings()

    app = FastAPI(title="randimg", docs_url="/api/docs", redoc_url="/api/redoc")

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError):  # type: ignore[no-redef]
        return json_error_response(
            code=exc.code,
            message=exc.message,
            status_code=exc.status_code,
            request=request,
            details=exc.details,
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[no-redef]
        log.exception("unhandled_exception path=%s", request.url.path)
        return json_error_response(
            code=ErrorCode.INTERNAL_ERROR,
            message="Internal server error",
            status_code=500,
            request=request,
            details={"error_type": type(exc).__name__},
        )

    app.add_middleware(RequestIdMiddleware)

    engine = create_engine(settings.database_url) if settings.kv_bound else None
    if engine is None:
        log.warning("kv_store_unbound reason=empty_database_url")
    app.state.engine = engine
    app.state.settings = settings
    app.state.services = build_services(settings, engine=engine, transport=origin_transport)

    @app.middleware("http")
    async def _metrics_middleware(request: Request, call_next):  # type: ignore[no-redef]
        if request.url.path not in _RANDOM_PATHS:
            return await call_next(request)

        started = time.monotonic()
        response = await call_next(request)
        result = getattr(request.state, "random_result", None) or "error"
        observe_random_result(result=str(result), duration_s=time.monotonic() - started)
        return response

    @app.on_event("startup")
    async def _startup() -> None:  # type: ignore[no-redef]
        if engine is not None and settings.db_auto_create:
            await create_schema(engine)

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # type: ignore[no-redef]
        if engine is not None:
            await engine.dispose()

    app.include_router(healthz_router)
    app.include_router(version_router)
    app.include_router(metrics_router)
    app.include_router(random_router)

    return app


app = create_app()
