from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Request

from randimg.core.background import run_best_effort
from randimg.core.errors import StoreUnavailableError, plain_text_error_response
from randimg.core.image_response import build_fallback_redirect, build_image_response
from randimg.core.logging import get_logger
from randimg.services import Services
from randimg.upstream.client import OriginFetchError

log = get_logger(__name__)

router = APIRouter()

# Upper bound for a detached refresh.
_REFRESH_TIMEOUT_S = 120.0


async def _serve_random(request: Request, background_tasks: BackgroundTasks) -> Any:
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None or services.pool_store is None or services.refresher is None:
        raise StoreUnavailableError("KV store binding not found.")

    settings = services.settings
    pool = await services.pool_store.load()

    if services.refresher.should_refresh(pool):
        background_tasks.add_task(
            run_best_effort,
            "pool_refresh",
            services.refresher.refresh,
            pool,
            timeout_s=_REFRESH_TIMEOUT_S,
        )

    pick = await services.selector.pick(pool)
    if pick.degraded:
        log.info("random_degraded_pick pool_size=%s mode=%s", pool.size, settings.degraded_mode)

    try:
        resolved = await services.edge.resolve(pick.url, background=background_tasks)
    except OriginFetchError as exc:
        log.warning("random_image_fetch_failed status=%s err=%s", exc.status_code, str(exc))
        request.state.random_result = "fallback_redirect"
        resp = build_fallback_redirect(settings.fallback_image_url)
        resp.background = background_tasks
        return resp

    request.state.random_result = "ok"
    resp = build_image_response(resolved.entry, browser_cache_ttl_s=settings.browser_cache_ttl_s)
    resp.headers["X-Edge-Cache"] = "HIT" if resolved.cache_hit else "MISS"
    resp.background = background_tasks
    return resp


@router.get("/random")
@router.get("/")
async def random_image(request: Request, background_tasks: BackgroundTasks) -> Any:
    try:
        return await _serve_random(request, background_tasks)
    except StoreUnavailableError as exc:
        log.error("random_store_unbound err=%s", str(exc))
        request.state.random_result = "store_unavailable"
        return plain_text_error_response(f"Error: {exc}", status_code=500)
    except Exception as exc:
        log.exception("random_unhandled_exception")
        request.state.random_result = "error"
        return plain_text_error_response(f"Server Error: {exc}", status_code=500)
