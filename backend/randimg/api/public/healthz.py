from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from randimg.core.errors import ErrorCode, error_body
from randimg.core.request_id import REQUEST_ID_HEADER, bind_request_id
from randimg.core.time import iso_from_epoch_ms
from randimg.services import Services

router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request) -> Any:
    rid = bind_request_id(request)

    services: Services | None = getattr(request.app.state, "services", None)
    kv_store = services.kv_store if services is not None else None
    store_ok = await kv_store.ping() if kv_store is not None else False

    if store_ok and services is not None and services.pool_store is not None:
        pool = await services.pool_store.load()
        refresher = services.refresher
        resp = JSONResponse(
            status_code=200,
            content={
                "ok": True,
                "store_ok": True,
                "pool": {
                    "size": pool.size,
                    "last_updated_at": iso_from_epoch_ms(pool.last_updated_ms),
                    "stale": refresher.is_stale(pool) if refresher is not None else None,
                    "refresh_in_flight": refresher.in_flight if refresher is not None else False,
                },
                "request_id": rid,
            },
        )
    else:
        resp = JSONResponse(
            status_code=503,
            content=error_body(
                code=ErrorCode.STORE_UNAVAILABLE,
                message="KV store unavailable" if kv_store is not None else "KV store binding not found",
                request_id=rid,
                details={"store_ok": False, "bound": kv_store is not None},
            ),
        )

    resp.headers[REQUEST_ID_HEADER] = rid
    return resp
