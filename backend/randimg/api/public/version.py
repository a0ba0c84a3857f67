from __future__ import annotations

import os
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from randimg.core.request_id import REQUEST_ID_HEADER, bind_request_id

router = APIRouter()


def _get_env(key: str, default: str) -> str:
    value = os.environ.get(key, default)
    return str(value).strip()


@router.get("/version")
async def version(request: Request) -> Any:
    rid = bind_request_id(request)

    body = {
        "ok": True,
        "version": _get_env("APP_VERSION", "dev"),
        "build_time": _get_env("APP_BUILD_TIME", ""),
        "git_commit": _get_env("APP_COMMIT", ""),
        "request_id": rid,
    }

    resp = JSONResponse(status_code=200, content=body)
    resp.headers[REQUEST_ID_HEADER] = rid
    return resp
