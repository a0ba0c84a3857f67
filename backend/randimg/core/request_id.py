from __future__ import annotations

import secrets
from typing import Any, Mapping

from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-Id"


def new_request_id() -> str:
    return "req_" + secrets.token_hex(8)


def get_request_id_from_headers(headers: Mapping[str, str] | None) -> str | None:
    if not headers:
        return None
    value = headers.get(REQUEST_ID_HEADER) or headers.get(REQUEST_ID_HEADER.lower())
    value = (value or "").strip()
    return value or None


def get_or_create_request_id(request: Any) -> str:
    rid = getattr(getattr(request, "state", None), "request_id", None)
    if rid:
        return str(rid)
    return get_request_id_from_headers(getattr(request, "headers", None)) or new_request_id()


def bind_request_id(request: Any) -> str:
    rid = get_or_create_request_id(request)
    request.state.request_id = rid
    return rid


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):  # type: ignore[no-untyped-def]
        rid = bind_request_id(request)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
