from __future__ import annotations

import hmac
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client.exposition import CONTENT_TYPE_LATEST, generate_latest

from randimg.core.errors import ApiError, ErrorCode

router = APIRouter()


def parse_bearer_token(authorization: str | None) -> str | None:
    raw = (authorization or "").strip()
    if not raw:
        return None
    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def _require_metrics_token(request: Request) -> None:
    settings = getattr(request.app.state, "settings", None)
    expected = str(getattr(settings, "metrics_token", "") or "")
    if not expected:
        return
    token = parse_bearer_token(request.headers.get("Authorization"))
    if token is None or not hmac.compare_digest(token, expected):
        raise ApiError(code=ErrorCode.UNAUTHORIZED, message="Missing or invalid metrics token", status_code=401)


@router.get("/metrics")
async def metrics(request: Request) -> Any:
    _require_metrics_token(request)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
