from __future__ import annotations

from fastapi.responses import RedirectResponse, Response

from randimg.edge.cache import CachedImage

# Rewritten or recomputed for the client; anything upstream sent for these is dropped.
_CLIENT_DROPPED_HEADERS: frozenset[str] = frozenset(
    {"cache-control", "pragma", "expires", "content-length", "access-control-allow-origin"}
)


def browser_cache_control(ttl_s: int) -> str:
    """Client-facing directive; kept shorter than the edge TTL so visitors keep seeing new picks."""
    if int(ttl_s) <= 0:
        return "no-store"
    return f"public, max-age={int(ttl_s)}"


def build_image_response(entry: CachedImage, *, browser_cache_ttl_s: int) -> Response:
    headers = {k.lower(): v for k, v in entry.headers.items() if k.lower() not in _CLIENT_DROPPED_HEADERS}
    headers["access-control-allow-origin"] = "*"
    headers["cache-control"] = browser_cache_control(browser_cache_ttl_s)
    return Response(content=entry.body, status_code=int(entry.status), headers=headers)


def build_fallback_redirect(fallback_url: str) -> RedirectResponse:
    resp = RedirectResponse(url=fallback_url, status_code=302)
    resp.headers["access-control-allow-origin"] = "*"
    resp.headers["cache-control"] = "no-store"
    return resp
