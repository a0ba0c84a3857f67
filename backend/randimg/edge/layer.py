from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Callable

from starlette.background import BackgroundTasks

from randimg.core.background import run_best_effort
from randimg.core.logging import get_logger
from randimg.core.metrics import observe_edge_cache
from randimg.edge.cache import CachedImage, EdgeCache
from randimg.upstream.client import OriginClient

log = get_logger(__name__)

# Cache-negotiation headers that would stop the entry from being retained, plus
# transport headers that no longer describe the decoded body we store.
_STRIPPED_HEADERS: frozenset[str] = frozenset(
    {
        "cache-control",
        "pragma",
        "expires",
        "age",
        "set-cookie",
        "content-length",
        "content-encoding",
        "transfer-encoding",
        "connection",
        "keep-alive",
    }
)


def edge_cache_control(ttl_s: int) -> str:
    return f"public, max-age={int(ttl_s)}"


def sanitize_headers(headers: Mapping[str, str], *, ttl_s: int) -> dict[str, str]:
    out = {str(k).lower(): str(v) for k, v in headers.items() if str(k).lower() not in _STRIPPED_HEADERS}
    out["cache-control"] = edge_cache_control(ttl_s)
    return out


@dataclass(frozen=True, slots=True)
class Resolved:
    entry: CachedImage
    cache_hit: bool


class EdgeCacheLayer:
    """Image bytes keyed by URL, kept for ``ttl_s`` regardless of pool freshness."""

    def __init__(
        self,
        cache: EdgeCache,
        origin: OriginClient,
        *,
        ttl_s: int,
        max_entry_bytes: int,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._cache = cache
        self._origin = origin
        self._ttl_s = int(ttl_s)
        self._max_entry_bytes = int(max_entry_bytes)
        self._now = now or time.time

    async def get(self, url: str) -> CachedImage | None:
        try:
            entry = await self._cache.match(url)
        except Exception as exc:
            observe_edge_cache("store_error")
            log.warning("edge_cache_match_failed err=%s", type(exc).__name__)
            return None
        observe_edge_cache("hit" if entry is not None else "miss")
        return entry

    async def fetch(self, url: str) -> CachedImage:
        """Fetch from origin; raises ``OriginFetchError`` and caches nothing on failure."""
        fetched = await self._origin.fetch_image(url)
        now = float(self._now())
        return CachedImage(
            status=int(fetched.status),
            headers=sanitize_headers(fetched.headers, ttl_s=self._ttl_s),
            body=fetched.body,
            stored_at=now,
            expires_at=now + self._ttl_s,
        )

    def is_cacheable(self, entry: CachedImage) -> bool:
        return 200 <= int(entry.status) < 300 and len(entry.body) <= self._max_entry_bytes

    async def put(self, url: str, entry: CachedImage) -> None:
        try:
            await self._cache.put(url, entry)
        except Exception as exc:
            observe_edge_cache("store_error")
            log.warning("edge_cache_put_failed bytes=%s err=%s", len(entry.body), type(exc).__name__)

    async def resolve(self, url: str, *, background: BackgroundTasks | None = None) -> Resolved:
        cached = await self.get(url)
        if cached is not None:
            return Resolved(entry=cached, cache_hit=True)

        entry = await self.fetch(url)
        if not self.is_cacheable(entry):
            observe_edge_cache("too_large")
            log.info("edge_cache_skip_store status=%s bytes=%s", entry.status, len(entry.body))
        elif background is not None:
            background.add_task(run_best_effort, "edge_cache_put", self.put, url, entry)
        else:
            await self.put(url, entry)
        return Resolved(entry=entry, cache_hit=False)
