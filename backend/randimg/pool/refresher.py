from __future__ import annotations

import asyncio
from typing import Callable

from randimg.core.logging import get_logger
from randimg.core.metrics import observe_refresh
from randimg.core.time import now_ms as _default_now_ms
from randimg.pool.model import Pool, merge_urls
from randimg.pool.store import PoolStore
from randimg.upstream.client import OriginClient, UpstreamError

log = get_logger(__name__)


class PoolRefresher:
    """Repopulates the pool from the upstream listing.

    Only one refresh runs per process at a time, and after a failed attempt
    no new attempt starts until ``retry_after_s`` has passed. Neither guard
    spans processes; concurrent refreshes elsewhere race last-write-wins on
    the store and the next cycle picks up whatever merge was lost.
    """

    def __init__(
        self,
        store: PoolStore,
        origin: OriginClient,
        *,
        source_url: str,
        refresh_interval_s: float,
        max_size: int,
        retry_after_s: float = 60.0,
        now_ms: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._origin = origin
        self._source_url = source_url
        self._refresh_interval_ms = int(float(refresh_interval_s) * 1000)
        self._max_size = int(max_size)
        self._retry_after_ms = int(max(0.0, float(retry_after_s)) * 1000)
        self._now_ms = now_ms or _default_now_ms
        self._lock = asyncio.Lock()
        self._last_failure_ms: int | None = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def is_stale(self, pool: Pool) -> bool:
        return pool.is_stale(now_ms=int(self._now_ms()), refresh_interval_ms=self._refresh_interval_ms)

    def should_refresh(self, pool: Pool) -> bool:
        if not self.is_stale(pool) or self.in_flight:
            return False
        last_failure = self._last_failure_ms
        if last_failure is not None and (int(self._now_ms()) - last_failure) < self._retry_after_ms:
            return False
        return True

    async def refresh(self, current: Pool) -> Pool | None:
        """Merge the upstream listing into ``current`` and persist it.

        Returns the saved pool, or None when the refresh was skipped or
        failed. A failure never touches the stored pool.
        """
        if self._lock.locked():
            observe_refresh("skipped")
            return None

        async with self._lock:
            try:
                incoming = await self._origin.fetch_listing(self._source_url)
            except UpstreamError as exc:
                self._last_failure_ms = int(self._now_ms())
                observe_refresh("upstream_error")
                log.warning(
                    "pool_refresh_upstream_failed status=%s err=%s",
                    exc.status_code,
                    str(exc),
                )
                return None

            merged = merge_urls(current.urls, incoming, max_size=self._max_size)
            pool = Pool(last_updated_ms=int(self._now_ms()), urls=tuple(merged))
            if not await self._store.save(pool):
                self._last_failure_ms = int(self._now_ms())
                observe_refresh("save_failed")
                return None

            self._last_failure_ms = None
            observe_refresh("ok")
            log.info(
                "pool_refreshed size=%s previous=%s fetched=%s",
                pool.size,
                current.size,
                len(incoming),
            )
            return pool
