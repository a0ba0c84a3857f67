from __future__ import annotations

import time
from typing import Callable

from randimg.core.logging import get_logger
from randimg.core.metrics import POOL_SIZE
from randimg.db.kv_store import KvStore
from randimg.pool.model import Pool

log = get_logger(__name__)


class MemoryMirror:
    """Process-local copy of the last known non-empty pool.

    Lives as long as the process (or ``ttl_s`` when positive). Callers must
    treat a miss as normal: the mirror only saves store round-trips.
    """

    def __init__(self, *, ttl_s: float = 0.0, now: Callable[[], float] | None = None) -> None:
        self._ttl_s = max(0.0, float(ttl_s))
        self._now = now or time.monotonic
        self._pool: Pool | None = None
        self._stored_at = 0.0

    def get(self) -> Pool | None:
        pool = self._pool
        if pool is None or not pool.urls:
            return None
        if self._ttl_s > 0 and (float(self._now()) - self._stored_at) > self._ttl_s:
            self._pool = None
            return None
        return pool

    def set(self, pool: Pool) -> None:
        self._pool = pool
        self._stored_at = float(self._now())

    def clear(self) -> None:
        self._pool = None


class PoolStore:
    def __init__(self, kv: KvStore, *, key: str, mirror: MemoryMirror | None = None) -> None:
        self._kv = kv
        self._key = key
        self._mirror = mirror if mirror is not None else MemoryMirror()

    @property
    def mirror(self) -> MemoryMirror:
        return self._mirror

    async def load(self) -> Pool:
        cached = self._mirror.get()
        if cached is not None:
            return cached

        try:
            raw = await self._kv.get(self._key)
        except Exception as exc:
            log.warning("pool_store_read_failed key=%s err=%s", self._key, type(exc).__name__)
            return Pool.empty()

        if raw is None:
            return Pool.empty()

        pool = Pool.from_json(raw)
        if pool.urls:
            self._mirror.set(pool)
            POOL_SIZE.set(pool.size)
        return pool

    async def save(self, pool: Pool) -> bool:
        try:
            await self._kv.put(self._key, pool.to_json())
        except Exception as exc:
            log.warning("pool_store_write_failed key=%s size=%s err=%s", self._key, pool.size, type(exc).__name__)
            return False
        self._mirror.set(pool)
        POOL_SIZE.set(pool.size)
        return True
