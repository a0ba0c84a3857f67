from __future__ import annotations

import json
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine

from randimg.core.logging import get_logger
from randimg.db.models.edge_cache_entries import EdgeCacheEntry
from randimg.db.session import create_sessionmaker, with_sqlite_busy_retry

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CachedImage:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stored_at: float = 0.0
    expires_at: float = 0.0

    def is_fresh(self, now: float) -> bool:
        return float(now) < float(self.expires_at)


class EdgeCache(Protocol):
    async def match(self, key: str) -> CachedImage | None: ...

    async def put(self, key: str, entry: CachedImage) -> None: ...


class MemoryEdgeCache:
    """Bounded in-process LRU; entries past ``expires_at`` read as misses."""

    def __init__(self, *, max_entries: int = 512, now: Callable[[], float] | None = None) -> None:
        self._max_entries = max(1, int(max_entries))
        self._now = now or time.time
        self._items: OrderedDict[str, CachedImage] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    # No awaits inside match/put, so each runs atomically on the event loop.
    async def match(self, key: str) -> CachedImage | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(float(self._now())):
            self._items.pop(key, None)
            return None
        self._items.move_to_end(key)
        return entry

    async def put(self, key: str, entry: CachedImage) -> None:
        self._items[key] = entry
        self._items.move_to_end(key)
        while len(self._items) > self._max_entries:
            self._items.popitem(last=False)


class SqlEdgeCache:
    """Edge cache persisted next to the pool in the SQL database.

    Expired rows are deleted when read and purged on every put; past
    ``max_entries`` the oldest stored rows are dropped.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        max_entries: int = 512,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._Session = create_sessionmaker(engine)
        self._max_entries = max(1, int(max_entries))
        self._now = now or time.time

    async def match(self, key: str) -> CachedImage | None:
        async def _op() -> EdgeCacheEntry | None:
            async with self._Session() as session:
                result = await session.execute(select(EdgeCacheEntry).where(EdgeCacheEntry.cache_key == key))
                return result.scalar_one_or_none()

        row = await with_sqlite_busy_retry(_op)
        if row is None:
            return None

        entry = CachedImage(
            status=int(row.status),
            headers={str(k): str(v) for k, v in json.loads(row.headers_json).items()},
            body=bytes(row.body),
            stored_at=float(row.stored_at),
            expires_at=float(row.expires_at),
        )
        now = float(self._now())
        if not entry.is_fresh(now):
            await self._delete_expired(key=key, now=now)
            return None
        return entry

    async def put(self, key: str, entry: CachedImage) -> None:
        headers_json = json.dumps(entry.headers, separators=(",", ":"), sort_keys=True)
        values = {
            "status": int(entry.status),
            "headers_json": headers_json,
            "body": entry.body,
            "stored_at": float(entry.stored_at),
            "expires_at": float(entry.expires_at),
        }

        async def _op() -> None:
            async with self._Session() as session:
                stmt = sqlite_insert(EdgeCacheEntry).values(cache_key=key, **values)
                stmt = stmt.on_conflict_do_update(index_elements=[EdgeCacheEntry.cache_key], set_=values)
                await session.execute(stmt)
                await session.commit()

        await with_sqlite_busy_retry(_op)
        await self.cleanup_expired()
        await self._enforce_max_entries()

    async def count(self) -> int:
        async def _op() -> int:
            async with self._Session() as session:
                result = await session.execute(select(func.count()).select_from(EdgeCacheEntry))
                return int(result.scalar_one())

        return await with_sqlite_busy_retry(_op)

    async def cleanup_expired(self) -> int:
        """Delete every expired row; returns how many were removed."""
        removed = await self._delete_expired(key=None, now=float(self._now()))
        if removed:
            log.info("edge_cache_expired_purged removed=%s", removed)
        return removed

    async def _delete_expired(self, *, key: str | None, now: float) -> int:
        stmt = delete(EdgeCacheEntry).where(EdgeCacheEntry.expires_at <= now)
        if key is not None:
            stmt = stmt.where(EdgeCacheEntry.cache_key == key)

        async def _op() -> int:
            async with self._Session() as session:
                result = await session.execute(stmt)
                await session.commit()
                return int(result.rowcount or 0)

        return await with_sqlite_busy_retry(_op)

    async def _enforce_max_entries(self) -> int:
        overflow = (
            select(EdgeCacheEntry.cache_key)
            .order_by(EdgeCacheEntry.stored_at.desc(), EdgeCacheEntry.cache_key)
            .offset(self._max_entries)
        )
        stmt = delete(EdgeCacheEntry).where(EdgeCacheEntry.cache_key.in_(overflow.scalar_subquery()))

        async def _op() -> int:
            async with self._Session() as session:
                result = await session.execute(stmt)
                await session.commit()
                return int(result.rowcount or 0)

        removed = await with_sqlite_busy_retry(_op)
        if removed:
            log.info("edge_cache_evicted removed=%s max_entries=%s", removed, self._max_entries)
        return removed
