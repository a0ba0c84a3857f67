from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from randimg.core.config import Settings
from randimg.db.kv_store import SqlKvStore
from randimg.edge.cache import EdgeCache, MemoryEdgeCache, SqlEdgeCache
from randimg.edge.layer import EdgeCacheLayer
from randimg.pool.refresher import PoolRefresher
from randimg.pool.selector import Selector
from randimg.pool.store import MemoryMirror, PoolStore
from randimg.upstream.client import OriginClient


@dataclass(slots=True)
class Services:
    """Per-app collaborators, built once in ``create_app`` and held on ``app.state``.

    ``kv_store``/``pool_store``/``refresher`` are None when no database is
    bound; the random endpoint then answers 500.
    """

    settings: Settings
    origin: OriginClient
    selector: Selector
    edge: EdgeCacheLayer
    kv_store: SqlKvStore | None = None
    pool_store: PoolStore | None = None
    refresher: PoolRefresher | None = None


def build_services(
    settings: Settings,
    *,
    engine: AsyncEngine | None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Services:
    origin = OriginClient(
        user_agent=settings.upstream_user_agent,
        referer=settings.image_referer,
        timeout_s=settings.upstream_timeout_s,
        transport=transport,
    )

    selector = Selector(
        fallback_url=settings.fallback_image_url,
        degraded_mode=settings.degraded_mode,
        origin=origin,
        source_url=settings.pool_source_url,
    )

    edge_cache: EdgeCache
    if settings.edge_cache_backend == "sql" and engine is not None:
        edge_cache = SqlEdgeCache(engine, max_entries=settings.edge_cache_max_entries)
    else:
        edge_cache = MemoryEdgeCache(max_entries=settings.edge_cache_max_entries)
    edge = EdgeCacheLayer(
        edge_cache,
        origin,
        ttl_s=settings.edge_cache_ttl_s,
        max_entry_bytes=settings.edge_cache_max_entry_bytes,
    )

    services = Services(settings=settings, origin=origin, selector=selector, edge=edge)
    if engine is None:
        return services

    kv_store = SqlKvStore(engine)
    pool_store = PoolStore(
        kv_store,
        key=settings.pool_db_key,
        mirror=MemoryMirror(ttl_s=settings.memory_mirror_ttl_s),
    )
    services.kv_store = kv_store
    services.pool_store = pool_store
    services.refresher = PoolRefresher(
        pool_store,
        origin,
        source_url=settings.pool_source_url,
        refresh_interval_s=settings.pool_refresh_interval_s,
        max_size=settings.pool_max_size,
        retry_after_s=settings.pool_refresh_retry_s,
    )
    return services
