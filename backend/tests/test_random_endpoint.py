from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import httpx
from fastapi.testclient import TestClient

from randimg.core.config import load_settings
from randimg.core.errors import StoreUnavailableError
from randimg.core.time import now_ms
from randimg.db.kv_store import SqlKvStore
from randimg.db.schema import create_schema
from randimg.main import create_app
from randimg.pool.model import Pool

SOURCE_URL = "https://listing.example.test/pool.json"
FALLBACK_URL = "https://static.example.test/fallback.jpg"
POOL_KEY = "pixiv_archive_db"
HOUR_MS = 3600 * 1000


def _img(n: str) -> str:
    return f"https://i.example.test/img/{n}.jpg"


def _listing(*urls: str) -> dict[str, Any]:
    return {"data": [{"urls": {"regular": u}} for u in urls]}


class _Origin:
    """Routes listing, image and fallback requests; records every call."""

    def __init__(self, *, listing: list[str] | None = None, reachable: bool = True, missing: set[str] | None = None):
        self.listing = listing
        self.reachable = reachable
        self.missing = missing or set()
        self.calls: list[str] = []

    def __call__(self, req: httpx.Request) -> httpx.Response:
        url = str(req.url)
        self.calls.append(url)
        if not self.reachable:
            raise httpx.ConnectError("unreachable", request=req)
        if url == SOURCE_URL:
            if self.listing is None:
                return httpx.Response(503)
            return httpx.Response(200, json=_listing(*self.listing))
        if url in self.missing:
            return httpx.Response(404)
        assert req.headers.get("Referer") == "https://www.pixiv.net/"
        return httpx.Response(
            200,
            headers={"Content-Type": "image/jpeg", "Cache-Control": "no-cache", "Pragma": "no-cache"},
            content=("bytes:" + url).encode("utf-8"),
        )

    def count(self, url: str) -> int:
        return sum(1 for c in self.calls if c == url)


def _make_app(tmp_path: Path, origin: _Origin, *, seed: Pool | None = None, **env: str):
    db_url = "sqlite+aiosqlite:///" + (tmp_path / "random.db").as_posix()
    settings = load_settings(
        {
            "DATABASE_URL": db_url,
            "POOL_SOURCE_URL": SOURCE_URL,
            "FALLBACK_IMAGE_URL": FALLBACK_URL,
            **env,
        }
    )
    app = create_app(settings, origin_transport=httpx.MockTransport(origin))

    async def _migrate_and_seed() -> None:
        engine = app.state.engine
        await create_schema(engine)
        if seed is not None:
            await SqlKvStore(engine).put(POOL_KEY, seed.to_json())
        await engine.dispose()

    asyncio.run(_migrate_and_seed())
    return app


def _stored_pool(app) -> Pool:
    async def _read() -> Any:
        engine = app.state.engine
        try:
            return await SqlKvStore(engine).get(POOL_KEY)
        finally:
            await engine.dispose()

    return Pool.from_json(asyncio.run(_read()))


def test_random_serves_image_with_client_cache_headers(tmp_path: Path) -> None:
    origin = _Origin()
    app = _make_app(tmp_path, origin, seed=Pool(last_updated_ms=now_ms(), urls=(_img("1"),)))

    with TestClient(app) as client:
        first = client.get("/random")
        second = client.get("/random")

    assert first.status_code == 200
    assert first.content == ("bytes:" + _img("1")).encode("utf-8")
    assert first.headers["access-control-allow-origin"] == "*"
    assert first.headers["cache-control"] == "public, max-age=3600"
    assert "pragma" not in first.headers
    assert first.headers["x-edge-cache"] == "MISS"
    assert second.headers["x-edge-cache"] == "HIT"
    assert second.content == first.content
    assert origin.count(_img("1")) == 1
    # Fresh, non-empty pool: no listing fetch.
    assert origin.count(SOURCE_URL) == 0


def test_root_path_serves_random_image(tmp_path: Path) -> None:
    origin = _Origin()
    app = _make_app(tmp_path, origin, seed=Pool(last_updated_ms=now_ms(), urls=(_img("1"),)))

    with TestClient(app) as client:
        resp = client.get("/")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"


def test_fresh_empty_pool_with_unreachable_origin_redirects_to_fallback(tmp_path: Path) -> None:
    origin = _Origin(reachable=False)
    app = _make_app(tmp_path, origin, seed=Pool(last_updated_ms=now_ms(), urls=()))

    with TestClient(app) as client:
        resp = client.get("/random", follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == FALLBACK_URL
    assert _stored_pool(app).urls == ()


def test_empty_pool_serves_fallback_and_refreshes_in_background(tmp_path: Path) -> None:
    origin = _Origin(listing=[_img("b"), _img("c")])
    app = _make_app(tmp_path, origin)

    with TestClient(app) as client:
        first = client.get("/random")
        second = client.get("/random")

    assert first.status_code == 200
    assert first.content == ("bytes:" + FALLBACK_URL).encode("utf-8")
    assert second.status_code == 200
    assert second.content in {("bytes:" + _img("b")).encode("utf-8"), ("bytes:" + _img("c")).encode("utf-8")}

    stored = _stored_pool(app)
    assert set(stored.urls) == {_img("b"), _img("c")}
    assert origin.count(SOURCE_URL) == 1


def test_stale_pool_is_merged_with_listing(tmp_path: Path) -> None:
    before = now_ms()
    origin = _Origin(listing=[_img("b"), _img("c")])
    app = _make_app(tmp_path, origin, seed=Pool(last_updated_ms=before - 2 * HOUR_MS, urls=(_img("a"), _img("b"))))

    with TestClient(app) as client:
        resp = client.get("/random")

    assert resp.status_code == 200
    stored = _stored_pool(app)
    assert set(stored.urls) == {_img("a"), _img("b"), _img("c")}
    assert stored.last_updated_ms >= before


def test_failed_listing_keeps_stale_pool_serving(tmp_path: Path) -> None:
    seeded = Pool(last_updated_ms=now_ms() - 2 * HOUR_MS, urls=(_img("a"),))
    origin = _Origin(listing=None)
    app = _make_app(tmp_path, origin, seed=seeded)

    with TestClient(app) as client:
        resp = client.get("/random")

    assert resp.status_code == 200
    assert resp.content == ("bytes:" + _img("a")).encode("utf-8")
    assert _stored_pool(app) == seeded


def test_missing_image_redirects_to_fallback(tmp_path: Path) -> None:
    origin = _Origin(missing={_img("gone")})
    app = _make_app(tmp_path, origin, seed=Pool(last_updated_ms=now_ms(), urls=(_img("gone"),)))

    with TestClient(app) as client:
        first = client.get("/random", follow_redirects=False)
        second = client.get("/random", follow_redirects=False)

    assert first.status_code == 302
    assert first.headers["location"] == FALLBACK_URL
    # Failures are never cached: the origin is asked again.
    assert second.status_code == 302
    assert origin.count(_img("gone")) == 2


def test_browser_cache_can_be_disabled(tmp_path: Path) -> None:
    origin = _Origin()
    app = _make_app(
        tmp_path,
        origin,
        seed=Pool(last_updated_ms=now_ms(), urls=(_img("1"),)),
        BROWSER_CACHE_TTL_S="0",
    )

    with TestClient(app) as client:
        resp = client.get("/random")

    assert resp.headers["cache-control"] == "no-store"


def test_sql_edge_cache_backend_serves_hits(tmp_path: Path) -> None:
    origin = _Origin()
    app = _make_app(
        tmp_path,
        origin,
        seed=Pool(last_updated_ms=now_ms(), urls=(_img("1"),)),
        EDGE_CACHE_BACKEND="sql",
    )

    with TestClient(app) as client:
        client.get("/random")
        resp = client.get("/random")

    assert resp.status_code == 200
    assert resp.headers["x-edge-cache"] == "HIT"
    assert origin.count(_img("1")) == 1


def test_unbound_store_returns_500_text() -> None:
    settings = load_settings({"DATABASE_URL": "", "FALLBACK_IMAGE_URL": FALLBACK_URL})
    app = create_app(settings, origin_transport=httpx.MockTransport(_Origin()))

    with TestClient(app) as client:
        resp = client.get("/random")

    assert resp.status_code == 500
    assert resp.text == "Error: KV store binding not found."


def test_unexpected_exception_returns_500_with_message(tmp_path: Path) -> None:
    origin = _Origin()
    app = _make_app(tmp_path, origin, seed=Pool(last_updated_ms=now_ms(), urls=(_img("1"),)))

    async def _boom(pool: Pool):  # type: ignore[no-untyped-def]
        raise RuntimeError("boom")

    app.state.services.selector.pick = _boom

    with TestClient(app) as client:
        resp = client.get("/random")

    assert resp.status_code == 500
    assert resp.text == "Server Error: boom"


def test_store_unavailable_raised_inside_pipeline_returns_binding_error(tmp_path: Path) -> None:
    origin = _Origin()
    app = _make_app(tmp_path, origin, seed=Pool(last_updated_ms=now_ms(), urls=(_img("1"),)))

    async def _unbound() -> Pool:
        raise StoreUnavailableError("KV store binding not found.")

    app.state.services.pool_store.load = _unbound

    with TestClient(app) as client:
        resp = client.get("/random")

    assert resp.status_code == 500
    assert resp.text == "Error: KV store binding not found."
    assert origin.calls == []
