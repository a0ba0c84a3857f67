from __future__ import annotations

import asyncio

import httpx
import pytest

from randimg.core.config import DEFAULT_IMAGE_REFERER
from randimg.upstream.client import OriginClient, OriginFetchError, UpstreamError, extract_listing_urls


def test_extract_listing_urls_skips_malformed_items() -> None:
    payload = {
        "data": [
            {"urls": {"regular": "https://i.example.test/1.jpg"}},
            {"urls": {}},
            {"urls": "nope"},
            "nope",
            {"urls": {"regular": "  "}},
            {"urls": {"regular": "https://i.example.test/2.jpg"}},
        ]
    }
    assert extract_listing_urls(payload) == ["https://i.example.test/1.jpg", "https://i.example.test/2.jpg"]
    assert extract_listing_urls({"data": "x"}) == []
    assert extract_listing_urls([]) == []


def test_fetch_listing_sends_browser_user_agent() -> None:
    def handler(req: httpx.Request) -> httpx.Response:
        assert req.method == "GET"
        assert req.headers.get("User-Agent") == "UA/1.0"
        return httpx.Response(200, json={"data": [{"urls": {"regular": "https://i.example.test/1.jpg"}}]})

    client = OriginClient(user_agent="UA/1.0", transport=httpx.MockTransport(handler))
    out = asyncio.run(client.fetch_listing("https://listing.example.test/pool.json"))
    assert out == ["https://i.example.test/1.jpg"]


def test_fetch_listing_errors_carry_status_code() -> None:
    client = OriginClient(transport=httpx.MockTransport(lambda req: httpx.Response(429)))
    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(client.fetch_listing("https://listing.example.test/pool.json"))
    assert excinfo.value.status_code == 429


def test_fetch_listing_rejects_non_json() -> None:
    client = OriginClient(transport=httpx.MockTransport(lambda req: httpx.Response(200, content=b"<html>")))
    with pytest.raises(UpstreamError):
        asyncio.run(client.fetch_listing("https://listing.example.test/pool.json"))


def test_fetch_image_sends_referer_and_user_agent() -> None:
    seen: dict[str, str | None] = {}

    def handler(req: httpx.Request) -> httpx.Response:
        seen["referer"] = req.headers.get("Referer")
        seen["ua"] = req.headers.get("User-Agent")
        return httpx.Response(200, headers={"Content-Type": "image/jpeg"}, content=b"jpeg-bytes")

    client = OriginClient(user_agent="UA/1.0", transport=httpx.MockTransport(handler))
    image = asyncio.run(client.fetch_image("https://i.example.test/1.jpg"))

    assert seen == {"referer": DEFAULT_IMAGE_REFERER, "ua": "UA/1.0"}
    assert image.status == 200
    assert image.body == b"jpeg-bytes"
    assert image.headers["content-type"] == "image/jpeg"


def test_fetch_image_failure_raises_origin_fetch_error() -> None:
    client = OriginClient(transport=httpx.MockTransport(lambda req: httpx.Response(404)))
    with pytest.raises(OriginFetchError) as excinfo:
        asyncio.run(client.fetch_image("https://i.example.test/gone.jpg"))
    assert excinfo.value.status_code == 404
    assert excinfo.value.url == "https://i.example.test/gone.jpg"


def test_fetch_image_rejects_non_http_url() -> None:
    client = OriginClient()
    with pytest.raises(OriginFetchError):
        asyncio.run(client.fetch_image("not-a-url"))
