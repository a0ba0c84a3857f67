from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from randimg.core.config import DEFAULT_IMAGE_REFERER, DEFAULT_USER_AGENT
from randimg.core.metrics import ORIGIN_FETCH_ERRORS_TOTAL


class UpstreamError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OriginFetchError(RuntimeError):
    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class FetchedImage:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def extract_listing_urls(data: Any) -> list[str]:
    """Pull ``data[].urls.regular`` out of a listing payload, skipping malformed items."""
    items = data.get("data") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return []
    out: list[str] = []
    for item in items:
        urls = item.get("urls") if isinstance(item, dict) else None
        regular = urls.get("regular") if isinstance(urls, dict) else None
        if not isinstance(regular, str):
            continue
        regular = regular.strip()
        if regular:
            out.append(regular)
    return out


class OriginClient:
    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        referer: str = DEFAULT_IMAGE_REFERER,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._referer = referer
        self._timeout_s = float(timeout_s)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self._timeout_s, connect=min(10.0, self._timeout_s)),
            follow_redirects=True,
        )

    async def fetch_listing(self, source_url: str) -> list[str]:
        headers = {"User-Agent": self._user_agent, "Accept": "application/json"}
        try:
            async with self._client() as client:
                resp = await client.get(source_url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise UpstreamError(f"listing request failed: {type(exc).__name__}") from exc

        if not resp.is_success:
            raise UpstreamError("listing request failed", status_code=resp.status_code)

        try:
            data: Any = resp.json()
        except Exception as exc:
            raise UpstreamError("listing response is not JSON", status_code=resp.status_code) from exc

        urls = extract_listing_urls(data)
        if not urls:
            raise UpstreamError("listing response has no image urls", status_code=resp.status_code)
        return urls

    async def fetch_image(self, url: str) -> FetchedImage:
        # The image origin rejects requests without a browser-like Referer and User-Agent.
        headers = {"User-Agent": self._user_agent}
        if self._referer:
            headers["Referer"] = self._referer
        try:
            async with self._client() as client:
                resp = await client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            ORIGIN_FETCH_ERRORS_TOTAL.inc()
            raise OriginFetchError(f"image request failed: {type(exc).__name__}", url=url) from exc

        if not resp.is_success:
            ORIGIN_FETCH_ERRORS_TOTAL.inc()
            raise OriginFetchError("image request failed", url=url, status_code=resp.status_code)

        return FetchedImage(
            status=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            body=resp.content,
        )
