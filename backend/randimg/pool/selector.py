from __future__ import annotations

import random
from dataclasses import dataclass

from randimg.core.logging import get_logger
from randimg.pool.model import Pool
from randimg.upstream.client import OriginClient, UpstreamError

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Pick:
    url: str
    degraded: bool = False


class Selector:
    """Chooses the image URL to serve.

    With an empty pool the ``degraded_mode`` decides: ``static`` serves the
    fallback image, ``origin`` makes one synchronous listing fetch and serves
    its first item (falling back to the static image if that fails too).
    """

    def __init__(
        self,
        *,
        fallback_url: str,
        degraded_mode: str = "static",
        origin: OriginClient | None = None,
        source_url: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if degraded_mode not in {"static", "origin"}:
            raise ValueError(f"unsupported degraded_mode: {degraded_mode}")
        if degraded_mode == "origin" and (origin is None or not source_url):
            raise ValueError("degraded_mode=origin requires an origin client and source_url")
        self._fallback_url = fallback_url
        self._degraded_mode = degraded_mode
        self._origin = origin
        self._source_url = source_url
        self._rng = rng or random.Random()

    @property
    def fallback_url(self) -> str:
        return self._fallback_url

    def pick_from(self, pool: Pool) -> str | None:
        if not pool.urls:
            return None
        return pool.urls[self._rng.randrange(len(pool.urls))]

    async def pick(self, pool: Pool) -> Pick:
        url = self.pick_from(pool)
        if url is not None:
            return Pick(url=url)

        if self._degraded_mode == "origin" and self._origin is not None and self._source_url:
            try:
                listed = await self._origin.fetch_listing(self._source_url)
            except UpstreamError as exc:
                log.warning("selector_origin_fallback_failed status=%s err=%s", exc.status_code, str(exc))
            else:
                return Pick(url=listed[0], degraded=True)

        return Pick(url=self._fallback_url, degraded=True)
