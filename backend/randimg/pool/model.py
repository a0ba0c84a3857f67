from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Pool:
    """Known image URLs plus the epoch-millisecond time of the last successful refresh."""

    last_updated_ms: int
    urls: tuple[str, ...]

    @classmethod
    def empty(cls) -> "Pool":
        return cls(last_updated_ms=0, urls=())

    @property
    def size(self) -> int:
        return len(self.urls)

    def is_stale(self, *, now_ms: int, refresh_interval_ms: int) -> bool:
        if not self.urls:
            return True
        return (int(now_ms) - int(self.last_updated_ms)) > int(refresh_interval_ms)

    def to_json(self) -> dict[str, Any]:
        return {"lastUpdated": int(self.last_updated_ms), "urls": list(self.urls)}

    @classmethod
    def from_json(cls, value: Any) -> "Pool":
        """Parse a stored pool, dropping anything that is not a non-empty string URL."""
        if not isinstance(value, dict):
            return cls.empty()

        raw_ts = value.get("lastUpdated")
        last_updated_ms = 0
        if isinstance(raw_ts, (int, float)) and not isinstance(raw_ts, bool):
            last_updated_ms = max(0, int(raw_ts))

        raw_urls = value.get("urls")
        urls = dedupe_urls(raw_urls) if isinstance(raw_urls, list) else []
        return cls(last_updated_ms=last_updated_ms, urls=tuple(urls))


def dedupe_urls(values: Iterable[Any]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for item in values:
        if not isinstance(item, str):
            continue
        v = item.strip()
        if not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def merge_urls(existing: Iterable[str], incoming: Iterable[str], *, max_size: int) -> list[str]:
    """Ordered set union of ``existing`` then ``incoming``, trimmed to the last ``max_size`` entries.

    Eviction is by insertion order only: URLs that were already in the pool
    go first, so on overflow the oldest entries are dropped.
    """
    merged = dedupe_urls([*existing, *incoming])
    max_size = int(max_size)
    if max_size <= 0:
        return []
    if len(merged) > max_size:
        merged = merged[-max_size:]
    return merged
