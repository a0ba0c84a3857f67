from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

RANDOM_RESULTS: tuple[str, ...] = (
    "ok",
    "fallback_redirect",
    "store_unavailable",
    "error",
)

REFRESH_RESULTS: tuple[str, ...] = (
    "ok",
    "upstream_error",
    "save_failed",
    "skipped",
)

EDGE_CACHE_RESULTS: tuple[str, ...] = (
    "hit",
    "miss",
    "store_error",
    "too_large",
)

RANDOM_REQUESTS_TOTAL = Counter(
    "randimg_random_requests_total",
    "Total random image requests by result.",
    ["result"],
)

RANDOM_LATENCY_SECONDS = Histogram(
    "randimg_random_latency_seconds",
    "Latency for the random image endpoint (seconds).",
    buckets=(
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

POOL_REFRESH_TOTAL = Counter(
    "randimg_pool_refresh_total",
    "Total pool refresh attempts by result.",
    ["result"],
)

POOL_SIZE = Gauge(
    "randimg_pool_size",
    "Number of URLs in the most recently saved pool.",
)

EDGE_CACHE_LOOKUPS_TOTAL = Counter(
    "randimg_edge_cache_lookups_total",
    "Edge cache lookups and stores by result.",
    ["result"],
)

ORIGIN_FETCH_ERRORS_TOTAL = Counter(
    "randimg_origin_fetch_errors_total",
    "Total failed image fetches from the origin.",
)


def _init_labelsets() -> None:
    for result in RANDOM_RESULTS:
        RANDOM_REQUESTS_TOTAL.labels(result=result).inc(0)
    for result in REFRESH_RESULTS:
        POOL_REFRESH_TOTAL.labels(result=result).inc(0)
    for result in EDGE_CACHE_RESULTS:
        EDGE_CACHE_LOOKUPS_TOTAL.labels(result=result).inc(0)
    ORIGIN_FETCH_ERRORS_TOTAL.inc(0)
    POOL_SIZE.set(0)


_init_labelsets()


def observe_random_result(*, result: str, duration_s: float | None) -> None:
    result = (result or "").strip()
    if result not in RANDOM_RESULTS:
        result = "error"
    RANDOM_REQUESTS_TOTAL.labels(result=result).inc()
    if duration_s is not None and duration_s >= 0:
        RANDOM_LATENCY_SECONDS.observe(duration_s)


def observe_refresh(result: str) -> None:
    if result not in REFRESH_RESULTS:
        return
    POOL_REFRESH_TOTAL.labels(result=result).inc()


def observe_edge_cache(result: str) -> None:
    if result not in EDGE_CACHE_RESULTS:
        return
    EDGE_CACHE_LOOKUPS_TOTAL.labels(result=result).inc()
