from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

from randimg.core.logging import get_logger

log = get_logger(__name__)

DEFAULT_SOURCE_URL = "https://pixiv-api.wrnm.dpdns.org/pe_pixiv.json"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/115.0.0.0 Safari/537.36"
)
DEFAULT_IMAGE_REFERER = "https://www.pixiv.net/"
DEFAULT_POOL_DB_KEY = "pixiv_archive_db"
DEFAULT_FALLBACK_IMAGE_URL = (
    "https://aisearch.cdn.bcebos.com/fileManager/"
    "u__qckLoPd5Gk6Se9-HLmPTtZYAkS1VFhLt9vquAsTw/1765812350955YfFCSD.jpg"
)

DEGRADED_MODES: tuple[str, ...] = ("static", "origin")
EDGE_CACHE_BACKENDS: tuple[str, ...] = ("memory", "sql")


@dataclass(frozen=True, slots=True)
class Settings:
    app_env: str
    database_url: str
    db_auto_create: bool
    pool_source_url: str
    pool_db_key: str
    pool_refresh_interval_s: int
    pool_refresh_retry_s: int
    pool_max_size: int
    memory_mirror_ttl_s: int
    upstream_user_agent: str
    upstream_timeout_s: float
    image_referer: str
    fallback_image_url: str
    degraded_mode: str
    edge_cache_backend: str
    edge_cache_ttl_s: int
    edge_cache_max_entries: int
    edge_cache_max_entry_bytes: int
    browser_cache_ttl_s: int
    metrics_token: str

    @property
    def is_prod(self) -> bool:
        return self.app_env in {"prod", "production"}

    @property
    def kv_bound(self) -> bool:
        return bool(self.database_url)


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key, default)
    return value.strip()


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _get(env, key, "1" if default else "0").lower()
    if raw in {"1", "true", "yes", "y", "on"}:
        return True
    if raw in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _get_int(env: Mapping[str, str], key: str, default: int, *, lo: int, hi: int) -> int:
    try:
        value = int(_get(env, key, str(default)) or str(default))
    except Exception:
        log.warning("config_invalid_int key=%s default=%s", key, default)
        value = int(default)
    return max(lo, min(int(value), hi))


def _get_float(env: Mapping[str, str], key: str, default: float, *, lo: float, hi: float) -> float:
    try:
        value = float(_get(env, key, str(default)) or str(default))
    except Exception:
        log.warning("config_invalid_float key=%s default=%s", key, default)
        value = float(default)
    return max(lo, min(float(value), hi))


def _get_choice(env: Mapping[str, str], key: str, default: str, *, choices: tuple[str, ...]) -> str:
    raw = _get(env, key, default).lower()
    if raw in choices:
        return raw
    log.warning("config_invalid_choice key=%s value=%s default=%s", key, raw, default)
    return default


def _is_http_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except Exception:
        return False
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.netloc)


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env

    app_env = _get(env, "APP_ENV", "dev").lower()
    # An explicitly empty DATABASE_URL leaves the KV store unbound.
    database_url = _get(env, "DATABASE_URL", "sqlite+aiosqlite:///./data/app.db")

    settings = Settings(
        app_env=app_env,
        database_url=database_url,
        db_auto_create=_get_bool(env, "DB_AUTO_CREATE", True),
        pool_source_url=_get(env, "POOL_SOURCE_URL", DEFAULT_SOURCE_URL),
        pool_db_key=_get(env, "POOL_DB_KEY", DEFAULT_POOL_DB_KEY) or DEFAULT_POOL_DB_KEY,
        pool_refresh_interval_s=_get_int(env, "POOL_REFRESH_INTERVAL_S", 3600, lo=1, hi=30 * 24 * 3600),
        pool_refresh_retry_s=_get_int(env, "POOL_REFRESH_RETRY_S", 60, lo=0, hi=24 * 3600),
        pool_max_size=_get_int(env, "POOL_MAX_SIZE", 1000, lo=1, hi=1_000_000),
        memory_mirror_ttl_s=_get_int(env, "MEMORY_MIRROR_TTL_S", 0, lo=0, hi=30 * 24 * 3600),
        upstream_user_agent=_get(env, "UPSTREAM_USER_AGENT", DEFAULT_USER_AGENT) or DEFAULT_USER_AGENT,
        upstream_timeout_s=_get_float(env, "UPSTREAM_TIMEOUT_S", 30.0, lo=1.0, hi=300.0),
        image_referer=_get(env, "IMAGE_REFERER", DEFAULT_IMAGE_REFERER),
        fallback_image_url=_get(env, "FALLBACK_IMAGE_URL", DEFAULT_FALLBACK_IMAGE_URL) or DEFAULT_FALLBACK_IMAGE_URL,
        degraded_mode=_get_choice(env, "DEGRADED_MODE", "static", choices=DEGRADED_MODES),
        edge_cache_backend=_get_choice(env, "EDGE_CACHE_BACKEND", "memory", choices=EDGE_CACHE_BACKENDS),
        edge_cache_ttl_s=_get_int(env, "EDGE_CACHE_TTL_S", 31_536_000, lo=1, hi=10 * 31_536_000),
        edge_cache_max_entries=_get_int(env, "EDGE_CACHE_MAX_ENTRIES", 512, lo=1, hi=1_000_000),
        edge_cache_max_entry_bytes=_get_int(
            env, "EDGE_CACHE_MAX_ENTRY_BYTES", 20 * 1024 * 1024, lo=1024, hi=512 * 1024 * 1024
        ),
        browser_cache_ttl_s=_get_int(env, "BROWSER_CACHE_TTL_S", 3600, lo=0, hi=31_536_000),
        metrics_token=_get(env, "METRICS_TOKEN", ""),
    )

    if settings.edge_cache_backend == "sql" and not settings.kv_bound:
        raise ValueError("EDGE_CACHE_BACKEND=sql requires DATABASE_URL")

    if settings.is_prod:
        invalid: list[str] = []
        if not _is_http_url(settings.fallback_image_url):
            invalid.append("FALLBACK_IMAGE_URL")
        if not _is_http_url(settings.pool_source_url):
            invalid.append("POOL_SOURCE_URL")
        if invalid:
            raise ValueError(f"Invalid env vars for prod: {', '.join(invalid)}")

    if settings.browser_cache_ttl_s >= settings.edge_cache_ttl_s:
        log.warning(
            "browser_cache_ttl_not_shorter_than_edge browser_ttl_s=%s edge_ttl_s=%s",
            settings.browser_cache_ttl_s,
            settings.edge_cache_ttl_s,
        )

    return settings
