from __future__ import annotations

import json
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine

from randimg.core.time import iso_utc_ms
from randimg.db.models.kv_entries import KvEntry
from randimg.db.session import create_sessionmaker, with_sqlite_busy_retry


class KvStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any) -> None: ...


class SqlKvStore:
    """JSON key-value store on a single SQLite table.

    Writes are unconditional upserts (last write wins); there is no
    compare-and-swap, so concurrent writers to the same key may overwrite
    each other.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._Session = create_sessionmaker(engine)

    async def get(self, key: str) -> Any | None:
        async def _op() -> str | None:
            async with self._Session() as session:
                result = await session.execute(select(KvEntry.value_json).where(KvEntry.key == key))
                return result.scalar_one_or_none()

        raw = await with_sqlite_busy_retry(_op)
        if raw is None:
            return None
        return json.loads(raw)

    async def put(self, key: str, value: Any) -> None:
        key = (key or "").strip()
        if not key:
            raise ValueError("key is required")

        value_json = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        now = iso_utc_ms()

        async def _op() -> None:
            async with self._Session() as session:
                stmt = sqlite_insert(KvEntry).values(key=key, value_json=value_json, updated_at=now)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[KvEntry.key],
                    set_={"value_json": value_json, "updated_at": now},
                )
                await session.execute(stmt)
                await session.commit()

        await with_sqlite_busy_retry(_op)

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.exec_driver_sql("SELECT 1")
            return True
        except Exception:
            return False
