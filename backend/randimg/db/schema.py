from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from randimg.db.engine import ensure_sqlite_dir
from randimg.db.models.base import Base


async def create_schema(engine: AsyncEngine) -> None:
    ensure_sqlite_dir(engine.url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
