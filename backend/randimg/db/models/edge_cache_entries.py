from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from randimg.db.models.base import Base


class EdgeCacheEntry(Base):
    __tablename__ = "edge_cache_entries"

    cache_key: Mapped[str] = mapped_column(sa.Text(), primary_key=True)
    status: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
    headers_json: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    body: Mapped[bytes] = mapped_column(sa.LargeBinary(), nullable=False)
    stored_at: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    expires_at: Mapped[float] = mapped_column(sa.Float(), nullable=False, index=True)
