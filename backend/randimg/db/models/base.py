from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# Import all model modules so Base.metadata is fully populated for create_all().
from randimg.db.models import edge_cache_entries as _edge_cache_entries  # noqa: F401,E402
from randimg.db.models import kv_entries as _kv_entries  # noqa: F401,E402
