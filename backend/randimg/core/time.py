from __future__ import annotations

import time
from datetime import datetime, timezone


def iso_utc_ms(dt: datetime | None = None) -> str:
    dt = dt or datetime.now(timezone.utc)
    dt = dt.astimezone(timezone.utc)
    ms = dt.microsecond // 1000
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_from_epoch_ms(value: int) -> str | None:
    if int(value) <= 0:
        return None
    return iso_utc_ms(datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc))
