from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from randimg.core.logging import get_logger

log = get_logger(__name__)


async def run_best_effort(
    name: str,
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    timeout_s: float | None = None,
    **kwargs: Any,
) -> None:
    """Run a detached job after the response has been sent.

    Starlette awaits background tasks to completion once the body is flushed,
    so the job outlives the response but not the process. Failures are logged
    and never reach the client.
    """
    try:
        if timeout_s is not None and timeout_s > 0:
            await asyncio.wait_for(fn(*args, **kwargs), timeout=float(timeout_s))
        else:
            await fn(*args, **kwargs)
    except asyncio.TimeoutError:
        log.warning("background_task_timeout name=%s timeout_s=%s", name, timeout_s)
    except Exception:
        log.exception("background_task_failed name=%s", name)
