"""Best-effort bookkeeping tasks.

Secondary writes (rating aggregates, activity log, category counters) must
never fail or delay the request that triggered them. They run through
``run_best_effort``, which dead-letters any failure to the structured log and
a Prometheus counter instead of raising.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import structlog
from fastapi import BackgroundTasks

from app.metrics import SIDE_EFFECT_FAILURES

logger = structlog.get_logger()


async def run_best_effort(
    task_name: str,
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    **kwargs: Any,
) -> bool:
    """Await ``fn``; return False (and dead-letter the call) if it raised."""
    try:
        await fn(*args, **kwargs)
    except Exception as exc:
        SIDE_EFFECT_FAILURES.labels(task=task_name).inc()
        logger.error(
            "side_effect_dead_letter",
            task=task_name,
            args=[repr(a) for a in args],
            kwargs={k: repr(v) for k, v in kwargs.items()},
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return False
    return True


def schedule(
    background_tasks: BackgroundTasks,
    task_name: str,
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    **kwargs: Any,
) -> None:
    """Queue ``fn`` to run after the response, wrapped in :func:`run_best_effort`."""
    background_tasks.add_task(run_best_effort, task_name, fn, *args, **kwargs)
