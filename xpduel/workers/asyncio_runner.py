from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from xpduel.db.session import dispose_engine

T = TypeVar("T")


async def _run_job(awaitable: Awaitable[T], *, job_name: str) -> T:
    # Each Celery task gets its own event loop; pooled asyncpg connections
    # belong to the previous loop and must not be reused.
    structlog.contextvars.bind_contextvars(job=job_name)
    await dispose_engine()
    try:
        return await awaitable
    finally:
        await dispose_engine()
        structlog.contextvars.unbind_contextvars("job")


def run_async_job(awaitable: Awaitable[T], *, job_name: str) -> T:
    """Runs a worker coroutine to completion with ``job`` bound on every log line."""
    return asyncio.run(_run_job(awaitable, job_name=job_name))
