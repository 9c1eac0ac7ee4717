from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ticketing.db.store import RecordStore, SqlRecordStore

T = TypeVar("T")


async def _run_with_fresh_store(job: Callable[[RecordStore], Awaitable[T]]) -> T:
    # Each asyncio.run gets its own loop, so the pool cannot be shared across jobs.
    store = SqlRecordStore.from_settings()
    try:
        return await job(store)
    finally:
        await store.close()


def run_async_job(job: Callable[[RecordStore], Awaitable[T]]) -> T:
    return asyncio.run(_run_with_fresh_store(job))
