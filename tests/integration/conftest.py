from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from sqlalchemy import text

from ticketing.db.disposable import NotDisposableDatabaseError, require_disposable_database
from ticketing.db.models.base import Base
from ticketing.db.store import SqlRecordStore

TRUNCATE_TABLES = (
    "rep_reward_claims",
    "rep_milestones",
    "rep_rewards",
    "rep_points_ledger",
    "tickets",
    "order_items",
    "orders",
    "discounts",
    "customers",
    "ticket_types",
    "reps",
    "site_settings",
    "reconciliation_runs",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture
async def sql_store() -> AsyncIterator[SqlRecordStore]:
    # One engine per test; asyncpg connections cannot cross event loops.
    store = SqlRecordStore.from_settings()

    try:
        await store.ping()
    except Exception as exc:  # pragma: no cover - environment-dependent
        await store.close()
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    try:
        await require_disposable_database(store)
    except NotDisposableDatabaseError:
        await store.close()
        raise

    async with store.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(TRUNCATE_SQL))

    yield store

    await store.close()
