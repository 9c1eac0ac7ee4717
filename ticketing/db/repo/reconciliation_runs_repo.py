from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from ticketing.db.models.reconciliation_runs import ReconciliationRun
from ticketing.db.store import RecordStore


class ReconciliationRunsRepo:
    @staticmethod
    async def create(
        store: RecordStore,
        *,
        kind: str,
        started_at: datetime,
        finished_at: datetime | None,
        status: str,
        examined: int,
        diff_count: int,
    ) -> ReconciliationRun:
        row = await store.insert(
            ReconciliationRun,
            {
                "id": str(uuid4()),
                "kind": kind,
                "started_at": started_at,
                "finished_at": finished_at,
                "status": status,
                "examined": examined,
                "diff_count": diff_count,
            },
        )
        return ReconciliationRun(**row)
