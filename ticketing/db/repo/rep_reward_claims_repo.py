from __future__ import annotations

from datetime import datetime

from ticketing.db.filters import eq, ne
from ticketing.db.models.rep_reward_claims import RepRewardClaim
from ticketing.db.store import RecordStore

CLAIM_DEDUPE_CONSTRAINT = "uq_rep_reward_claims_dedupe_key"


def milestone_dedupe_key(*, rep_id: str, milestone_id: str) -> str:
    return f"milestone:{rep_id}:{milestone_id}"


def points_shop_dedupe_key(*, rep_id: str, reward_id: str) -> str:
    return f"shop:{rep_id}:{reward_id}"


class RepRewardClaimsRepo:
    @staticmethod
    async def create(
        store: RecordStore,
        *,
        claim_id: str,
        org_id: str,
        rep_id: str,
        reward_id: str,
        claim_type: str,
        milestone_id: str | None,
        points_spent: int,
        dedupe_key: str | None,
        notes: str | None,
        now_utc: datetime,
    ) -> RepRewardClaim:
        row = await store.insert(
            RepRewardClaim,
            {
                "id": claim_id,
                "org_id": org_id,
                "rep_id": rep_id,
                "reward_id": reward_id,
                "claim_type": claim_type,
                "milestone_id": milestone_id,
                "points_spent": points_spent,
                "status": "claimed",
                "dedupe_key": dedupe_key,
                "notes": notes,
                "created_at": now_utc,
            },
        )
        return RepRewardClaim(**row)

    @staticmethod
    async def list_live_for_rep(store: RecordStore, *, rep_id: str) -> list[RepRewardClaim]:
        rows = await store.select(
            RepRewardClaim,
            where=[eq("rep_id", rep_id), ne("status", "cancelled")],
            order_by=["created_at", "id"],
        )
        return [RepRewardClaim(**row) for row in rows]

    @staticmethod
    async def cancel_claimed(store: RecordStore, *, claim_id: str, now_utc: datetime) -> bool:
        updated = await store.update(
            RepRewardClaim,
            {"status": "cancelled", "dedupe_key": None, "cancelled_at": now_utc},
            where=[eq("id", claim_id), eq("status", "claimed")],
        )
        return updated == 1
