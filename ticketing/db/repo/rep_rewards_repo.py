from __future__ import annotations

from ticketing.db.filters import Increment, eq, gt, under_cap
from ticketing.db.models.rep_milestones import RepMilestone
from ticketing.db.models.rep_rewards import RepReward
from ticketing.db.store import RecordStore


class RepRewardsRepo:
    @staticmethod
    async def get_by_id(store: RecordStore, reward_id: str, *, org_id: str) -> RepReward | None:
        rows = await store.select(RepReward, where=[eq("id", reward_id), eq("org_id", org_id)], limit=1)
        return RepReward(**rows[0]) if rows else None

    @staticmethod
    async def list_active_for_org(store: RecordStore, *, org_id: str) -> list[RepReward]:
        rows = await store.select(
            RepReward,
            where=[eq("org_id", org_id), eq("status", "active")],
            order_by=["created_at", "id"],
        )
        return [RepReward(**row) for row in rows]

    @staticmethod
    async def reserve_slot(store: RecordStore, *, reward_id: str) -> bool:
        updated = await store.update(
            RepReward,
            {"total_claimed": Increment(1)},
            where=[eq("id", reward_id), eq("status", "active"), under_cap("total_claimed", "total_available")],
        )
        return updated == 1

    @staticmethod
    async def release_slot(store: RecordStore, *, reward_id: str) -> bool:
        updated = await store.update(
            RepReward,
            {"total_claimed": Increment(-1)},
            where=[eq("id", reward_id), gt("total_claimed", 0)],
        )
        return updated == 1


class RepMilestonesRepo:
    @staticmethod
    async def get_by_id(store: RecordStore, milestone_id: str, *, org_id: str) -> RepMilestone | None:
        rows = await store.select(
            RepMilestone,
            where=[eq("id", milestone_id), eq("org_id", org_id)],
            limit=1,
        )
        return RepMilestone(**rows[0]) if rows else None

    @staticmethod
    async def list_for_org(store: RecordStore, *, org_id: str) -> list[RepMilestone]:
        rows = await store.select(
            RepMilestone,
            where=[eq("org_id", org_id)],
            order_by=["sort_order", "threshold_value", "id"],
        )
        return [RepMilestone(**row) for row in rows]
