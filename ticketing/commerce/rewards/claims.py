from __future__ import annotations

from datetime import datetime
from uuid import uuid4

import structlog

from ticketing.commerce.errors import (
    AlreadyClaimedError,
    CapExceededError,
    CommerceValidationError,
    ConflictError,
    InsufficientPointsError,
    MilestoneNotAchievedError,
    MilestoneNotFoundError,
    RepNotFoundError,
    RewardNotFoundError,
    RewardUnavailableError,
)
from ticketing.commerce.ledger.service import LedgerStore
from ticketing.commerce.rewards.eligibility import cap_reached, has_shop_claim, milestone_progress
from ticketing.db.errors import UniqueViolationError
from ticketing.db.models.rep_milestones import RepMilestone
from ticketing.db.models.rep_reward_claims import RepRewardClaim
from ticketing.db.models.rep_rewards import RepReward
from ticketing.db.models.reps import Rep
from ticketing.db.repo.rep_reward_claims_repo import (
    RepRewardClaimsRepo,
    milestone_dedupe_key,
    points_shop_dedupe_key,
)
from ticketing.db.repo.rep_rewards_repo import RepMilestonesRepo, RepRewardsRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.store import RecordStore

logger = structlog.get_logger(__name__)


class RewardClaimService:
    def __init__(self, store: RecordStore, *, ledger: LedgerStore | None = None) -> None:
        self._store = store
        self._ledger = ledger or LedgerStore(store)

    async def _get_rep(self, rep_id: str, org_id: str) -> Rep:
        rep = await RepsRepo.get_by_id(self._store, rep_id, org_id=org_id)
        if rep is None:
            raise RepNotFoundError(rep_id)
        return rep

    async def _reserve(self, reward: RepReward) -> None:
        if await RepRewardsRepo.reserve_slot(self._store, reward_id=reward.id):
            return
        latest = await RepRewardsRepo.get_by_id(self._store, reward.id, org_id=reward.org_id)
        if latest is None or latest.status != "active":
            raise RewardUnavailableError(reward.id)
        raise CapExceededError(reward.id)

    async def _release(self, reward_id: str) -> None:
        if not await RepRewardsRepo.release_slot(self._store, reward_id=reward_id):
            logger.warning("reward_slot_release_skipped", reward_id=reward_id)

    async def claim(
        self,
        *,
        rep_id: str,
        org_id: str,
        reward_id: str,
        now_utc: datetime,
        milestone_id: str | None = None,
    ) -> RepRewardClaim:
        rep = await self._get_rep(rep_id, org_id)
        reward = await RepRewardsRepo.get_by_id(self._store, reward_id, org_id=org_id)
        if reward is None:
            raise RewardNotFoundError(reward_id)

        if reward.reward_type == "points_shop":
            return await self._claim_points_shop(rep=rep, reward=reward, now_utc=now_utc)
        if reward.reward_type == "milestone":
            if milestone_id is None:
                raise CommerceValidationError("milestone_id is required for milestone rewards")
            milestone = await RepMilestonesRepo.get_by_id(self._store, milestone_id, org_id=org_id)
            if milestone is None or milestone.reward_id != reward.id:
                raise MilestoneNotFoundError(milestone_id)
            return await self._claim_milestone(rep=rep, reward=reward, milestone=milestone, now_utc=now_utc)
        raise CommerceValidationError("manual rewards are granted by an administrator")

    async def _claim_points_shop(self, *, rep: Rep, reward: RepReward, now_utc: datetime) -> RepRewardClaim:
        if reward.status != "active" or reward.points_cost is None:
            raise RewardUnavailableError(reward.id)
        if cap_reached(reward):
            raise CapExceededError(reward.id)

        claims = await RepRewardClaimsRepo.list_live_for_rep(self._store, rep_id=rep.id)
        if has_shop_claim(claims, rep_id=rep.id, reward_id=reward.id):
            raise AlreadyClaimedError(reward.id)
        if rep.points_balance < reward.points_cost:
            raise InsufficientPointsError(rep.id)

        await self._reserve(reward)

        claim_id = str(uuid4())
        spend_ref = f"claim:{claim_id}"
        try:
            await self._ledger.debit(
                rep_id=rep.id,
                org_id=rep.org_id,
                points=reward.points_cost,
                description=f"Redeemed: {reward.name}",
                source_ref=spend_ref,
                now_utc=now_utc,
            )
        except Exception:
            await self._release(reward.id)
            raise

        try:
            claim = await RepRewardClaimsRepo.create(
                self._store,
                claim_id=claim_id,
                org_id=rep.org_id,
                rep_id=rep.id,
                reward_id=reward.id,
                claim_type="points_shop",
                milestone_id=None,
                points_spent=reward.points_cost,
                dedupe_key=points_shop_dedupe_key(rep_id=rep.id, reward_id=reward.id),
                notes=None,
                now_utc=now_utc,
            )
        except UniqueViolationError as exc:
            await self._ledger.award(
                rep_id=rep.id,
                org_id=rep.org_id,
                points=reward.points_cost,
                source_type="redemption",
                source_ref=f"{spend_ref}:refund",
                description=f"Refund: duplicate claim of {reward.name}",
                now_utc=now_utc,
            )
            await self._release(reward.id)
            raise AlreadyClaimedError(reward.id) from exc

        logger.info(
            "reward_claimed",
            rep_id=rep.id,
            org_id=rep.org_id,
            reward_id=reward.id,
            claim_id=claim.id,
            claim_type="points_shop",
            points_spent=reward.points_cost,
        )
        return claim

    async def _claim_milestone(
        self,
        *,
        rep: Rep,
        reward: RepReward,
        milestone: RepMilestone,
        now_utc: datetime,
    ) -> RepRewardClaim:
        claims = await RepRewardClaimsRepo.list_live_for_rep(self._store, rep_id=rep.id)
        progress = milestone_progress(rep, milestone, claims)
        if progress.claimed:
            raise AlreadyClaimedError(milestone.id)
        if not progress.achieved:
            raise MilestoneNotAchievedError(milestone.id)
        if reward.status != "active":
            raise RewardUnavailableError(reward.id)

        await self._reserve(reward)
        try:
            claim = await RepRewardClaimsRepo.create(
                self._store,
                claim_id=str(uuid4()),
                org_id=rep.org_id,
                rep_id=rep.id,
                reward_id=reward.id,
                claim_type="milestone",
                milestone_id=milestone.id,
                points_spent=0,
                dedupe_key=milestone_dedupe_key(rep_id=rep.id, milestone_id=milestone.id),
                notes=f"Milestone reached: {milestone.title}",
                now_utc=now_utc,
            )
        except UniqueViolationError as exc:
            await self._release(reward.id)
            raise AlreadyClaimedError(milestone.id) from exc

        logger.info(
            "reward_claimed",
            rep_id=rep.id,
            org_id=rep.org_id,
            reward_id=reward.id,
            milestone_id=milestone.id,
            claim_id=claim.id,
            claim_type="milestone",
        )
        return claim

    async def claim_achieved_milestones(
        self,
        *,
        rep_id: str,
        org_id: str,
        now_utc: datetime,
        event_id: str | None = None,
    ) -> list[RepRewardClaim]:
        """Claims every achieved milestone; with ``event_id``, only org-wide ones and that event's."""
        rep = await self._get_rep(rep_id, org_id)
        rewards = {
            reward.id: reward
            for reward in await RepRewardsRepo.list_active_for_org(self._store, org_id=org_id)
            if reward.reward_type == "milestone"
        }
        if not rewards:
            return []

        milestones = [
            milestone
            for milestone in await RepMilestonesRepo.list_for_org(self._store, org_id=org_id)
            if event_id is None or milestone.event_id is None or milestone.event_id == event_id
        ]
        claims = await RepRewardClaimsRepo.list_live_for_rep(self._store, rep_id=rep_id)

        created: list[RepRewardClaim] = []
        for milestone in milestones:
            reward = rewards.get(milestone.reward_id)
            if reward is None:
                continue
            progress = milestone_progress(rep, milestone, claims)
            if progress.claimed or not progress.achieved:
                continue
            try:
                created.append(
                    await self._claim_milestone(rep=rep, reward=reward, milestone=milestone, now_utc=now_utc)
                )
            except ConflictError as exc:
                logger.info(
                    "milestone_auto_claim_skipped",
                    rep_id=rep_id,
                    milestone_id=milestone.id,
                    reason=type(exc).__name__,
                )
        return created

    async def revoke_unearned_milestones(self, *, rep_id: str, org_id: str, now_utc: datetime) -> int:
        """Cancels live milestone claims whose threshold is no longer met."""
        rep = await self._get_rep(rep_id, org_id)
        claims = await RepRewardClaimsRepo.list_live_for_rep(self._store, rep_id=rep_id)

        revoked = 0
        for claim in claims:
            if claim.claim_type != "milestone" or claim.status != "claimed" or claim.milestone_id is None:
                continue
            milestone = await RepMilestonesRepo.get_by_id(self._store, claim.milestone_id, org_id=org_id)
            if milestone is None or milestone_progress(rep, milestone).achieved:
                continue
            if not await RepRewardClaimsRepo.cancel_claimed(self._store, claim_id=claim.id, now_utc=now_utc):
                continue
            await self._release(claim.reward_id)
            revoked += 1
            logger.info(
                "milestone_claim_revoked",
                rep_id=rep_id,
                milestone_id=milestone.id,
                claim_id=claim.id,
            )
        return revoked
