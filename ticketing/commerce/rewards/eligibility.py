from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ticketing.commerce.errors import RepNotFoundError
from ticketing.db.models.rep_milestones import RepMilestone
from ticketing.db.models.rep_reward_claims import RepRewardClaim
from ticketing.db.models.rep_rewards import RepReward
from ticketing.db.models.reps import Rep
from ticketing.db.repo.rep_reward_claims_repo import RepRewardClaimsRepo
from ticketing.db.repo.rep_rewards_repo import RepMilestonesRepo, RepRewardsRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.store import RecordStore

MILESTONE_METRICS = {
    "sales_count": "total_sales",
    "revenue": "total_revenue",
    "points": "points_balance",
}


@dataclass(frozen=True, slots=True)
class MilestoneProgress:
    current_value: Decimal
    threshold: Decimal
    achieved: bool
    progress_percent: int
    claimed: bool


@dataclass(frozen=True, slots=True)
class RewardEligibility:
    reward_id: str
    reward_name: str
    reward_type: str
    milestone_id: str | None
    milestone_title: str | None
    achieved: bool
    progress_percent: int
    claimed: bool
    can_purchase: bool
    points_cost: int | None
    remaining: int | None


def milestone_metric(rep: Rep, milestone_type: str) -> Decimal:
    attribute = MILESTONE_METRICS.get(milestone_type)
    if attribute is None:
        raise ValueError(f"Unsupported milestone_type: {milestone_type}")
    return Decimal(getattr(rep, attribute) or 0)


def progress_percent(current_value: Decimal | int, threshold: Decimal | int) -> int:
    threshold_dec = Decimal(threshold)
    if threshold_dec <= 0:
        return 0
    ratio = Decimal(current_value) / threshold_dec * 100
    rounded = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, rounded))


def is_live(claim: RepRewardClaim) -> bool:
    return claim.status != "cancelled"


def has_milestone_claim(claims: Iterable[RepRewardClaim], *, rep_id: str, milestone_id: str) -> bool:
    return any(
        is_live(claim) and claim.rep_id == rep_id and claim.milestone_id == milestone_id for claim in claims
    )


def has_shop_claim(claims: Iterable[RepRewardClaim], *, rep_id: str, reward_id: str) -> bool:
    return any(
        is_live(claim)
        and claim.rep_id == rep_id
        and claim.reward_id == reward_id
        and claim.claim_type == "points_shop"
        for claim in claims
    )


def cap_reached(reward: RepReward) -> bool:
    return reward.total_available is not None and reward.total_claimed >= reward.total_available


def remaining_stock(reward: RepReward) -> int | None:
    if reward.total_available is None:
        return None
    return max(0, reward.total_available - reward.total_claimed)


def milestone_progress(
    rep: Rep,
    milestone: RepMilestone,
    claims: Iterable[RepRewardClaim] = (),
) -> MilestoneProgress:
    current = milestone_metric(rep, milestone.milestone_type)
    threshold = Decimal(milestone.threshold_value)
    return MilestoneProgress(
        current_value=current,
        threshold=threshold,
        achieved=current >= threshold,
        progress_percent=progress_percent(current, threshold),
        claimed=has_milestone_claim(claims, rep_id=rep.id, milestone_id=milestone.id),
    )


def can_claim(rep: Rep, reward: RepReward, claim_history: Iterable[RepRewardClaim] = ()) -> bool:
    """Display-time check for points-shop rewards; claims re-check the cap atomically."""
    if reward.reward_type != "points_shop" or reward.status != "active":
        return False
    if reward.points_cost is None or rep.points_balance < reward.points_cost:
        return False
    if cap_reached(reward):
        return False
    return not has_shop_claim(claim_history, rep_id=rep.id, reward_id=reward.id)


class EligibilityEngine:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def eligibility(self, *, rep_id: str, org_id: str) -> list[RewardEligibility]:
        rep = await RepsRepo.get_by_id(self._store, rep_id, org_id=org_id)
        if rep is None:
            raise RepNotFoundError(rep_id)

        rewards = await RepRewardsRepo.list_active_for_org(self._store, org_id=org_id)
        milestones = await RepMilestonesRepo.list_for_org(self._store, org_id=org_id)
        claims = await RepRewardClaimsRepo.list_live_for_rep(self._store, rep_id=rep_id)

        milestones_by_reward: dict[str, list[RepMilestone]] = {}
        for milestone in milestones:
            milestones_by_reward.setdefault(milestone.reward_id, []).append(milestone)

        result: list[RewardEligibility] = []
        for reward in rewards:
            if reward.reward_type == "milestone":
                for milestone in milestones_by_reward.get(reward.id, []):
                    progress = milestone_progress(rep, milestone, claims)
                    result.append(
                        RewardEligibility(
                            reward_id=reward.id,
                            reward_name=reward.name,
                            reward_type=reward.reward_type,
                            milestone_id=milestone.id,
                            milestone_title=milestone.title,
                            achieved=progress.achieved,
                            progress_percent=progress.progress_percent,
                            claimed=progress.claimed,
                            can_purchase=False,
                            points_cost=None,
                            remaining=remaining_stock(reward),
                        )
                    )
                continue

            claimed = has_shop_claim(claims, rep_id=rep_id, reward_id=reward.id)
            purchasable = can_claim(rep, reward, claims)
            cost = reward.points_cost or 0
            result.append(
                RewardEligibility(
                    reward_id=reward.id,
                    reward_name=reward.name,
                    reward_type=reward.reward_type,
                    milestone_id=None,
                    milestone_title=None,
                    achieved=purchasable or claimed,
                    progress_percent=progress_percent(rep.points_balance, cost) if cost else 0,
                    claimed=claimed,
                    can_purchase=purchasable,
                    points_cost=reward.points_cost,
                    remaining=remaining_stock(reward),
                )
            )
        return result
