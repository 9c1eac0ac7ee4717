from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from tests.commerce.commerce_fixtures import EVENT_ID, NOW_UTC, ORG_ID, seed_milestone, seed_rep, seed_reward
from ticketing.commerce.errors import (
    AlreadyClaimedError,
    CapExceededError,
    CommerceValidationError,
    InsufficientPointsError,
    MilestoneNotAchievedError,
    RewardNotFoundError,
    RewardUnavailableError,
)
from ticketing.commerce.ledger.service import LedgerStore
from ticketing.commerce.rewards.claims import RewardClaimService
from ticketing.db.filters import eq
from ticketing.db.models.rep_reward_claims import RepRewardClaim
from ticketing.db.models.rep_rewards import RepReward
from ticketing.db.models.reps import Rep


def _row(store, model, row_id: str) -> dict:
    return next(row for row in store.rows(model) if row["id"] == row_id)


async def _funded_rep(store, points: int, **kwargs) -> str:
    rep_id = await seed_rep(store, **kwargs)
    await LedgerStore(store).award(
        rep_id=rep_id,
        org_id=ORG_ID,
        points=points,
        source_type="manual",
        description="Opening balance",
        now_utc=NOW_UTC,
    )
    return rep_id


@pytest.mark.asyncio
async def test_last_unit_goes_to_first_claimant_and_then_cap_is_exceeded(store) -> None:
    reward_id = await seed_reward(store, points_cost=500, total_available=1)
    first_rep = await _funded_rep(store, 500, first_name="Alice")
    second_rep = await _funded_rep(store, 500, first_name="Ben")
    service = RewardClaimService(store)

    claim = await service.claim(rep_id=first_rep, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC)

    assert claim.points_spent == 500
    assert claim.claim_type == "points_shop"
    assert _row(store, RepReward, reward_id)["total_claimed"] == 1
    assert _row(store, Rep, first_rep)["points_balance"] == 0

    with pytest.raises(CapExceededError):
        await service.claim(rep_id=second_rep, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC)

    assert _row(store, Rep, second_rep)["points_balance"] == 500


@pytest.mark.asyncio
async def test_concurrent_claims_never_exceed_cap(store) -> None:
    reward_id = await seed_reward(store, points_cost=100, total_available=2)
    rep_ids = [await _funded_rep(store, 100, first_name=f"Rep{index}") for index in range(6)]
    service = RewardClaimService(store)

    results = await asyncio.gather(
        *(service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC) for rep_id in rep_ids),
        return_exceptions=True,
    )

    winners = [result for result in results if isinstance(result, RepRewardClaim)]
    losers = [result for result in results if isinstance(result, CapExceededError)]
    assert len(winners) == 2
    assert len(losers) == 4
    assert _row(store, RepReward, reward_id)["total_claimed"] == 2
    balances = sorted(_row(store, Rep, rep_id)["points_balance"] for rep_id in rep_ids)
    assert balances == [0, 0, 100, 100, 100, 100]


@pytest.mark.asyncio
async def test_concurrent_duplicate_claims_by_one_rep_charge_once(store) -> None:
    reward_id = await seed_reward(store, points_cost=300)
    rep_id = await _funded_rep(store, 1000)
    service = RewardClaimService(store)
    ledger = LedgerStore(store)

    results = await asyncio.gather(
        *(service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC) for _ in range(2)),
        return_exceptions=True,
    )

    assert sum(1 for result in results if isinstance(result, RepRewardClaim)) == 1
    assert sum(1 for result in results if isinstance(result, AlreadyClaimedError)) == 1
    assert _row(store, Rep, rep_id)["points_balance"] == 700
    assert await ledger.ledger_balance(rep_id) == 700
    assert _row(store, RepReward, reward_id)["total_claimed"] == 1
    assert len(store.rows(RepRewardClaim)) == 1


@pytest.mark.asyncio
async def test_second_sequential_claim_is_rejected(store) -> None:
    reward_id = await seed_reward(store, points_cost=100)
    rep_id = await _funded_rep(store, 500)
    service = RewardClaimService(store)
    await service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC)

    with pytest.raises(AlreadyClaimedError):
        await service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC)

    assert _row(store, Rep, rep_id)["points_balance"] == 400


@pytest.mark.asyncio
async def test_claim_with_insufficient_points_leaves_stock_untouched(store) -> None:
    reward_id = await seed_reward(store, points_cost=500, total_available=3)
    rep_id = await _funded_rep(store, 499)

    with pytest.raises(InsufficientPointsError):
        await RewardClaimService(store).claim(rep_id=rep_id, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC)

    assert _row(store, RepReward, reward_id)["total_claimed"] == 0
    assert _row(store, Rep, rep_id)["points_balance"] == 499


@pytest.mark.asyncio
async def test_archived_and_missing_rewards(store) -> None:
    rep_id = await _funded_rep(store, 1000)
    archived_id = await seed_reward(store, status="archived")
    manual_id = await seed_reward(store, reward_type="manual", points_cost=None)
    service = RewardClaimService(store)

    with pytest.raises(RewardUnavailableError):
        await service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id=archived_id, now_utc=NOW_UTC)
    with pytest.raises(RewardNotFoundError):
        await service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id="missing", now_utc=NOW_UTC)
    with pytest.raises(CommerceValidationError):
        await service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id=manual_id, now_utc=NOW_UTC)


@pytest.mark.asyncio
async def test_milestone_claim_requires_threshold(store) -> None:
    rep_id = await seed_rep(store, total_sales=3)
    reward_id = await seed_reward(store, reward_type="milestone", points_cost=None)
    milestone_id = await seed_milestone(store, reward_id=reward_id, threshold_value=Decimal("5"))
    service = RewardClaimService(store)

    with pytest.raises(CommerceValidationError):
        await service.claim(rep_id=rep_id, org_id=ORG_ID, reward_id=reward_id, now_utc=NOW_UTC)
    with pytest.raises(MilestoneNotAchievedError):
        await service.claim(
            rep_id=rep_id,
            org_id=ORG_ID,
            reward_id=reward_id,
            milestone_id=milestone_id,
            now_utc=NOW_UTC,
        )

    await store.update(Rep, {"total_sales": 5}, where=[eq("id", rep_id)])
    claim = await service.claim(
        rep_id=rep_id,
        org_id=ORG_ID,
        reward_id=reward_id,
        milestone_id=milestone_id,
        now_utc=NOW_UTC,
    )
    assert claim.claim_type == "milestone"
    assert claim.points_spent == 0

    with pytest.raises(AlreadyClaimedError):
        await service.claim(
            rep_id=rep_id,
            org_id=ORG_ID,
            reward_id=reward_id,
            milestone_id=milestone_id,
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_achieved_milestones_are_claimed_and_revoked_when_unearned(store) -> None:
    rep_id = await seed_rep(store, total_sales=12)
    reward_id = await seed_reward(store, reward_type="milestone", points_cost=None, total_available=5)
    reached_id = await seed_milestone(store, reward_id=reward_id, threshold_value=Decimal("10"))
    await seed_milestone(store, reward_id=reward_id, threshold_value=Decimal("50"), sort_order=1)
    service = RewardClaimService(store)

    created = await service.claim_achieved_milestones(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC)
    replay = await service.claim_achieved_milestones(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC)

    assert [claim.milestone_id for claim in created] == [reached_id]
    assert replay == []
    assert _row(store, RepReward, reward_id)["total_claimed"] == 1

    await store.update(Rep, {"total_sales": 8}, where=[eq("id", rep_id)])
    revoked = await service.revoke_unearned_milestones(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC)

    assert revoked == 1
    claim_row = store.rows(RepRewardClaim)[0]
    assert claim_row["status"] == "cancelled"
    assert claim_row["dedupe_key"] is None
    assert _row(store, RepReward, reward_id)["total_claimed"] == 0


@pytest.mark.asyncio
async def test_event_scoped_claiming_skips_milestones_for_other_events(store) -> None:
    rep_id = await seed_rep(store, total_sales=12)
    reward_id = await seed_reward(store, reward_type="milestone", points_cost=None, total_available=5)
    org_wide_id = await seed_milestone(store, reward_id=reward_id)
    this_event_id = await seed_milestone(store, reward_id=reward_id, event_id=EVENT_ID, sort_order=1)
    other_event_id = await seed_milestone(store, reward_id=reward_id, event_id="event-autumn-fair", sort_order=2)
    service = RewardClaimService(store)

    scoped = await service.claim_achieved_milestones(
        rep_id=rep_id,
        org_id=ORG_ID,
        now_utc=NOW_UTC,
        event_id=EVENT_ID,
    )
    unscoped = await service.claim_achieved_milestones(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC)

    assert {claim.milestone_id for claim in scoped} == {org_wide_id, this_event_id}
    assert [claim.milestone_id for claim in unscoped] == [other_event_id]
