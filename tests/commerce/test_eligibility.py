from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from tests.commerce.commerce_fixtures import ORG_ID, seed_milestone, seed_rep, seed_reward
from ticketing.commerce.errors import RepNotFoundError
from ticketing.commerce.rewards.eligibility import (
    EligibilityEngine,
    can_claim,
    cap_reached,
    milestone_metric,
    progress_percent,
    remaining_stock,
)


def _rep(**overrides) -> SimpleNamespace:
    values = {
        "id": "rep-1",
        "points_balance": 0,
        "total_sales": 0,
        "total_revenue": Decimal("0"),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _reward(**overrides) -> SimpleNamespace:
    values = {
        "id": "reward-1",
        "reward_type": "points_shop",
        "status": "active",
        "points_cost": 500,
        "total_available": None,
        "total_claimed": 0,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _claim(**overrides) -> SimpleNamespace:
    values = {
        "rep_id": "rep-1",
        "reward_id": "reward-1",
        "milestone_id": None,
        "claim_type": "points_shop",
        "status": "claimed",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_progress_percent_rounds_and_clamps() -> None:
    assert progress_percent(0, 10) == 0
    assert progress_percent(1, 3) == 33
    assert progress_percent(2, 3) == 67
    assert progress_percent(15, 10) == 100
    assert progress_percent(5, 0) == 0


def test_progress_percent_is_monotonic_in_current_value() -> None:
    values = [progress_percent(current, 37) for current in range(0, 60)]
    assert values == sorted(values)
    assert values[-1] == 100


def test_milestone_metric_reads_rep_counter() -> None:
    rep = _rep(total_sales=12, total_revenue=Decimal("340.50"), points_balance=90)
    assert milestone_metric(rep, "sales_count") == Decimal("12")
    assert milestone_metric(rep, "revenue") == Decimal("340.50")
    assert milestone_metric(rep, "points") == Decimal("90")
    with pytest.raises(ValueError):
        milestone_metric(rep, "referrals")


def test_cap_and_remaining_stock() -> None:
    assert cap_reached(_reward(total_available=2, total_claimed=2)) is True
    assert cap_reached(_reward(total_available=None, total_claimed=1000)) is False
    assert remaining_stock(_reward(total_available=5, total_claimed=2)) == 3
    assert remaining_stock(_reward(total_available=None)) is None


def test_can_claim_requires_balance_stock_and_no_live_claim() -> None:
    rep = _rep(points_balance=500)
    assert can_claim(rep, _reward()) is True
    assert can_claim(_rep(points_balance=499), _reward()) is False
    assert can_claim(rep, _reward(total_available=1, total_claimed=1)) is False
    assert can_claim(rep, _reward(status="archived")) is False
    assert can_claim(rep, _reward(reward_type="milestone")) is False
    assert can_claim(rep, _reward(), [_claim()]) is False
    assert can_claim(rep, _reward(), [_claim(status="cancelled")]) is True


@pytest.mark.asyncio
async def test_eligibility_lists_shop_and_milestone_rewards(store) -> None:
    rep_id = await seed_rep(store, points_balance=250, total_sales=5)
    shop_id = await seed_reward(store, name="Cap", points_cost=200, total_available=10, total_claimed=4)
    await seed_reward(store, name="Archived", status="archived")
    milestone_reward_id = await seed_reward(store, name="VIP pass", reward_type="milestone", points_cost=None)
    first_id = await seed_milestone(store, reward_id=milestone_reward_id, threshold_value=Decimal("4"), sort_order=0)
    second_id = await seed_milestone(store, reward_id=milestone_reward_id, threshold_value=Decimal("20"), sort_order=1)

    rows = await EligibilityEngine(store).eligibility(rep_id=rep_id, org_id=ORG_ID)

    by_key = {(row.reward_id, row.milestone_id): row for row in rows}
    assert len(rows) == 3
    shop = by_key[(shop_id, None)]
    assert shop.can_purchase is True
    assert shop.achieved is True
    assert shop.progress_percent == 100
    assert shop.remaining == 6
    first = by_key[(milestone_reward_id, first_id)]
    assert first.achieved is True
    assert first.progress_percent == 100
    assert first.can_purchase is False
    second = by_key[(milestone_reward_id, second_id)]
    assert second.achieved is False
    assert second.progress_percent == 25


@pytest.mark.asyncio
async def test_eligibility_for_other_tenant_rep_is_not_found(store) -> None:
    rep_id = await seed_rep(store, org_id="fest")

    with pytest.raises(RepNotFoundError):
        await EligibilityEngine(store).eligibility(rep_id=rep_id, org_id=ORG_ID)
