from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from tests.commerce.commerce_fixtures import NOW_UTC, ORG_ID, seed_rep
from ticketing.commerce.errors import (
    CommerceValidationError,
    DuplicateAwardError,
    InsufficientPointsError,
    RepNotFoundError,
)
from ticketing.commerce.ledger import service as ledger_service
from ticketing.commerce.ledger.service import LedgerStore, clamp_history_window
from ticketing.commerce.reconciliation.service import AggregateReconciler
from ticketing.db.errors import StoreError
from ticketing.db.filters import eq
from ticketing.db.models.rep_points_ledger import RepPointsLedgerEntry
from ticketing.db.models.reps import Rep
from ticketing.db.repo.reps_repo import RepsRepo


def _rep_row(store, rep_id: str) -> dict:
    return next(row for row in store.rows(Rep) if row["id"] == rep_id)


def test_clamp_history_window_bounds_limit_and_offset() -> None:
    assert clamp_history_window(0, -5) == (1, 0)
    assert clamp_history_window(1000, 20) == (200, 20)


@pytest.mark.asyncio
async def test_award_appends_entry_and_updates_cached_balance(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)

    balance = await ledger.award(
        rep_id=rep_id,
        org_id=ORG_ID,
        points=120,
        source_type="manual",
        description="  Launch week bonus ",
        now_utc=NOW_UTC,
        created_by="admin-1",
    )

    assert balance == 120
    rep = _rep_row(store, rep_id)
    assert rep["points_balance"] == 120
    assert rep["level"] == 2
    entries = store.rows(RepPointsLedgerEntry)
    assert len(entries) == 1
    assert entries[0]["description"] == "Launch week bonus"
    assert entries[0]["created_by"] == "admin-1"
    assert entries[0]["correlation_id"]


@pytest.mark.asyncio
async def test_award_rejects_duplicate_source_ref(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)
    await ledger.award(
        rep_id=rep_id,
        org_id=ORG_ID,
        points=10,
        source_type="sale",
        source_ref="order-1",
        description="Sale",
        now_utc=NOW_UTC,
    )

    with pytest.raises(DuplicateAwardError):
        await ledger.award(
            rep_id=rep_id,
            org_id=ORG_ID,
            points=10,
            source_type="sale",
            source_ref="order-1",
            description="Sale",
            now_utc=NOW_UTC,
        )

    assert _rep_row(store, rep_id)["points_balance"] == 10
    assert len(store.rows(RepPointsLedgerEntry)) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_awards_credit_once(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)

    results = await asyncio.gather(
        *(
            ledger.award(
                rep_id=rep_id,
                org_id=ORG_ID,
                points=10,
                source_type="sale",
                source_ref="order-retried",
                description="Sale",
                now_utc=NOW_UTC,
            )
            for _ in range(3)
        ),
        return_exceptions=True,
    )

    assert sum(1 for result in results if isinstance(result, DuplicateAwardError)) == 2
    assert _rep_row(store, rep_id)["points_balance"] == 10
    assert await ledger.ledger_balance(rep_id) == 10


@pytest.mark.asyncio
async def test_concurrent_awards_keep_balance_equal_to_ledger_sum(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)

    await asyncio.gather(
        *(
            ledger.award(
                rep_id=rep_id,
                org_id=ORG_ID,
                points=5,
                source_type="quest",
                source_ref=f"quest-{index}",
                description="Quest complete",
                now_utc=NOW_UTC,
            )
            for index in range(20)
        )
    )

    assert _rep_row(store, rep_id)["points_balance"] == 100
    assert await ledger.ledger_balance(rep_id) == 100


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("points", "source_type", "description"),
    [
        (0, "manual", "Zero"),
        (10, "bonus", "Unknown source"),
        (10, "manual", "   "),
        (10, "manual", "x" * 501),
        (True, "manual", "Boolean points"),
    ],
)
async def test_award_validates_input(store, points, source_type, description) -> None:
    rep_id = await seed_rep(store)

    with pytest.raises(CommerceValidationError):
        await LedgerStore(store).award(
            rep_id=rep_id,
            org_id=ORG_ID,
            points=points,
            source_type=source_type,
            description=description,
            now_utc=NOW_UTC,
        )

    assert store.rows(RepPointsLedgerEntry) == []


@pytest.mark.asyncio
async def test_award_for_rep_in_other_org_is_not_found(store) -> None:
    rep_id = await seed_rep(store, org_id="fest")

    with pytest.raises(RepNotFoundError):
        await LedgerStore(store).award(
            rep_id=rep_id,
            org_id=ORG_ID,
            points=10,
            source_type="manual",
            description="Wrong tenant",
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_negative_manual_award_may_push_balance_below_zero(store) -> None:
    rep_id = await seed_rep(store)

    balance = await LedgerStore(store).award(
        rep_id=rep_id,
        org_id=ORG_ID,
        points=-30,
        source_type="manual",
        description="Correction",
        now_utc=NOW_UTC,
    )

    assert balance == -30
    assert _rep_row(store, rep_id)["level"] == 1


@pytest.mark.asyncio
async def test_debit_spends_points(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)
    await ledger.award(
        rep_id=rep_id, org_id=ORG_ID, points=300, source_type="manual", description="Seed", now_utc=NOW_UTC
    )

    balance = await ledger.debit(
        rep_id=rep_id,
        org_id=ORG_ID,
        points=120,
        description="Redeemed: Hoodie",
        source_ref="claim:1",
        now_utc=NOW_UTC,
    )

    assert balance == 180
    assert await ledger.ledger_balance(rep_id) == 180


@pytest.mark.asyncio
async def test_debit_with_insufficient_points_is_reversed(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)
    await ledger.award(
        rep_id=rep_id, org_id=ORG_ID, points=100, source_type="manual", description="Seed", now_utc=NOW_UTC
    )

    with pytest.raises(InsufficientPointsError):
        await ledger.debit(
            rep_id=rep_id,
            org_id=ORG_ID,
            points=150,
            description="Redeemed: Jacket",
            source_ref="claim:2",
            now_utc=NOW_UTC,
        )

    assert _rep_row(store, rep_id)["points_balance"] == 100
    assert await ledger.ledger_balance(rep_id) == 100
    refs = sorted(row["source_ref"] for row in store.rows(RepPointsLedgerEntry) if row["source_type"] == "redemption")
    assert refs == ["claim:2", "claim:2:reversal"]


@pytest.mark.asyncio
async def test_debit_rejects_non_positive_amount(store) -> None:
    rep_id = await seed_rep(store)

    with pytest.raises(CommerceValidationError):
        await LedgerStore(store).debit(
            rep_id=rep_id,
            org_id=ORG_ID,
            points=0,
            description="Nothing",
            source_ref="claim:3",
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_failed_balance_update_keeps_entry_and_reports_ledger_balance(store, monkeypatch) -> None:
    rep_id = await seed_rep(store)
    alerts: list[str] = []

    async def _broken_add_points(*args, **kwargs):
        raise StoreError("connection reset")

    async def _fake_alert(*, event: str, payload: dict[str, object]) -> bool:
        alerts.append(event)
        return True

    monkeypatch.setattr(RepsRepo, "add_points", _broken_add_points)
    monkeypatch.setattr(ledger_service, "send_ops_alert", _fake_alert)

    balance = await LedgerStore(store).award(
        rep_id=rep_id,
        org_id=ORG_ID,
        points=50,
        source_type="manual",
        description="Bonus",
        now_utc=NOW_UTC,
    )

    assert balance == 50
    assert _rep_row(store, rep_id)["points_balance"] == 0
    assert len(store.rows(RepPointsLedgerEntry)) == 1
    assert alerts == ["points_balance_update_failed"]


@pytest.mark.asyncio
async def test_rebalance_overwrites_drifted_cache(store) -> None:
    rep_id = await seed_rep(store, points_balance=999)
    ledger = LedgerStore(store)

    check = await ledger.rebalance(rep_id=rep_id, org_id=ORG_ID)

    assert check.healed is True
    assert check.drift == 999
    assert check.ledger_balance == 0
    assert _rep_row(store, rep_id)["points_balance"] == 0


@pytest.mark.asyncio
async def test_rebalance_is_a_no_op_when_cache_matches(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)
    await ledger.award(
        rep_id=rep_id, org_id=ORG_ID, points=40, source_type="manual", description="Seed", now_utc=NOW_UTC
    )

    check = await ledger.rebalance(rep_id=rep_id, org_id=ORG_ID)

    assert check.healed is False
    assert check.drift == 0


@pytest.mark.asyncio
async def test_history_is_newest_first_and_paginated(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)
    for index in range(3):
        await ledger.award(
            rep_id=rep_id,
            org_id=ORG_ID,
            points=10 + index,
            source_type="manual",
            description=f"Award {index}",
            now_utc=NOW_UTC + timedelta(minutes=index),
        )

    page = await ledger.history(rep_id=rep_id, org_id=ORG_ID, limit=2)
    rest = await ledger.history(rep_id=rep_id, org_id=ORG_ID, limit=2, offset=2)

    assert [entry.points for entry in page] == [12, 11]
    assert [entry.points for entry in rest] == [10]


@pytest.mark.asyncio
async def test_rebalance_during_an_award_leaves_the_in_flight_entry_alone(store, monkeypatch) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)
    checks = []
    original_add_points = RepsRepo.add_points

    async def _sweep_then_add_points(store_, **kwargs):
        await AggregateReconciler(store).reconcile_rep_aggregates(rep_id, org_id=ORG_ID)
        checks.append(await ledger.rebalance(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC))
        return await original_add_points(store_, **kwargs)

    monkeypatch.setattr(RepsRepo, "add_points", _sweep_then_add_points)
    balance = await ledger.award(
        rep_id=rep_id, org_id=ORG_ID, points=100, source_type="manual", description="Bonus", now_utc=NOW_UTC
    )

    assert [(check.deferred, check.healed) for check in checks] == [(True, False)]
    assert balance == 100
    assert _rep_row(store, rep_id)["points_balance"] == 100
    assert await ledger.ledger_balance(rep_id) == 100
    assert store.rows(RepPointsLedgerEntry)[0]["balance_applied"] is True

    settled = await ledger.rebalance(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC)
    assert (settled.deferred, settled.drift) == (False, 0)


@pytest.mark.asyncio
async def test_unapplied_entry_is_healed_once_the_settle_grace_passes(store, monkeypatch) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)

    async def _broken_add_points(*args, **kwargs):
        raise StoreError("connection reset")

    async def _fake_alert(*, event: str, payload: dict[str, object]) -> bool:
        return True

    with monkeypatch.context() as patched:
        patched.setattr(RepsRepo, "add_points", _broken_add_points)
        patched.setattr(ledger_service, "send_ops_alert", _fake_alert)
        await ledger.award(
            rep_id=rep_id, org_id=ORG_ID, points=50, source_type="manual", description="Bonus", now_utc=NOW_UTC
        )

    early = await ledger.rebalance(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC + timedelta(minutes=1))
    late = await ledger.rebalance(rep_id=rep_id, org_id=ORG_ID, now_utc=NOW_UTC + timedelta(minutes=10))

    assert early.deferred is True
    assert late.healed is True
    assert late.drift == -50
    assert _rep_row(store, rep_id)["points_balance"] == 50


@pytest.mark.asyncio
async def test_currency_award_updates_cached_currency_and_heals_drift(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)

    await ledger.award(
        rep_id=rep_id,
        org_id=ORG_ID,
        points=0,
        currency=25,
        source_type="quest",
        source_ref="quest:1",
        description="Quest coins",
        now_utc=NOW_UTC,
    )

    rep = _rep_row(store, rep_id)
    assert (rep["points_balance"], rep["currency_balance"]) == (0, 25)
    assert await ledger.ledger_currency(rep_id) == 25

    await store.update(Rep, {"currency_balance": 3}, where=[eq("id", rep_id)])
    check = await ledger.rebalance(rep_id=rep_id, org_id=ORG_ID)

    assert check.healed is True
    assert check.drift == 0
    assert check.currency_drift == -22
    assert _rep_row(store, rep_id)["currency_balance"] == 25


@pytest.mark.asyncio
async def test_award_rejects_zero_points_and_zero_currency(store) -> None:
    rep_id = await seed_rep(store)

    with pytest.raises(CommerceValidationError):
        await LedgerStore(store).award(
            rep_id=rep_id, org_id=ORG_ID, points=0, source_type="manual", description="Nothing", now_utc=NOW_UTC
        )


@pytest.mark.asyncio
async def test_history_orders_entries_with_the_same_timestamp_by_insertion(store) -> None:
    rep_id = await seed_rep(store)
    ledger = LedgerStore(store)

    with pytest.raises(InsufficientPointsError):
        await ledger.debit(
            rep_id=rep_id,
            org_id=ORG_ID,
            points=10,
            description="Hoodie",
            source_ref="claim:9",
            now_utc=NOW_UTC,
        )

    history = await ledger.history(rep_id=rep_id, org_id=ORG_ID)

    assert [(entry.points, entry.source_ref) for entry in history] == [(10, "claim:9:reversal"), (-10, "claim:9")]
    assert {entry.created_at for entry in history} == {NOW_UTC}
