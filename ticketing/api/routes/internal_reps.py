from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request

from ticketing.api.deps import get_issuer, get_store
from ticketing.api.routes.internal_helpers import HANDLED_ERRORS, as_http_error, authorize
from ticketing.api.routes.internal_reps_models import (
    AwardPointsRequest,
    AwardPointsResponse,
    ClaimRewardRequest,
    ClaimRewardResponse,
    DiscountCodeRequest,
    DiscountCodeResponse,
    EligibilityResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    LedgerEntryResponse,
    PointsHistoryResponse,
    RewardEligibilityResponse,
)
from ticketing.commerce.discounts import DiscountService
from ticketing.commerce.identifiers.service import IdentifierIssuer
from ticketing.commerce.leaderboard import DEFAULT_LEADERBOARD_LIMIT, LeaderboardService, position_of
from ticketing.commerce.ledger.service import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT, LedgerStore
from ticketing.commerce.program_settings import ProgramSettingsStore
from ticketing.commerce.rewards.claims import RewardClaimService
from ticketing.commerce.rewards.eligibility import EligibilityEngine
from ticketing.db.store import RecordStore

router = APIRouter(prefix="/internal/reps", tags=["internal", "reps"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    request: Request,
    limit: int = Query(default=DEFAULT_LEADERBOARD_LIMIT, ge=1, le=200),
    rep_id: str | None = Query(default=None, max_length=64),
    store: RecordStore = Depends(get_store),
) -> LeaderboardResponse:
    context = authorize(request, permission="reps")
    try:
        ranked = await LeaderboardService(store).full_ranking(org_id=context.org_id)
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return LeaderboardResponse(
        entries=[LeaderboardEntryResponse(**asdict(entry)) for entry in ranked[:limit]],
        position=position_of(rep_id, ranked) if rep_id else None,
    )


@router.get("/settings")
async def get_program_settings(request: Request, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    context = authorize(request, permission="reps")
    try:
        settings = await ProgramSettingsStore.load(store, org_id=context.org_id)
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return settings.model_dump(mode="json")


@router.post("/settings")
async def update_program_settings(
    request: Request,
    payload: dict[str, Any] = Body(...),
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    context = authorize(request, permission="settings")
    try:
        settings = await ProgramSettingsStore.update(
            store,
            org_id=context.org_id,
            partial=payload,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return settings.model_dump(mode="json")


@router.post("/{rep_id}/points", response_model=AwardPointsResponse)
async def award_points(
    rep_id: str,
    payload: AwardPointsRequest,
    request: Request,
    store: RecordStore = Depends(get_store),
) -> AwardPointsResponse:
    context = authorize(request, permission="reps")
    try:
        balance = await LedgerStore(store).award(
            rep_id=rep_id,
            org_id=context.org_id,
            points=payload.points,
            currency=payload.currency,
            source_type=payload.source_type,
            source_ref=payload.source_ref,
            description=payload.description,
            created_by=context.user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return AwardPointsResponse(new_balance=balance)


@router.get("/{rep_id}/points", response_model=PointsHistoryResponse)
async def get_points_history(
    rep_id: str,
    request: Request,
    limit: int = Query(default=HISTORY_DEFAULT_LIMIT, ge=1, le=HISTORY_MAX_LIMIT),
    offset: int = Query(default=0, ge=0),
    store: RecordStore = Depends(get_store),
) -> PointsHistoryResponse:
    context = authorize(request, permission="reps")
    try:
        entries = await LedgerStore(store).history(rep_id=rep_id, org_id=context.org_id, limit=limit, offset=offset)
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return PointsHistoryResponse(
        entries=[
            LedgerEntryResponse(
                id=entry.id,
                correlation_id=entry.correlation_id,
                points=entry.points,
                currency=entry.currency,
                source_type=entry.source_type,
                source_ref=entry.source_ref,
                description=entry.description,
                created_by=entry.created_by,
                created_at=entry.created_at,
            )
            for entry in entries
        ],
        limit=limit,
        offset=offset,
    )


@router.get("/{rep_id}/rewards/eligibility", response_model=EligibilityResponse)
async def get_reward_eligibility(
    rep_id: str,
    request: Request,
    store: RecordStore = Depends(get_store),
) -> EligibilityResponse:
    context = authorize(request, permission="reps")
    try:
        rows = await EligibilityEngine(store).eligibility(rep_id=rep_id, org_id=context.org_id)
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return EligibilityResponse(rewards=[RewardEligibilityResponse(**asdict(row)) for row in rows])


@router.post("/{rep_id}/rewards/{reward_id}/claim", response_model=ClaimRewardResponse, status_code=201)
async def claim_reward(
    rep_id: str,
    reward_id: str,
    request: Request,
    payload: ClaimRewardRequest | None = None,
    store: RecordStore = Depends(get_store),
) -> ClaimRewardResponse:
    context = authorize(request, permission="reps")
    try:
        claim = await RewardClaimService(store).claim(
            rep_id=rep_id,
            org_id=context.org_id,
            reward_id=reward_id,
            milestone_id=payload.milestone_id if payload is not None else None,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return ClaimRewardResponse(claim_id=claim.id, claim_type=claim.claim_type, points_spent=claim.points_spent)


@router.post("/{rep_id}/discount-code", response_model=DiscountCodeResponse, status_code=201)
async def issue_discount_code(
    rep_id: str,
    request: Request,
    payload: DiscountCodeRequest | None = None,
    store: RecordStore = Depends(get_store),
    issuer: IdentifierIssuer = Depends(get_issuer),
) -> DiscountCodeResponse:
    context = authorize(request, permission="reps")
    try:
        discount = await DiscountService(store, issuer=issuer).issue_for_rep(
            rep_id=rep_id,
            org_id=context.org_id,
            applicable_event_ids=payload.applicable_event_ids if payload is not None else None,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return DiscountCodeResponse(
        id=discount.id,
        code=discount.code,
        discount_type=discount.discount_type,
        value=discount.value,
    )
