from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class AwardPointsRequest(BaseModel):
    points: int
    currency: int = 0
    description: str = Field(min_length=1, max_length=500)
    source_type: Literal["manual", "quest"] = "manual"
    source_ref: str | None = Field(default=None, max_length=128)


class AwardPointsResponse(BaseModel):
    new_balance: int


class LedgerEntryResponse(BaseModel):
    id: str
    correlation_id: str
    points: int
    currency: int = 0
    source_type: str
    source_ref: str | None = None
    description: str
    created_by: str | None = None
    created_at: datetime


class PointsHistoryResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    limit: int
    offset: int


class RewardEligibilityResponse(BaseModel):
    reward_id: str
    reward_name: str
    reward_type: str
    milestone_id: str | None = None
    milestone_title: str | None = None
    achieved: bool
    progress_percent: int = Field(ge=0, le=100)
    claimed: bool
    can_purchase: bool
    points_cost: int | None = None
    remaining: int | None = None


class EligibilityResponse(BaseModel):
    rewards: list[RewardEligibilityResponse]


class ClaimRewardRequest(BaseModel):
    milestone_id: str | None = Field(default=None, max_length=64)


class ClaimRewardResponse(BaseModel):
    claim_id: str
    claim_type: str
    points_spent: int


class DiscountCodeRequest(BaseModel):
    applicable_event_ids: list[str] | None = None


class DiscountCodeResponse(BaseModel):
    id: str
    code: str
    discount_type: str
    value: Decimal


class LeaderboardEntryResponse(BaseModel):
    position: int = Field(ge=1)
    rep_id: str
    display_name: str
    total_revenue: Decimal
    total_sales: int
    level: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntryResponse]
    position: int | None = None
