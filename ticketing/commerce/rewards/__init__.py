from ticketing.commerce.rewards.claims import RewardClaimService
from ticketing.commerce.rewards.eligibility import (
    EligibilityEngine,
    MilestoneProgress,
    RewardEligibility,
    can_claim,
    milestone_progress,
    progress_percent,
)

__all__ = [
    "EligibilityEngine",
    "MilestoneProgress",
    "RewardClaimService",
    "RewardEligibility",
    "can_claim",
    "milestone_progress",
    "progress_percent",
]
