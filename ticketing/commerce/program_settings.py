from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ticketing.commerce.errors import CommerceValidationError
from ticketing.db.repo.site_settings_repo import SiteSettingsRepo
from ticketing.db.store import RecordStore

logger = structlog.get_logger(__name__)

DEFAULT_LEVEL_THRESHOLDS = (100, 300, 600, 1000, 1500, 2500, 4000, 6000, 10000)
DEFAULT_LEVEL_NAMES = (
    "Rookie",
    "Starter",
    "Rising",
    "Proven",
    "Veteran",
    "Elite",
    "Champion",
    "Legend",
    "Icon",
    "Mythic",
)
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

TENANT_EDITABLE_KEYS = frozenset(
    {
        "enabled",
        "auto_approve",
        "default_discount_percent",
        "default_discount_type",
        "leaderboard_visible",
        "max_events_per_rep",
        "welcome_message",
        "email_from_name",
        "email_from_address",
        "currency_per_sale",
        "currency_name",
    }
)


class RepProgramSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    points_per_sale: int = Field(default=10, ge=0)
    auto_approve: bool = False
    default_discount_percent: int = Field(default=10, ge=0, le=100)
    default_discount_type: Literal["percentage", "fixed"] = "percentage"
    level_thresholds: tuple[int, ...] = DEFAULT_LEVEL_THRESHOLDS
    level_names: tuple[str, ...] = DEFAULT_LEVEL_NAMES
    leaderboard_visible: bool = True
    max_events_per_rep: int | None = Field(default=None, ge=1)
    welcome_message: str | None = Field(default=None, max_length=2000)
    email_from_name: str = Field(default="Entry Reps", min_length=1, max_length=100)
    email_from_address: str = Field(default="reps@example.com", pattern=EMAIL_PATTERN, max_length=320)
    currency_per_sale: int = Field(default=0, ge=0)
    currency_name: str = Field(default="Coins", min_length=1, max_length=40)

    def level_name(self, level: int) -> str:
        if 1 <= level <= len(self.level_names):
            return self.level_names[level - 1]
        return f"Level {level}"


def calculate_level(points: int, thresholds: tuple[int, ...] | list[int]) -> int:
    return 1 + sum(1 for threshold in thresholds if points >= threshold)


def merge_with_defaults(
    partial: Mapping[str, Any],
    *,
    current: RepProgramSettings | None = None,
    allowed_keys: frozenset[str] = TENANT_EDITABLE_KEYS,
) -> RepProgramSettings:
    unknown = sorted(set(partial) - allowed_keys)
    if unknown:
        raise CommerceValidationError(f"Unknown settings keys: {', '.join(unknown)}")

    merged = (current or RepProgramSettings()).model_dump()
    merged.update(partial)
    try:
        return RepProgramSettings.model_validate(merged)
    except ValidationError as exc:
        raise CommerceValidationError(str(exc)) from exc


def settings_key(org_id: str) -> str:
    return f"reps:{org_id}"


class ProgramSettingsStore:
    @staticmethod
    async def load(store: RecordStore, *, org_id: str) -> RepProgramSettings:
        data = await SiteSettingsRepo.get_data(store, settings_key(org_id))
        if not data:
            return RepProgramSettings()

        known = set(RepProgramSettings.model_fields)
        ignored = sorted(set(data) - known)
        if ignored:
            logger.warning("rep_settings_unknown_keys_ignored", org_id=org_id, keys=ignored)
        try:
            return merge_with_defaults(
                {key: value for key, value in data.items() if key in known},
                allowed_keys=frozenset(known),
            )
        except CommerceValidationError:
            logger.exception("rep_settings_invalid_stored_blob", org_id=org_id)
            return RepProgramSettings()

    @staticmethod
    async def update(
        store: RecordStore,
        *,
        org_id: str,
        partial: Mapping[str, Any],
        now_utc: datetime,
    ) -> RepProgramSettings:
        current = await ProgramSettingsStore.load(store, org_id=org_id)
        merged = merge_with_defaults(partial, current=current)
        await SiteSettingsRepo.put_data(
            store,
            settings_key(org_id),
            data=merged.model_dump(mode="json"),
            now_utc=now_utc,
        )
        logger.info("rep_settings_updated", org_id=org_id, keys=sorted(partial))
        return merged
