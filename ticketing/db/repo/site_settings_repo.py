from __future__ import annotations

from datetime import datetime
from typing import Any

from ticketing.db.errors import UniqueViolationError
from ticketing.db.filters import eq
from ticketing.db.models.site_settings import SiteSetting
from ticketing.db.store import RecordStore


class SiteSettingsRepo:
    @staticmethod
    async def get_data(store: RecordStore, key: str) -> dict[str, Any] | None:
        rows = await store.select(SiteSetting, where=[eq("key", key)], limit=1)
        if not rows:
            return None
        data = rows[0]["data"]
        return dict(data) if isinstance(data, dict) else {}

    @staticmethod
    async def put_data(store: RecordStore, key: str, *, data: dict[str, Any], now_utc: datetime) -> None:
        updated = await store.update(SiteSetting, {"data": data, "updated_at": now_utc}, where=[eq("key", key)])
        if updated:
            return
        try:
            await store.insert(SiteSetting, {"key": key, "data": data, "updated_at": now_utc})
        except UniqueViolationError:
            await store.update(SiteSetting, {"data": data, "updated_at": now_utc}, where=[eq("key", key)])
