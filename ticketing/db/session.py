from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ticketing.core.config import Settings, get_settings


def create_store_engine(settings: Settings | None = None) -> AsyncEngine:
    resolved = settings or get_settings()
    return create_async_engine(
        resolved.database_url,
        pool_pre_ping=True,
        connect_args={
            "timeout": resolved.db_connect_timeout_seconds,
            "command_timeout": resolved.db_command_timeout_seconds,
        },
    )
