from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import Table, func, insert, or_, select, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from ticketing.core.config import Settings
from ticketing.db.errors import DependencyUnavailableError, UniqueViolationError
from ticketing.db.filters import Filter, Increment
from ticketing.db.models.base import Base
from ticketing.db.session import create_store_engine

Row = dict[str, Any]
UNIQUE_VIOLATION_SQLSTATE = "23505"


class RecordStore(Protocol):
    async def insert(self, model: type[Base], values: Mapping[str, Any]) -> Row: ...

    async def update(
        self,
        model: type[Base],
        values: Mapping[str, Any],
        *,
        where: Sequence[Filter],
    ) -> int: ...

    async def select(
        self,
        model: type[Base],
        *,
        where: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]: ...

    async def count(self, model: type[Base], *, where: Sequence[Filter] = ()) -> int: ...

    async def sum(self, model: type[Base], column: str, *, where: Sequence[Filter] = ()) -> int | Decimal: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


def _filter_clause(table: Table, flt: Filter) -> ColumnElement[bool]:
    column = table.c[flt.column]
    if flt.op == "eq":
        return column.is_(None) if flt.value is None else column == flt.value
    if flt.op == "ne":
        return column.is_not(None) if flt.value is None else column != flt.value
    if flt.op == "lt":
        return column < flt.value
    if flt.op == "le":
        return column <= flt.value
    if flt.op == "gt":
        return column > flt.value
    if flt.op == "ge":
        return column >= flt.value
    if flt.op == "in":
        return column.in_(list(flt.value))  # type: ignore[arg-type]
    if flt.op == "is_null":
        return column.is_(None)
    if flt.op == "not_null":
        return column.is_not(None)
    if flt.op == "under_cap":
        cap = table.c[str(flt.value)]
        return or_(cap.is_(None), column < cap)
    raise ValueError(f"Unsupported filter op: {flt.op}")


def _update_values(table: Table, values: Mapping[str, Any]) -> dict[str, Any]:
    resolved: dict[str, Any] = {}
    for name, value in values.items():
        if isinstance(value, Increment):
            resolved[name] = table.c[name] + value.amount
        else:
            resolved[name] = value
    return resolved


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def _constraint_name(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return str(name)
    return None


def is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == UNIQUE_VIOLATION_SQLSTATE:
        return True
    message = str(exc.orig).lower()
    return "duplicate" in message or "unique" in message


class SqlRecordStore:
    """Record store over SQLAlchemy Core; every call is its own short transaction."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SqlRecordStore:
        return cls(create_store_engine(settings))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def _statement(self, table_name: str) -> AsyncIterator[AsyncConnection]:
        try:
            async with self._engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise UniqueViolationError(table_name, _constraint_name(exc)) from exc
            raise
        except (OperationalError, InterfaceError, asyncio.TimeoutError, OSError) as exc:
            raise DependencyUnavailableError(f"record store unavailable: {exc}") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise DependencyUnavailableError(f"record store connection lost: {exc}") from exc
            raise

    async def insert(self, model: type[Base], values: Mapping[str, Any]) -> Row:
        table: Table = model.__table__  # type: ignore[assignment]
        stmt = insert(table).values(**values).returning(*table.c)
        async with self._statement(table.name) as conn:
            result = await conn.execute(stmt)
            row = result.mappings().one()
        return dict(row)

    async def update(
        self,
        model: type[Base],
        values: Mapping[str, Any],
        *,
        where: Sequence[Filter],
    ) -> int:
        if not where:
            raise ValueError("Unguarded updates are not allowed")
        table: Table = model.__table__  # type: ignore[assignment]
        stmt = (
            update(table)
            .where(*[_filter_clause(table, flt) for flt in where])
            .values(**_update_values(table, values))
        )
        async with self._statement(table.name) as conn:
            result = await conn.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    async def select(
        self,
        model: type[Base],
        *,
        where: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]:
        table: Table = model.__table__  # type: ignore[assignment]
        stmt = select(table).where(*[_filter_clause(table, flt) for flt in where])
        for key in order_by:
            if key.startswith("-"):
                stmt = stmt.order_by(table.c[key[1:]].desc())
            else:
                stmt = stmt.order_by(table.c[key].asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._statement(table.name) as conn:
            result = await conn.execute(stmt)
            rows = result.mappings().all()
        return [dict(row) for row in rows]

    async def count(self, model: type[Base], *, where: Sequence[Filter] = ()) -> int:
        table: Table = model.__table__  # type: ignore[assignment]
        stmt = select(func.count()).select_from(table).where(*[_filter_clause(table, flt) for flt in where])
        async with self._statement(table.name) as conn:
            result = await conn.execute(stmt)
            value = result.scalar_one()
        return int(value or 0)

    async def sum(self, model: type[Base], column: str, *, where: Sequence[Filter] = ()) -> int | Decimal:
        table: Table = model.__table__  # type: ignore[assignment]
        stmt = select(func.coalesce(func.sum(table.c[column]), 0)).where(
            *[_filter_clause(table, flt) for flt in where]
        )
        async with self._statement(table.name) as conn:
            result = await conn.execute(stmt)
            value = result.scalar_one()
        return value if value is not None else 0

    async def ping(self) -> None:
        async with self._statement("ping") as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self._engine.dispose()
