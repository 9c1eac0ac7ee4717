from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import MetaData, Numeric, PrimaryKeyConstraint, Table, UniqueConstraint

from ticketing.db.errors import UniqueViolationError
from ticketing.db.filters import Filter, Increment
from ticketing.db.models.base import Base

Row = dict[str, Any]


def _matches(row: Row, flt: Filter) -> bool:
    value = row.get(flt.column)
    if flt.op == "eq":
        return value is None if flt.value is None else value == flt.value
    if flt.op == "ne":
        if flt.value is None:
            return value is not None
        return value is not None and value != flt.value
    if flt.op == "is_null":
        return value is None
    if flt.op == "not_null":
        return value is not None
    if flt.op == "in":
        return value is not None and value in flt.value  # type: ignore[operator]
    if flt.op == "under_cap":
        cap = row.get(str(flt.value))
        return cap is None or (value is not None and value < cap)
    if value is None or flt.value is None:
        return False
    if flt.op == "lt":
        return value < flt.value
    if flt.op == "le":
        return value <= flt.value
    if flt.op == "gt":
        return value > flt.value
    if flt.op == "ge":
        return value >= flt.value
    raise ValueError(f"Unsupported filter op: {flt.op}")


def _sort_key(column: str):
    def key(row: Row) -> tuple[int, Any]:
        value = row.get(column)
        return (1, None) if value is None else (0, value)

    return key


class MemoryRecordStore:
    """In-process record store with the same constraint semantics as the SQL store.

    Each call is atomic: it yields to the event loop once before touching data and
    never again until it returns, so concurrent tasks interleave between statements
    the way independent requests do against Postgres.
    """

    def __init__(self, metadata: MetaData | None = None) -> None:
        self._metadata = metadata or Base.metadata
        self._tables: dict[str, list[Row]] = defaultdict(list)
        self.statements = 0
        self._identities: dict[str, int] = defaultdict(int)

    def rows(self, model: type[Base]) -> list[Row]:
        return copy.deepcopy(self._tables[model.__tablename__])

    def _table(self, model: type[Base]) -> Table:
        return self._metadata.tables[model.__tablename__]

    async def _enter(self) -> None:
        self.statements += 1
        await asyncio.sleep(0)

    @staticmethod
    def _unique_groups(table: Table) -> list[tuple[str | None, tuple[str, ...]]]:
        groups: list[tuple[str | None, tuple[str, ...]]] = []
        for constraint in table.constraints:
            if isinstance(constraint, (PrimaryKeyConstraint, UniqueConstraint)):
                names = tuple(column.name for column in constraint.columns)
                if names:
                    groups.append((str(constraint.name) if constraint.name else None, names))
        for column in table.columns:
            if column.unique:
                groups.append((f"uq_{table.name}_{column.name}", (column.name,)))
        return groups

    def _check_unique(self, table: Table, candidate: Row, *, exclude: Row | None) -> None:
        existing = self._tables[table.name]
        for constraint_name, columns in self._unique_groups(table):
            key = tuple(candidate.get(column) for column in columns)
            if any(part is None for part in key):
                continue
            for row in existing:
                if row is exclude:
                    continue
                if tuple(row.get(column) for column in columns) == key:
                    raise UniqueViolationError(table.name, constraint_name)

    @staticmethod
    def _validate_columns(table: Table, names: Sequence[str]) -> None:
        unknown = [name for name in names if name not in table.c]
        if unknown:
            raise ValueError(f"Unknown columns for {table.name}: {', '.join(sorted(unknown))}")

    def _with_defaults(self, table: Table, values: Mapping[str, Any]) -> Row:
        row: Row = {}
        for column in table.columns:
            if column.name in values:
                row[column.name] = copy.deepcopy(values[column.name])
                continue
            if column.identity is not None:
                # Like a Postgres sequence, a value is consumed even when the insert fails.
                key = f"{table.name}.{column.name}"
                self._identities[key] += 1
                row[column.name] = self._identities[key]
                continue
            default = column.default
            if default is not None and getattr(default, "is_scalar", False):
                row[column.name] = copy.deepcopy(default.arg)  # type: ignore[attr-defined]
            else:
                row[column.name] = None
        return row

    async def insert(self, model: type[Base], values: Mapping[str, Any]) -> Row:
        await self._enter()
        table = self._table(model)
        self._validate_columns(table, list(values))
        row = self._with_defaults(table, values)
        for column in table.primary_key.columns:
            if row.get(column.name) is None:
                raise ValueError(f"Primary key {table.name}.{column.name} is required")
        self._check_unique(table, row, exclude=None)
        self._tables[table.name].append(row)
        return copy.deepcopy(row)

    async def update(
        self,
        model: type[Base],
        values: Mapping[str, Any],
        *,
        where: Sequence[Filter],
    ) -> int:
        if not where:
            raise ValueError("Unguarded updates are not allowed")
        await self._enter()
        table = self._table(model)
        self._validate_columns(table, list(values))
        self._validate_columns(table, [flt.column for flt in where])

        staged: list[tuple[Row, Row]] = []
        for row in self._tables[table.name]:
            if not all(_matches(row, flt) for flt in where):
                continue
            updated = dict(row)
            for name, value in values.items():
                if isinstance(value, Increment):
                    current = row.get(name)
                    updated[name] = None if current is None else current + value.amount
                else:
                    updated[name] = copy.deepcopy(value)
            staged.append((row, updated))

        for original, updated in staged:
            self._check_unique(table, updated, exclude=original)
        for original, updated in staged:
            original.update(updated)
        return len(staged)

    def _filtered(self, model: type[Base], where: Sequence[Filter]) -> list[Row]:
        table = self._table(model)
        self._validate_columns(table, [flt.column for flt in where])
        return [row for row in self._tables[table.name] if all(_matches(row, flt) for flt in where)]

    async def select(
        self,
        model: type[Base],
        *,
        where: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]:
        await self._enter()
        rows = list(self._filtered(model, where))
        for key in reversed(order_by):
            descending = key.startswith("-")
            rows.sort(key=_sort_key(key.lstrip("-")), reverse=descending)
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def count(self, model: type[Base], *, where: Sequence[Filter] = ()) -> int:
        await self._enter()
        return len(self._filtered(model, where))

    async def sum(self, model: type[Base], column: str, *, where: Sequence[Filter] = ()) -> int | Decimal:
        await self._enter()
        table = self._table(model)
        self._validate_columns(table, [column])
        start: int | Decimal = Decimal("0") if isinstance(table.c[column].type, Numeric) else 0
        values = [row[column] for row in self._filtered(model, where) if row.get(column) is not None]
        return sum(values, start)

    async def ping(self) -> None:
        await self._enter()

    async def close(self) -> None:
        return None
