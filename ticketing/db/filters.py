from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

OPS = frozenset({"eq", "ne", "lt", "le", "gt", "ge", "in", "is_null", "not_null", "under_cap"})


@dataclass(frozen=True, slots=True)
class Filter:
    column: str
    op: str
    value: object = None

    def __post_init__(self) -> None:
        if self.op not in OPS:
            raise ValueError(f"Unsupported filter op: {self.op}")


@dataclass(frozen=True, slots=True)
class Increment:
    """Update value applied as ``column = column + amount`` in a single statement."""

    amount: int | Decimal


def eq(column: str, value: object) -> Filter:
    return Filter(column, "eq", value)


def ne(column: str, value: object) -> Filter:
    return Filter(column, "ne", value)


def lt(column: str, value: object) -> Filter:
    return Filter(column, "lt", value)


def le(column: str, value: object) -> Filter:
    return Filter(column, "le", value)


def gt(column: str, value: object) -> Filter:
    return Filter(column, "gt", value)


def ge(column: str, value: object) -> Filter:
    return Filter(column, "ge", value)


def in_(column: str, values: Iterable[object]) -> Filter:
    return Filter(column, "in", tuple(values))


def is_null(column: str) -> Filter:
    return Filter(column, "is_null")


def not_null(column: str) -> Filter:
    return Filter(column, "not_null")


def under_cap(column: str, cap_column: str) -> Filter:
    # cap IS NULL OR column < cap
    return Filter(column, "under_cap", cap_column)
