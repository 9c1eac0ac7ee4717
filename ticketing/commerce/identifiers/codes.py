from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from uuid import uuid4

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TICKET_CODE_LENGTH = 8
ORDER_NUMBER_WIDTH = 5
DISCOUNT_CODE_PREFIX = "REP-"
DISCOUNT_CODE_DIGITS = 6
DISCOUNT_CODE_MAX_LENGTH = 15
DISCOUNT_NAME_MAX_LENGTH = DISCOUNT_CODE_MAX_LENGTH - len(DISCOUNT_CODE_PREFIX) - DISCOUNT_CODE_DIGITS

_NON_PREFIX_CHARS = re.compile(r"[^A-Z0-9]")
_NON_NAME_CHARS = re.compile(r"[^A-Z]")


def normalize_org_prefix(org_id: str) -> str:
    prefix = _NON_PREFIX_CHARS.sub("", org_id.upper())
    if not prefix:
        raise ValueError("org_id must contain at least one letter or digit")
    return prefix


def generate_ticket_code(
    org_prefix: str,
    *,
    choice: Callable[[str], str] = secrets.choice,
) -> str:
    token = "".join(choice(ALPHABET) for _ in range(TICKET_CODE_LENGTH))
    return f"{org_prefix}-{token}"


def format_order_number(org_prefix: str, sequence: int) -> str:
    if sequence <= 0:
        raise ValueError("sequence must be positive")
    return f"{org_prefix}-{sequence:0{ORDER_NUMBER_WIDTH}d}"


def parse_order_number_suffix(order_number: str | None) -> int | None:
    if not order_number or "-" not in order_number:
        return None
    suffix = order_number.rsplit("-", maxsplit=1)[1]
    if not suffix.isdigit():
        return None
    return int(suffix)


def next_order_sequence(*, order_count: int, last_order_number: str | None) -> int:
    """Best-effort next sequence: gap tolerant, never below either hint."""
    last_suffix = parse_order_number_suffix(last_order_number) or 0
    return max(order_count, last_suffix) + 1


def discount_code_name(first_name: str) -> str:
    return _NON_NAME_CHARS.sub("", first_name.upper())[:DISCOUNT_NAME_MAX_LENGTH]


def generate_discount_code(
    first_name: str,
    *,
    randbelow: Callable[[int], int] = secrets.randbelow,
) -> str:
    digits = randbelow(10**DISCOUNT_CODE_DIGITS)
    return f"{DISCOUNT_CODE_PREFIX}{discount_code_name(first_name)}{digits:0{DISCOUNT_CODE_DIGITS}d}"


def generate_correlation_id() -> str:
    return str(uuid4())
