from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog

from ticketing.commerce.errors import CollisionExhaustedError
from ticketing.commerce.identifiers.codes import (
    format_order_number,
    generate_correlation_id,
    generate_discount_code,
    generate_ticket_code,
    next_order_sequence,
)
from ticketing.db.errors import UniqueViolationError
from ticketing.db.models.discounts import Discount
from ticketing.db.models.orders import Order
from ticketing.db.models.tickets import Ticket
from ticketing.db.repo.discounts_repo import DISCOUNT_CODE_CONSTRAINT, DiscountsRepo
from ticketing.db.repo.orders_repo import OrdersRepo
from ticketing.db.repo.tickets_repo import TICKET_CODE_CONSTRAINT, TICKET_SLOT_CONSTRAINT, TicketsRepo
from ticketing.db.store import RecordStore

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
ORDER_NUMBER_CONSTRAINT = "uq_orders_org_order_number"


@dataclass(frozen=True, slots=True)
class TicketIssue:
    ticket: Ticket
    created: bool


def _is_expected_collision(exc: UniqueViolationError, constraint: str) -> bool:
    return exc.constraint in (constraint, None)


class IdentifierIssuer:
    """Issues human-facing identifiers; the store's unique constraints are the final arbiter."""

    def __init__(
        self,
        store: RecordStore,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        ticket_code_factory: Callable[[str], str] = generate_ticket_code,
        discount_code_factory: Callable[[str], str] = generate_discount_code,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self._store = store
        self._max_attempts = max_attempts
        self._ticket_code_factory = ticket_code_factory
        self._discount_code_factory = discount_code_factory

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def issue_ticket_code(self, org_prefix: str) -> str:
        return self._ticket_code_factory(org_prefix)

    def issue_discount_code(self, first_name: str) -> str:
        return self._discount_code_factory(first_name)

    def issue_correlation_id(self) -> str:
        return generate_correlation_id()

    async def next_order_sequence(self, org_id: str) -> int:
        order_count = await OrdersRepo.count_for_org(self._store, org_id=org_id)
        latest = await OrdersRepo.get_latest_for_org(self._store, org_id=org_id)
        return next_order_sequence(
            order_count=order_count,
            last_order_number=latest.order_number if latest is not None else None,
        )

    async def issue_order_number(self, org_id: str, org_prefix: str) -> str:
        return format_order_number(org_prefix, await self.next_order_sequence(org_id))

    def _exhausted(self, kind: str, **context: Any) -> CollisionExhaustedError:
        logger.error("identifier_collision_exhausted", kind=kind, attempts=self._max_attempts, **context)
        return CollisionExhaustedError(f"{kind} collided {self._max_attempts} times; retry the request")

    async def insert_ticket(self, *, org_prefix: str, values: dict[str, Any]) -> TicketIssue:
        """Inserts the ticket for ``(order_item_id, slot)`` or returns the one already issued."""
        for attempt in range(1, self._max_attempts + 1):
            code = self.issue_ticket_code(org_prefix)
            try:
                ticket = await TicketsRepo.create(self._store, ticket_code=code, values=values)
                return TicketIssue(ticket=ticket, created=True)
            except UniqueViolationError as exc:
                existing = await TicketsRepo.get_by_slot(
                    self._store,
                    order_item_id=values["order_item_id"],
                    slot=values["slot"],
                )
                if existing is not None:
                    return TicketIssue(ticket=existing, created=False)
                if exc.constraint == TICKET_SLOT_CONSTRAINT or not _is_expected_collision(
                    exc, TICKET_CODE_CONSTRAINT
                ):
                    raise
                logger.warning(
                    "identifier_collision_retry",
                    kind="ticket_code",
                    attempt=attempt,
                    org_prefix=org_prefix,
                )

        raise self._exhausted("ticket_code", org_prefix=org_prefix)

    async def insert_order(
        self,
        *,
        order_id: str,
        org_id: str,
        org_prefix: str,
        customer_id: str,
        event_id: str,
        subtotal: Decimal,
        discount_amount: Decimal,
        total: Decimal,
        currency: str,
        discount_id: str | None,
        rep_id: str | None,
        now_utc: datetime,
    ) -> Order:
        sequence = await self.next_order_sequence(org_id)
        for attempt in range(1, self._max_attempts + 1):
            order_number = format_order_number(org_prefix, sequence)
            try:
                return await OrdersRepo.create(
                    self._store,
                    order_id=order_id,
                    org_id=org_id,
                    customer_id=customer_id,
                    event_id=event_id,
                    order_number=order_number,
                    subtotal=subtotal,
                    discount_amount=discount_amount,
                    total=total,
                    currency=currency,
                    discount_id=discount_id,
                    rep_id=rep_id,
                    now_utc=now_utc,
                )
            except UniqueViolationError as exc:
                if not _is_expected_collision(exc, ORDER_NUMBER_CONSTRAINT):
                    raise
                logger.warning(
                    "identifier_collision_retry",
                    kind="order_number",
                    attempt=attempt,
                    org_id=org_id,
                    order_number=order_number,
                )
                sequence += 1

        raise self._exhausted("order_number", org_id=org_id)

    async def insert_discount(
        self,
        *,
        org_id: str,
        first_name: str,
        discount_type: str,
        value: Decimal,
        rep_id: str | None,
        applicable_event_ids: list[str] | None,
        now_utc: datetime,
    ) -> Discount:
        for attempt in range(1, self._max_attempts + 1):
            code = self.issue_discount_code(first_name)
            try:
                return await DiscountsRepo.create(
                    self._store,
                    org_id=org_id,
                    code=code,
                    discount_type=discount_type,
                    value=value,
                    rep_id=rep_id,
                    applicable_event_ids=applicable_event_ids,
                    now_utc=now_utc,
                )
            except UniqueViolationError as exc:
                if not _is_expected_collision(exc, DISCOUNT_CODE_CONSTRAINT):
                    raise
                logger.warning("identifier_collision_retry", kind="discount_code", attempt=attempt, org_id=org_id)

        raise self._exhausted("discount_code", org_id=org_id)
