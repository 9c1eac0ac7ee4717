from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import partial
from typing import TypeVar
from uuid import uuid4

import structlog

from ticketing.commerce.discounts import DiscountService, compute_discount_amount
from ticketing.commerce.errors import (
    AlreadyRefundedError,
    CapExceededError,
    CommerceValidationError,
    DuplicateAwardError,
    OrderNotFoundError,
    OrderStateConflictError,
    TicketTypeNotFoundError,
)
from ticketing.commerce.identifiers.codes import normalize_org_prefix
from ticketing.commerce.identifiers.service import IdentifierIssuer
from ticketing.commerce.ledger.service import LedgerStore
from ticketing.commerce.program_settings import ProgramSettingsStore
from ticketing.commerce.reconciliation.service import AggregateReconciler, CustomerAggregates
from ticketing.commerce.rewards.claims import RewardClaimService
from ticketing.db.errors import UniqueViolationError
from ticketing.db.models.customers import Customer
from ticketing.db.models.order_items import OrderItem
from ticketing.db.models.orders import Order
from ticketing.db.repo.customers_repo import CustomersRepo
from ticketing.db.repo.discounts_repo import DiscountsRepo
from ticketing.db.repo.order_items_repo import OrderItemsRepo
from ticketing.db.repo.orders_repo import OrdersRepo
from ticketing.db.repo.rep_points_ledger_repo import RepPointsLedgerRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.repo.ticket_types_repo import TicketTypesRepo
from ticketing.db.repo.tickets_repo import TicketsRepo
from ticketing.db.store import RecordStore
from ticketing.services.alerts import send_ops_alert
from ticketing.services.notifications import LoggingOrderNotifier, OrderNotifier

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_ITEM_QTY = 50
MAX_ITEMS_PER_ORDER = 20
CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True, slots=True)
class CustomerDetails:
    email: str
    first_name: str = ""
    last_name: str = ""


@dataclass(frozen=True, slots=True)
class DraftItem:
    ticket_type_id: str
    qty: int
    merch_size: str | None = None


@dataclass(frozen=True, slots=True)
class OrderCompletion:
    order_id: str
    order_number: str
    ticket_codes: list[str]
    customer_aggregates: CustomerAggregates | None
    points_awarded: int
    idempotent_replay: bool
    currency_awarded: int = 0


@dataclass(frozen=True, slots=True)
class RefundResult:
    order_id: str
    order_number: str
    cancelled_tickets: int
    sold_by_ticket_type: dict[str, int | None]
    customer_aggregates: CustomerAggregates | None
    points_reversed: int


def _validate_items(items: Sequence[DraftItem]) -> None:
    if not items:
        raise CommerceValidationError("an order needs at least one item")
    if len(items) > MAX_ITEMS_PER_ORDER:
        raise CommerceValidationError("too many order items")
    for item in items:
        if isinstance(item.qty, bool) or not isinstance(item.qty, int):
            raise CommerceValidationError("qty must be an integer")
        if item.qty < 1 or item.qty > MAX_ITEM_QTY:
            raise CommerceValidationError(f"qty must be between 1 and {MAX_ITEM_QTY}")


class OrderFulfillmentService:
    """Drives orders through draft -> completed -> refunded and keeps derived data in step.

    Status transitions are single guarded updates, so concurrent requests on the same
    order see exactly one winner. Everything after a transition is idempotent and safe
    to re-run: ticket issuance is keyed by (order item, slot), points by the order id,
    and counters are recomputed from their source rows.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        issuer: IdentifierIssuer | None = None,
        ledger: LedgerStore | None = None,
        reconciler: AggregateReconciler | None = None,
        claims: RewardClaimService | None = None,
        notifier: OrderNotifier | None = None,
    ) -> None:
        self._store = store
        self._issuer = issuer or IdentifierIssuer(store)
        self._ledger = ledger or LedgerStore(store)
        self._reconciler = reconciler or AggregateReconciler(store)
        self._claims = claims or RewardClaimService(store, ledger=self._ledger)
        self._discounts = DiscountService(store, issuer=self._issuer)
        self._notifier = notifier or LoggingOrderNotifier()

    async def _get_order(self, order_id: str, org_id: str) -> Order:
        order = await OrdersRepo.get_by_id(self._store, order_id, org_id=org_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _guarded(
        self,
        *,
        event: str,
        step: str,
        order: Order,
        action: Callable[[], Awaitable[T]],
    ) -> T | None:
        try:
            return await action()
        except Exception:
            logger.exception(event, step=step, order_id=order.id, org_id=order.org_id)
            await send_ops_alert(
                event=event,
                payload={"step": step, "order_id": order.id, "org_id": order.org_id},
            )
            return None

    async def _upsert_customer(self, *, org_id: str, customer: CustomerDetails, now_utc: datetime) -> Customer:
        email = customer.email.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise CommerceValidationError("customer email is invalid")

        existing = await CustomersRepo.get_by_email(self._store, org_id=org_id, email=email)
        if existing is not None:
            return existing
        try:
            return await CustomersRepo.create(
                self._store,
                org_id=org_id,
                email=email,
                first_name=customer.first_name.strip(),
                last_name=customer.last_name.strip(),
                now_utc=now_utc,
            )
        except UniqueViolationError:
            raced = await CustomersRepo.get_by_email(self._store, org_id=org_id, email=email)
            if raced is None:
                raise
            return raced

    async def create_draft(
        self,
        *,
        org_id: str,
        event_id: str,
        customer: CustomerDetails,
        items: Sequence[DraftItem],
        currency: str,
        now_utc: datetime,
        discount_code: str | None = None,
    ) -> Order:
        _validate_items(items)
        currency_code = currency.strip().upper()
        if not CURRENCY_PATTERN.match(currency_code):
            raise CommerceValidationError("currency must be a 3-letter code")

        ticket_types = {
            ticket_type.id: ticket_type
            for ticket_type in await TicketTypesRepo.list_by_ids(
                self._store,
                org_id=org_id,
                ticket_type_ids=[item.ticket_type_id for item in items],
            )
        }
        subtotal = Decimal("0")
        for item in items:
            ticket_type = ticket_types.get(item.ticket_type_id)
            if ticket_type is None:
                raise TicketTypeNotFoundError(item.ticket_type_id)
            if ticket_type.event_id != event_id:
                raise CommerceValidationError("ticket type belongs to a different event")
            subtotal += Decimal(ticket_type.price) * item.qty

        discount = None
        discount_amount = Decimal("0")
        if discount_code:
            discount = await self._discounts.resolve_for_order(
                org_id=org_id,
                code=discount_code,
                event_id=event_id,
                subtotal=subtotal,
                now_utc=now_utc,
            )
            discount_amount = compute_discount_amount(discount, subtotal)

        buyer = await self._upsert_customer(org_id=org_id, customer=customer, now_utc=now_utc)
        order = await self._issuer.insert_order(
            order_id=str(uuid4()),
            org_id=org_id,
            org_prefix=normalize_org_prefix(org_id),
            customer_id=buyer.id,
            event_id=event_id,
            subtotal=subtotal,
            discount_amount=discount_amount,
            total=subtotal - discount_amount,
            currency=currency_code,
            discount_id=discount.id if discount is not None else None,
            rep_id=discount.rep_id if discount is not None else None,
            now_utc=now_utc,
        )
        for item in items:
            await OrderItemsRepo.create(
                self._store,
                org_id=org_id,
                order_id=order.id,
                ticket_type_id=item.ticket_type_id,
                qty=item.qty,
                unit_price=Decimal(ticket_types[item.ticket_type_id].price),
                merch_size=item.merch_size,
                now_utc=now_utc,
            )

        logger.info(
            "order_draft_created",
            order_id=order.id,
            org_id=org_id,
            order_number=order.order_number,
            total=str(order.total),
            discount_id=order.discount_id,
        )
        return order

    async def complete(self, *, order_id: str, org_id: str, now_utc: datetime) -> OrderCompletion:
        order = await self._get_order(order_id, org_id)
        transitioned = False
        if order.status == "draft":
            reserved = await self._reserve_discount_use(order=order, now_utc=now_utc)
            transitioned = await OrdersRepo.transition_status(
                self._store,
                order_id=order_id,
                org_id=org_id,
                from_status="draft",
                to_status="completed",
                values={"completed_at": now_utc},
            )
            if reserved and not transitioned:
                # Another request moved the order; recount drops the extra use.
                await self._reconciler.reconcile_discount_usage(order.discount_id, now_utc=now_utc)
            order = await self._get_order(order_id, org_id)
        if order.status != "completed":
            raise OrderStateConflictError(f"order {order.order_number} is {order.status}")

        items = await OrderItemsRepo.list_for_order(self._store, order_id=order.id)
        ticket_codes = await self._issue_tickets(order=order, items=items, now_utc=now_utc)

        attribution = await self._guarded(
            event="rep_attribution_failed",
            step="award_sale_points",
            order=order,
            action=lambda: self._attribute_sale(order=order, ticket_count=len(ticket_codes), now_utc=now_utc),
        )
        points, currency = attribution or (0, 0)
        customer_aggregates = await self._reconcile_order(order=order, items=items, now_utc=now_utc, refund=False)

        if transitioned:
            await self._guarded(
                event="order_notification_failed",
                step="order_completed",
                order=order,
                action=lambda: self._notifier.order_completed(order=order, ticket_codes=ticket_codes),
            )

        logger.info(
            "order_completed",
            order_id=order.id,
            org_id=org_id,
            order_number=order.order_number,
            tickets=len(ticket_codes),
            points_awarded=points,
            currency_awarded=currency,
            idempotent_replay=not transitioned,
        )
        return OrderCompletion(
            order_id=order.id,
            order_number=order.order_number,
            ticket_codes=ticket_codes,
            customer_aggregates=customer_aggregates,
            points_awarded=points,
            idempotent_replay=not transitioned,
            currency_awarded=currency,
        )

    async def _reserve_discount_use(self, *, order: Order, now_utc: datetime) -> bool:
        """Takes one use of the order's discount ahead of the draft -> completed transition."""
        if order.discount_id is None:
            return False
        # The marker goes first so a concurrent recount sees the reservation in flight.
        await OrdersRepo.mark_discount_reserved(self._store, order_id=order.id, now_utc=now_utc)
        if await DiscountsRepo.reserve_use(self._store, discount_id=order.discount_id):
            return True
        logger.info("discount_usage_limit_reached", order_id=order.id, discount_id=order.discount_id)
        raise CapExceededError(order.discount_id)

    async def _issue_tickets(self, *, order: Order, items: Sequence[OrderItem], now_utc: datetime) -> list[str]:
        org_prefix = normalize_org_prefix(order.org_id)
        customer = await CustomersRepo.get_by_id(self._store, order.customer_id)
        codes: list[str] = []
        for item in items:
            for slot in range(item.qty):
                issue = await self._issuer.insert_ticket(
                    org_prefix=org_prefix,
                    values={
                        "org_id": order.org_id,
                        "order_id": order.id,
                        "order_item_id": item.id,
                        "event_id": order.event_id,
                        "ticket_type_id": item.ticket_type_id,
                        "customer_id": order.customer_id,
                        "slot": slot,
                        "holder_email": customer.email if customer is not None else None,
                        "merch_size": item.merch_size,
                        "created_at": now_utc,
                    },
                )
                codes.append(issue.ticket.ticket_code)
        return codes

    async def _attribute_sale(self, *, order: Order, ticket_count: int, now_utc: datetime) -> tuple[int, int]:
        if order.rep_id is None or ticket_count == 0:
            return 0, 0
        rep = await RepsRepo.get_by_id(self._store, order.rep_id, org_id=order.org_id)
        if rep is None or rep.status != "active":
            logger.info("rep_attribution_skipped", order_id=order.id, rep_id=order.rep_id)
            return 0, 0

        settings = await ProgramSettingsStore.load(self._store, org_id=order.org_id)
        if not settings.enabled:
            return 0, 0
        points = settings.points_per_sale * ticket_count
        currency = settings.currency_per_sale * ticket_count
        if points == 0 and currency == 0:
            return 0, 0
        try:
            await self._ledger.award(
                rep_id=rep.id,
                org_id=order.org_id,
                points=points,
                currency=currency,
                source_type="sale",
                source_ref=order.id,
                description=f"Sale: order {order.order_number}",
                now_utc=now_utc,
            )
        except DuplicateAwardError:
            existing = await RepPointsLedgerRepo.get_by_source(
                self._store,
                rep_id=rep.id,
                source_type="sale",
                source_ref=order.id,
            )
            if existing is None:
                return 0, 0
            return existing.points, existing.currency

        # A refund that committed before the sale entry existed had nothing to reverse.
        latest = await self._get_order(order.id, order.org_id)
        if latest.status == "refunded":
            await self._reverse_sale(order=latest, now_utc=now_utc)
            logger.warning("sale_attribution_reversed_after_refund", order_id=order.id, rep_id=rep.id)
            return 0, 0
        return points, currency

    async def _reverse_sale(self, *, order: Order, now_utc: datetime) -> int:
        if order.rep_id is None:
            return 0
        sale = await RepPointsLedgerRepo.get_by_source(
            self._store,
            rep_id=order.rep_id,
            source_type="sale",
            source_ref=order.id,
        )
        if sale is None:
            return 0
        try:
            await self._ledger.award(
                rep_id=order.rep_id,
                org_id=order.org_id,
                points=-sale.points,
                currency=-sale.currency,
                source_type="refund",
                source_ref=order.id,
                description=f"Refund: order {order.order_number}",
                now_utc=now_utc,
            )
        except DuplicateAwardError:
            return 0
        return sale.points

    async def _reconcile_order(
        self,
        *,
        order: Order,
        items: Sequence[OrderItem],
        now_utc: datetime,
        refund: bool,
    ) -> CustomerAggregates | None:
        for ticket_type_id in sorted({item.ticket_type_id for item in items}):
            await self._guarded(
                event="aggregate_reconciliation_failed",
                step="ticket_type_sold",
                order=order,
                action=lambda ticket_type_id=ticket_type_id: self._reconciler.reconcile_ticket_type_sold(ticket_type_id),
            )
        customer_aggregates = await self._guarded(
            event="aggregate_reconciliation_failed",
            step="customer_aggregates",
            order=order,
            action=lambda: self._reconciler.reconcile_customer_aggregates(order.customer_id),
        )
        if order.rep_id is not None:
            await self._guarded(
                event="aggregate_reconciliation_failed",
                step="rep_aggregates",
                order=order,
                action=lambda: self._reconciler.reconcile_rep_aggregates(order.rep_id, org_id=order.org_id),
            )
            if refund:
                milestones = partial(
                    self._claims.revoke_unearned_milestones,
                    rep_id=order.rep_id,
                    org_id=order.org_id,
                    now_utc=now_utc,
                )
            else:
                milestones = partial(
                    self._claims.claim_achieved_milestones,
                    rep_id=order.rep_id,
                    org_id=order.org_id,
                    now_utc=now_utc,
                    event_id=order.event_id,
                )
            await self._guarded(
                event="aggregate_reconciliation_failed",
                step="milestones",
                order=order,
                action=milestones,
            )
        if order.discount_id is not None:
            await self._guarded(
                event="aggregate_reconciliation_failed",
                step="discount_usage",
                order=order,
                action=lambda: self._reconciler.reconcile_discount_usage(order.discount_id, now_utc=now_utc),
            )
        return customer_aggregates

    async def fail(self, *, order_id: str, org_id: str) -> Order:
        order = await self._get_order(order_id, org_id)
        if order.status == "draft":
            await OrdersRepo.transition_status(
                self._store,
                order_id=order_id,
                org_id=org_id,
                from_status="draft",
                to_status="failed",
            )
            order = await self._get_order(order_id, org_id)
        if order.status != "failed":
            raise OrderStateConflictError(f"order {order.order_number} is {order.status}")
        logger.info("order_failed", order_id=order.id, org_id=org_id, order_number=order.order_number)
        return order

    async def refund(
        self,
        *,
        order_id: str,
        org_id: str,
        now_utc: datetime,
        reason: str | None = None,
    ) -> RefundResult:
        order = await self._get_order(order_id, org_id)
        if order.status == "refunded":
            raise AlreadyRefundedError(order.order_number)
        if order.status != "completed":
            raise OrderStateConflictError(f"order {order.order_number} is {order.status}")

        transitioned = await OrdersRepo.transition_status(
            self._store,
            order_id=order_id,
            org_id=org_id,
            from_status="completed",
            to_status="refunded",
            values={"refunded_at": now_utc, "refund_reason": (reason or "").strip()[:500] or None},
        )
        if not transitioned:
            latest = await self._get_order(order_id, org_id)
            if latest.status == "refunded":
                raise AlreadyRefundedError(latest.order_number)
            raise OrderStateConflictError(f"order {latest.order_number} is {latest.status}")

        result = await self._apply_refund_effects(order=await self._get_order(order_id, org_id), now_utc=now_utc)
        logger.info(
            "order_refunded",
            order_id=order_id,
            org_id=org_id,
            order_number=result.order_number,
            cancelled_tickets=result.cancelled_tickets,
            points_reversed=result.points_reversed,
        )
        return result

    async def repair_refund(self, *, order_id: str, org_id: str, now_utc: datetime) -> RefundResult:
        """Re-applies refund side effects to an order already marked refunded."""
        order = await self._get_order(order_id, org_id)
        if order.status != "refunded":
            raise OrderStateConflictError(f"order {order.order_number} is {order.status}")
        result = await self._apply_refund_effects(order=order, now_utc=now_utc)
        logger.info(
            "order_refund_repaired",
            order_id=order_id,
            org_id=org_id,
            cancelled_tickets=result.cancelled_tickets,
            points_reversed=result.points_reversed,
        )
        return result

    async def needs_refund_repair(self, *, order_id: str, org_id: str) -> bool:
        """True when a refunded order still has live tickets or an unreversed sale entry."""
        order = await self._get_order(order_id, org_id)
        if order.status != "refunded":
            return False
        if await TicketsRepo.count_live_for_order(self._store, order_id=order.id) > 0:
            return True
        if order.rep_id is None:
            return False
        sale = await RepPointsLedgerRepo.get_by_source(
            self._store,
            rep_id=order.rep_id,
            source_type="sale",
            source_ref=order.id,
        )
        if sale is None:
            return False
        reversal = await RepPointsLedgerRepo.get_by_source(
            self._store,
            rep_id=order.rep_id,
            source_type="refund",
            source_ref=order.id,
        )
        return reversal is None

    async def _apply_refund_effects(self, *, order: Order, now_utc: datetime) -> RefundResult:
        cancelled = await TicketsRepo.cancel_for_order(self._store, order_id=order.id, now_utc=now_utc)
        items = await OrderItemsRepo.list_for_order(self._store, order_id=order.id)

        points = await self._guarded(
            event="rep_attribution_failed",
            step="reverse_sale_points",
            order=order,
            action=lambda: self._reverse_sale(order=order, now_utc=now_utc),
        )
        customer_aggregates = await self._reconcile_order(order=order, items=items, now_utc=now_utc, refund=True)

        sold: dict[str, int | None] = {}
        for ticket_type_id in sorted({item.ticket_type_id for item in items}):
            ticket_type = await TicketTypesRepo.get_by_id(self._store, ticket_type_id)
            sold[ticket_type_id] = ticket_type.sold if ticket_type is not None else None

        return RefundResult(
            order_id=order.id,
            order_number=order.order_number,
            cancelled_tickets=cancelled,
            sold_by_ticket_type=sold,
            customer_aggregates=customer_aggregates,
            points_reversed=points or 0,
        )
