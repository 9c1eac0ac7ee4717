from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Request

from ticketing.api.deps import get_order_service
from ticketing.api.routes.internal_helpers import HANDLED_ERRORS, as_http_error, authorize
from ticketing.api.routes.internal_orders_models import (
    CompleteOrderResponse,
    CreateOrderRequest,
    CustomerAggregatesResponse,
    OrderResponse,
    RefundOrderRequest,
    RefundOrderResponse,
)
from ticketing.commerce.orders.service import CustomerDetails, DraftItem, OrderFulfillmentService
from ticketing.commerce.reconciliation.service import CustomerAggregates
from ticketing.db.models.orders import Order

router = APIRouter(prefix="/internal/orders", tags=["internal", "orders"])
logger = structlog.get_logger(__name__)


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        customer_id=order.customer_id,
        event_id=order.event_id,
        subtotal=order.subtotal,
        discount_amount=order.discount_amount,
        total=order.total,
        currency=order.currency,
        discount_id=order.discount_id,
        rep_id=order.rep_id,
    )


def _aggregates_response(aggregates: CustomerAggregates | None) -> CustomerAggregatesResponse | None:
    if aggregates is None:
        return None
    return CustomerAggregatesResponse(total_orders=aggregates.total_orders, total_spent=aggregates.total_spent)


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    payload: CreateOrderRequest,
    request: Request,
    service: OrderFulfillmentService = Depends(get_order_service),
) -> OrderResponse:
    context = authorize(request, permission="orders")
    try:
        order = await service.create_draft(
            org_id=context.org_id,
            event_id=payload.event_id,
            customer=CustomerDetails(
                email=payload.customer.email,
                first_name=payload.customer.first_name,
                last_name=payload.customer.last_name,
            ),
            items=[
                DraftItem(ticket_type_id=item.ticket_type_id, qty=item.qty, merch_size=item.merch_size)
                for item in payload.items
            ],
            currency=payload.currency,
            discount_code=payload.discount_code,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return _order_response(order)


@router.post("/{order_id}/complete", response_model=CompleteOrderResponse)
async def complete_order(
    order_id: str,
    request: Request,
    service: OrderFulfillmentService = Depends(get_order_service),
) -> CompleteOrderResponse:
    context = authorize(request, permission="orders")
    try:
        completion = await service.complete(
            order_id=order_id,
            org_id=context.org_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return CompleteOrderResponse(
        order_id=completion.order_id,
        order_number=completion.order_number,
        ticket_codes=completion.ticket_codes,
        customer_aggregates=_aggregates_response(completion.customer_aggregates),
        points_awarded=completion.points_awarded,
        idempotent_replay=completion.idempotent_replay,
        currency_awarded=completion.currency_awarded,
    )


@router.post("/{order_id}/fail", response_model=OrderResponse)
async def fail_order(
    order_id: str,
    request: Request,
    service: OrderFulfillmentService = Depends(get_order_service),
) -> OrderResponse:
    context = authorize(request, permission="orders")
    try:
        order = await service.fail(order_id=order_id, org_id=context.org_id)
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc
    return _order_response(order)


@router.post("/{order_id}/refund", response_model=RefundOrderResponse)
async def refund_order(
    order_id: str,
    request: Request,
    payload: RefundOrderRequest | None = None,
    service: OrderFulfillmentService = Depends(get_order_service),
) -> RefundOrderResponse:
    context = authorize(request, permission="orders")
    try:
        result = await service.refund(
            order_id=order_id,
            org_id=context.org_id,
            reason=payload.reason if payload is not None else None,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise as_http_error(exc) from exc

    logger.info("internal_order_refund_applied", order_id=order_id, org_id=context.org_id)
    return RefundOrderResponse(
        success=True,
        order_id=result.order_id,
        order_number=result.order_number,
        cancelled_tickets=result.cancelled_tickets,
        points_reversed=result.points_reversed,
        customer_aggregates=_aggregates_response(result.customer_aggregates),
    )
