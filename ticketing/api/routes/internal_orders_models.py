from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class CustomerPayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)


class OrderItemPayload(BaseModel):
    ticket_type_id: str = Field(min_length=1, max_length=64)
    qty: int = Field(ge=1, le=50)
    merch_size: str | None = Field(default=None, max_length=16)


class CreateOrderRequest(BaseModel):
    event_id: str = Field(min_length=1, max_length=64)
    customer: CustomerPayload
    items: list[OrderItemPayload] = Field(min_length=1, max_length=20)
    currency: str = Field(default="GBP", min_length=3, max_length=3)
    discount_code: str | None = Field(default=None, max_length=32)


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: str
    customer_id: str
    event_id: str
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    currency: str
    discount_id: str | None = None
    rep_id: str | None = None


class CustomerAggregatesResponse(BaseModel):
    total_orders: int = Field(ge=0)
    total_spent: Decimal


class CompleteOrderResponse(BaseModel):
    order_id: str
    order_number: str
    ticket_codes: list[str]
    customer_aggregates: CustomerAggregatesResponse | None = None
    points_awarded: int
    idempotent_replay: bool
    currency_awarded: int = 0


class RefundOrderRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class RefundOrderResponse(BaseModel):
    success: bool
    order_id: str
    order_number: str
    cancelled_tickets: int = Field(ge=0)
    points_reversed: int
    customer_aggregates: CustomerAggregatesResponse | None = None
