from __future__ import annotations

from fastapi import Depends, Request

from ticketing.commerce.identifiers.service import IdentifierIssuer
from ticketing.commerce.orders.service import OrderFulfillmentService
from ticketing.core.config import get_settings
from ticketing.db.store import RecordStore
from ticketing.services.notifications import LoggingOrderNotifier, OrderNotifier


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_notifier(request: Request) -> OrderNotifier:
    return getattr(request.app.state, "notifier", None) or LoggingOrderNotifier()


def get_issuer(store: RecordStore = Depends(get_store)) -> IdentifierIssuer:
    return IdentifierIssuer(store, max_attempts=get_settings().identifier_max_attempts)


def get_order_service(
    store: RecordStore = Depends(get_store),
    issuer: IdentifierIssuer = Depends(get_issuer),
    notifier: OrderNotifier = Depends(get_notifier),
) -> OrderFulfillmentService:
    return OrderFulfillmentService(store, issuer=issuer, notifier=notifier)
