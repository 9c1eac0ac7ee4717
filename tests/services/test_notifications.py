from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest

from ticketing.services import notifications


class _Response:
    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail

    def raise_for_status(self) -> None:
        if self._fail:
            raise RuntimeError("503 from webhook")


class _Client:
    def __init__(self, calls: list[dict[str, Any]], *, fail: bool) -> None:
        self._calls = calls
        self._fail = fail

    async def __aenter__(self) -> "_Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None

    async def post(self, url: str, json: dict[str, object]) -> _Response:
        self._calls.append({"url": url, "json": json})
        return _Response(fail=self._fail)


def _order() -> SimpleNamespace:
    return SimpleNamespace(
        id="order-1",
        org_id="org",
        order_number="ORG-00001",
        customer_id="customer-1",
        event_id="event-1",
        total=Decimal("81.00"),
        currency="GBP",
    )


def _patch_http_client(monkeypatch: pytest.MonkeyPatch, calls: list[dict[str, Any]], *, fail: bool = False) -> None:
    def factory(timeout: float) -> _Client:  # noqa: ARG001
        return _Client(calls, fail=fail)

    monkeypatch.setattr(notifications.httpx, "AsyncClient", factory)


@pytest.mark.asyncio
async def test_webhook_notifier_posts_order_payload(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)

    await notifications.WebhookOrderNotifier("https://hooks.example.local/orders").order_completed(
        order=_order(),
        ticket_codes=["ORG-AAAAAAAA", "ORG-BBBBBBBB"],
    )

    assert calls[0]["url"] == "https://hooks.example.local/orders"
    body = calls[0]["json"]
    assert body["event"] == "order.completed"
    assert body["order_number"] == "ORG-00001"
    assert body["total"] == "81.00"
    assert body["ticket_codes"] == ["ORG-AAAAAAAA", "ORG-BBBBBBBB"]


@pytest.mark.asyncio
async def test_webhook_notifier_raises_on_delivery_failure(monkeypatch) -> None:
    _patch_http_client(monkeypatch, [], fail=True)

    with pytest.raises(RuntimeError):
        await notifications.WebhookOrderNotifier("https://hooks.example.local/orders").order_completed(
            order=_order(),
            ticket_codes=[],
        )


def test_build_order_notifier_picks_webhook_only_when_configured() -> None:
    configured = notifications.build_order_notifier(
        SimpleNamespace(order_notification_webhook_url=" https://hooks.example.local/orders ")
    )
    default = notifications.build_order_notifier(SimpleNamespace(order_notification_webhook_url=""))

    assert isinstance(configured, notifications.WebhookOrderNotifier)
    assert isinstance(default, notifications.LoggingOrderNotifier)
