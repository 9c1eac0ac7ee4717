from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from ticketing.core.config import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
VALID_CHANNELS = ("generic", "slack", "pagerduty")
VALID_SEVERITIES = ("critical", "error", "warning", "info")
SEVERITY_COLOR = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}
ALERT_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class AlertRoute:
    channels: tuple[str, ...]
    severity: str
    escalation_tier: str


@dataclass(frozen=True)
class AlertTarget:
    channel: str
    url: str


DEFAULT_ALERT_ROUTE = AlertRoute(channels=("generic",), severity="warning", escalation_tier="ops_l3")
EVENT_ALERT_ROUTES = {
    "aggregate_reconciliation_failed": AlertRoute(
        channels=("slack", "generic"),
        severity="error",
        escalation_tier="ops_l2",
    ),
    "points_balance_update_failed": AlertRoute(
        channels=("slack", "generic"),
        severity="error",
        escalation_tier="ops_l2",
    ),
    "rep_attribution_failed": AlertRoute(
        channels=("slack", "generic"),
        severity="error",
        escalation_tier="ops_l2",
    ),
    "order_notification_failed": AlertRoute(
        channels=("slack", "generic"),
        severity="warning",
        escalation_tier="ops_l3",
    ),
    "identifier_collisions_exhausted": AlertRoute(
        channels=("pagerduty", "slack", "generic"),
        severity="critical",
        escalation_tier="ops_l1",
    ),
    "commerce_reconciliation_diff_detected": AlertRoute(
        channels=("pagerduty", "slack", "generic"),
        severity="critical",
        escalation_tier="ops_l1",
    ),
    "refund_repair_required": AlertRoute(
        channels=("pagerduty", "slack", "generic"),
        severity="error",
        escalation_tier="ops_l1",
    ),
}


def _setting_str(settings: object, attr: str) -> str:
    value = getattr(settings, attr, "")
    return value.strip() if isinstance(value, str) else ""


def _pick(raw: object, allowed: tuple[str, ...], fallback: str) -> str:
    if not isinstance(raw, str):
        return fallback
    candidate = raw.strip().lower()
    return candidate if candidate in allowed else fallback


def _pick_channels(raw: object, fallback: tuple[str, ...]) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return fallback
    ordered: list[str] = []
    for item in raw:
        channel = _pick(item, VALID_CHANNELS, "")
        if channel and channel not in ordered:
            ordered.append(channel)
    return tuple(ordered) or fallback


def _parse_policy_overrides(raw_policy: str) -> dict[str, dict[str, object]]:
    if not raw_policy:
        return {}
    try:
        parsed = json.loads(raw_policy)
    except json.JSONDecodeError:
        logger.warning("ops_alert_policy_parse_failed")
        return {}
    if not isinstance(parsed, dict):
        logger.warning("ops_alert_policy_invalid_shape")
        return {}
    return {name: route for name, route in parsed.items() if isinstance(name, str) and isinstance(route, dict)}


def resolve_alert_route(*, event: str, policy_raw: str) -> AlertRoute:
    base = EVENT_ALERT_ROUTES.get(event, DEFAULT_ALERT_ROUTE)
    overrides = _parse_policy_overrides(policy_raw)
    override = overrides.get(event) or overrides.get("*")
    if override is None:
        return base

    tier = override.get("escalation_tier")
    return AlertRoute(
        channels=_pick_channels(override.get("channels"), base.channels),
        severity=_pick(override.get("severity"), VALID_SEVERITIES, base.severity),
        escalation_tier=tier.strip() if isinstance(tier, str) and tier.strip() else base.escalation_tier,
    )


def resolve_targets(*, route: AlertRoute, settings: object) -> list[AlertTarget]:
    generic_url = _setting_str(settings, "ops_alert_webhook_url")
    urls = {
        "generic": generic_url,
        "slack": _setting_str(settings, "ops_alert_slack_webhook_url"),
    }
    if _setting_str(settings, "ops_alert_pagerduty_routing_key"):
        urls["pagerduty"] = _setting_str(settings, "ops_alert_pagerduty_events_url") or DEFAULT_PAGERDUTY_EVENTS_URL

    targets = [AlertTarget(channel=channel, url=urls[channel]) for channel in route.channels if urls.get(channel)]
    if not targets and generic_url:
        targets.append(AlertTarget(channel="generic", url=generic_url))
    return targets


@dataclass(frozen=True)
class _AlertContext:
    event: str
    payload: dict[str, object]
    sent_at: datetime
    route: AlertRoute
    app_env: str
    pagerduty_routing_key: str


def _payload_text(payload: dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _generic_body(ctx: _AlertContext) -> dict[str, Any]:
    return {
        "event": ctx.event,
        "payload": ctx.payload,
        "sent_at": ctx.sent_at.isoformat(),
        "severity": ctx.route.severity,
        "escalation_tier": ctx.route.escalation_tier,
    }


def _slack_body(ctx: _AlertContext) -> dict[str, Any]:
    return {
        "text": f"[{ctx.route.severity.upper()}][{ctx.route.escalation_tier}] {ctx.event}",
        "attachments": [
            {
                "color": SEVERITY_COLOR.get(ctx.route.severity, SEVERITY_COLOR["warning"]),
                "fields": [
                    {"title": "Environment", "value": ctx.app_env, "short": True},
                    {"title": "Sent At", "value": ctx.sent_at.isoformat(), "short": True},
                    {"title": "Event", "value": ctx.event, "short": False},
                    {"title": "Payload", "value": _payload_text(ctx.payload), "short": False},
                ],
            }
        ],
    }


def _pagerduty_body(ctx: _AlertContext) -> dict[str, Any]:
    return {
        "routing_key": ctx.pagerduty_routing_key,
        "event_action": "trigger",
        "dedup_key": f"{ctx.event}:{ctx.route.escalation_tier}",
        "payload": {
            "summary": f"[{ctx.app_env}] {ctx.event}",
            "source": f"ticketing-commerce/{ctx.app_env}",
            "severity": ctx.route.severity,
            "timestamp": ctx.sent_at.isoformat(),
            "component": "commerce-consistency",
            "group": ctx.route.escalation_tier,
            "custom_details": {
                "event": ctx.event,
                "payload": ctx.payload,
                "escalation_tier": ctx.route.escalation_tier,
            },
        },
    }


BODY_BUILDERS: dict[str, Callable[[_AlertContext], dict[str, Any]]] = {
    "generic": _generic_body,
    "slack": _slack_body,
    "pagerduty": _pagerduty_body,
}


async def _post_json(*, client: httpx.AsyncClient, target: AlertTarget, body: dict[str, Any], event: str) -> bool:
    try:
        response = await client.post(target.url, json=body)
        response.raise_for_status()
        return True
    except Exception:
        logger.exception("ops_alert_delivery_failed", alert_event=event, provider=target.channel)
        return False


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    settings = get_settings()
    route = resolve_alert_route(event=event, policy_raw=_setting_str(settings, "ops_alert_escalation_policy_json"))
    targets = resolve_targets(route=route, settings=settings)
    if not targets:
        return False

    ctx = _AlertContext(
        event=event,
        payload=payload,
        sent_at=datetime.now(timezone.utc),
        route=route,
        app_env=_setting_str(settings, "app_env") or "dev",
        pagerduty_routing_key=_setting_str(settings, "ops_alert_pagerduty_routing_key"),
    )

    delivered_to: list[str] = []
    failed_to: list[str] = []
    async with httpx.AsyncClient(timeout=ALERT_TIMEOUT_SECONDS) as client:
        for target in targets:
            body = BODY_BUILDERS[target.channel](ctx)
            if await _post_json(client=client, target=target, body=body, event=event):
                delivered_to.append(target.channel)
            else:
                failed_to.append(target.channel)

    if not delivered_to:
        logger.error(
            "ops_alert_delivery_exhausted",
            alert_event=event,
            severity=route.severity,
            escalation_tier=route.escalation_tier,
            failed_to=failed_to,
        )
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=route.severity,
        escalation_tier=route.escalation_tier,
        delivered_to=delivered_to,
        failed_to=failed_to,
    )
    return True
