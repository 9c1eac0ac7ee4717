from __future__ import annotations

import structlog
from fastapi import HTTPException, Request

from ticketing.commerce.errors import (
    AlreadyClaimedError,
    AlreadyRefundedError,
    CapExceededError,
    CollisionExhaustedError,
    CommerceError,
    CommerceValidationError,
    ConflictError,
    DiscountNotFoundError,
    DuplicateAwardError,
    InsufficientPointsError,
    MilestoneNotAchievedError,
    MilestoneNotFoundError,
    NotFoundError,
    OrderNotFoundError,
    OrderStateConflictError,
    RepNotFoundError,
    RewardNotFoundError,
    RewardUnavailableError,
    TicketTypeNotFoundError,
)
from ticketing.core.config import get_settings
from ticketing.core.logging import bind_request_context
from ticketing.db.errors import DependencyUnavailableError
from ticketing.services.auth_context import TenantContext, require_permission, tenant_context_from_request
from ticketing.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

logger = structlog.get_logger(__name__)

# Most specific first; the base classes catch whatever is left.
ERROR_RESPONSES: tuple[tuple[type[Exception], int, str], ...] = (
    (CommerceValidationError, 400, "E_VALIDATION"),
    (CollisionExhaustedError, 503, "E_IDENTIFIER_RETRY"),
    (DependencyUnavailableError, 503, "E_DEPENDENCY_UNAVAILABLE"),
    (AlreadyRefundedError, 409, "E_ALREADY_REFUNDED"),
    (AlreadyClaimedError, 409, "E_ALREADY_CLAIMED"),
    (CapExceededError, 409, "E_CAP_EXCEEDED"),
    (InsufficientPointsError, 409, "E_INSUFFICIENT_POINTS"),
    (DuplicateAwardError, 409, "E_DUPLICATE_AWARD"),
    (OrderStateConflictError, 409, "E_ORDER_STATE_CONFLICT"),
    (RewardUnavailableError, 409, "E_REWARD_UNAVAILABLE"),
    (MilestoneNotAchievedError, 409, "E_MILESTONE_NOT_ACHIEVED"),
    (ConflictError, 409, "E_CONFLICT"),
    (OrderNotFoundError, 404, "E_ORDER_NOT_FOUND"),
    (RepNotFoundError, 404, "E_REP_NOT_FOUND"),
    (RewardNotFoundError, 404, "E_REWARD_NOT_FOUND"),
    (MilestoneNotFoundError, 404, "E_MILESTONE_NOT_FOUND"),
    (TicketTypeNotFoundError, 404, "E_TICKET_TYPE_NOT_FOUND"),
    (DiscountNotFoundError, 404, "E_DISCOUNT_NOT_FOUND"),
    (NotFoundError, 404, "E_NOT_FOUND"),
)

HANDLED_ERRORS = (CommerceError, DependencyUnavailableError)


def as_http_error(exc: Exception) -> HTTPException:
    for error_type, status_code, code in ERROR_RESPONSES:
        if isinstance(exc, error_type):
            detail: dict[str, str] = {"code": code}
            if status_code == 400 and str(exc):
                detail["message"] = str(exc)
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=500, detail={"code": "E_INTERNAL"})


def assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(request, trusted_proxies=settings.internal_api_trusted_proxies)

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_api_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning("internal_api_auth_failed", reason="invalid_credentials", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def authorize(request: Request, *, permission: str) -> TenantContext:
    assert_internal_access(request)
    context = tenant_context_from_request(request)
    require_permission(context, permission)
    bind_request_context(org_id=context.org_id, user_id=context.user_id)
    return context
