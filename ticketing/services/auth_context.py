from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request

ORG_HEADER = "X-Org-Id"
USER_HEADER = "X-User-Id"
PERMISSIONS_HEADER = "X-Permissions"
WILDCARD_PERMISSION = "*"
MAX_ORG_ID_LENGTH = 64


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Tenant identity forwarded by the gateway after it authenticated the caller."""

    org_id: str
    user_id: str | None
    permissions: frozenset[str]

    def allows(self, permission: str) -> bool:
        return WILDCARD_PERMISSION in self.permissions or permission in self.permissions


def parse_permissions(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


def tenant_context_from_request(request: Request) -> TenantContext:
    org_id = (request.headers.get(ORG_HEADER) or "").strip()
    if not org_id or len(org_id) > MAX_ORG_ID_LENGTH:
        raise HTTPException(status_code=400, detail={"code": "E_TENANT_REQUIRED"})
    user_id = (request.headers.get(USER_HEADER) or "").strip() or None
    return TenantContext(
        org_id=org_id,
        user_id=user_id,
        permissions=parse_permissions(request.headers.get(PERMISSIONS_HEADER)),
    )


def require_permission(context: TenantContext, permission: str) -> None:
    if not context.allows(permission):
        raise HTTPException(status_code=403, detail={"code": "E_PERMISSION_DENIED"})
