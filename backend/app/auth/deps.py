"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_request_context     → decode the bearer JWT, return tenant/user/permissions
  require_permission(...) → restrict to callers holding specific permissions
"""

from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.jwt import decode_token
from app.auth.permissions import has_permission
from app.tenancy import set_current_tenant, validate_tenant_id

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class RequestContext:
    tenant_id: str
    user_id: str
    permissions: list[str] = field(default_factory=list)


# ── Core context dependency ─────────────────────────────────

async def get_request_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> RequestContext:
    """Decode the JWT and return who is calling for which tenant.

    Raises 401 for a missing/invalid token and 403 when the token carries
    no usable tenant.
    """
    payload = decode_token(credentials.credentials) if credentials else {}
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    tenant_id = payload.get("tenant_id")
    try:
        validate_tenant_id(tenant_id or "")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tenant context — this endpoint requires a tenant-scoped token",
        )

    set_current_tenant(tenant_id, user_id)
    return RequestContext(
        tenant_id=tenant_id,
        user_id=user_id,
        permissions=list(payload.get("permissions", [])),
    )


# ── Permission-based access control ─────────────────────────

def require_permission(*perms: str):
    """Dependency factory — restrict to callers who hold ALL listed permissions.

    Usage:
        @router.post("/split")
        async def split(ctx: RequestContext = Depends(require_permission("lot.write"))):
            ...
    """
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        missing = [p for p in perms if not has_permission(ctx.permissions, p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing)}",
            )
        return ctx

    return _check
