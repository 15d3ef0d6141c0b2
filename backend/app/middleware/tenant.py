"""Tenant middleware — resolves tenant context from the JWT on every request.

Flow:
  1. Extract Bearer token from Authorization header
  2. Decode JWT → get `tenant_id` and `sub` claims
  3. Validate the tenant id
  4. Set ContextVars so downstream code (logging, services) can read them
  5. After the response, clear the ContextVars

Routes that don't require tenant scope (health, docs) never ask for the
context, so having none is fine for them.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.auth.jwt import decode_token
from app.tenancy import (
    clear_tenant_context,
    set_current_tenant,
    validate_tenant_id,
)

# Routes that never require auth: expired tokens pass through
_PUBLIC_PREFIXES = ("/docs", "/openapi.json", "/health")


class TenantMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        auth_header = request.headers.get("authorization", "")
        path = request.url.path
        request.state.tenant_id = None
        request.state.user_id = None

        if auth_header.startswith("Bearer "):
            payload = decode_token(auth_header[7:])

            if not payload:
                # Token present but expired/malformed: answer 401 right away
                # instead of a confusing tenant error further down.
                clear_tenant_context()
                if not any(path.startswith(p) for p in _PUBLIC_PREFIXES):
                    return JSONResponse(
                        status_code=401,
                        content={
                            "error": {
                                "code": "HTTP_401",
                                "message": "Token expired or invalid",
                            }
                        },
                        headers={"WWW-Authenticate": "Bearer"},
                    )
            else:
                tenant_id = payload.get("tenant_id")
                try:
                    set_current_tenant(validate_tenant_id(tenant_id or ""), payload.get("sub"))
                    request.state.tenant_id = tenant_id
                    request.state.user_id = payload.get("sub")
                except ValueError:
                    clear_tenant_context()
        else:
            clear_tenant_context()

        try:
            response = await call_next(request)
        finally:
            clear_tenant_context()

        return response
