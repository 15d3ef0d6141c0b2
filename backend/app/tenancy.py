"""Multi-tenancy: row-level isolation keyed by tenant id.

Key components:
  - _tenant_ctx / _user_ctx   ContextVars holding the caller for the current request
  - set / get / clear helpers for the ContextVars
  - validate_tenant_id()      rejects malformed tenant ids before they reach a query
"""

import re
from contextvars import ContextVar

# ── Request-scoped tenant context ───────────────────────────

_tenant_ctx: ContextVar[str | None] = ContextVar("_tenant_ctx", default=None)
_user_ctx: ContextVar[str | None] = ContextVar("_user_ctx", default=None)


def set_current_tenant(tenant_id: str, user_id: str | None = None) -> None:
    _tenant_ctx.set(tenant_id)
    _user_ctx.set(user_id)


def get_current_tenant() -> str | None:
    """Tenant of the current request, None outside a tenant-scoped request."""
    return _tenant_ctx.get()


def get_current_user_id() -> str | None:
    return _user_ctx.get()


def clear_tenant_context() -> None:
    _tenant_ctx.set(None)
    _user_ctx.set(None)


# ── Validation ──────────────────────────────────────────────

_TENANT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{2,63}$")


def validate_tenant_id(tenant_id: str) -> str:
    """Ensure tenant ids are short opaque tokens (letters, digits, `_`, `-`)."""
    if not _TENANT_RE.match(tenant_id):
        raise ValueError(f"Invalid tenant id: {tenant_id!r}")
    return tenant_id
