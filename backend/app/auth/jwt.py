"""JWT token creation and decoding.

Token claims:
  - sub:          user ID
  - tenant_id:    tenant the caller acts for
  - role:         user role string (optional)
  - permissions:  list of effective permission strings
  - type:         "access"
  - exp:          expiry timestamp

Tokens are issued by the platform's identity service; `create_access_token`
exists for tests and local tooling.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.auth.permissions import resolve_permissions
from app.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    tenant_id: str,
    permissions: list[str] | None = None,
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    if permissions is None:
        permissions = resolve_permissions(role or "")
    payload = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "permissions": permissions,
        "type": "access",
        "exp": expire,
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
