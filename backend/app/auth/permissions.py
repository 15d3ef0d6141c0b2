"""Permission names and checks for the lineage API.

Permissions are embedded in the JWT, so checks are token-only.

Permission naming: `<resource>.<action>`
  lot.read          list / inspect lots, batches, tanks, recipes
  lot.write         schedule batches, register tanks, split, blend, phase changes
  packaging.write   record packaging runs, complete lots
Wildcards: "*" grants everything, "lot.*" every lot action.
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    "lot.read",
    "lot.write",
    "packaging.read",
    "packaging.write",
}


# ── Role → default permissions ──────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "administrator": {"*"},
    "brewer": {"lot.read", "lot.write", "packaging.read"},
    "packager": {"lot.read", "packaging.read", "packaging.write"},
    "viewer": {"lot.read", "packaging.read"},
}


# ── Resolution ──────────────────────────────────────────────

def resolve_permissions(role: str) -> list[str]:
    """Default permissions of a role, sorted for stable JWT claims."""
    return sorted(ROLE_DEFAULTS.get(role, set()))


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement (wildcards allowed)."""
    if "*" in user_permissions or required in user_permissions:
        return True
    resource = required.split(".", 1)[0]
    return f"{resource}.*" in user_permissions
