"""
Permission statement and role definitions

A permission is a (resource, action) pair. The statement lists every
action that exists per resource; each role grants a subset of it.

DESIGN PRINCIPLES:
- Roles are declarative data, not database rows
- One role per user (users.role)
- user is read-only, editor runs day-to-day operations, admin has everything
  (including deletes and sale voids)
"""

from __future__ import annotations

# =============================================================================
# STATEMENT (resource -> actions)
# =============================================================================

STATEMENT = {
    "user": ("read", "create", "update", "delete", "ban"),
    "audit": ("read", "export"),
    "role": ("read", "assign"),
    "product": ("read", "create", "update", "delete"),
    "stock": ("read", "create", "adjust"),
    "sale": ("read", "create", "update", "delete", "void"),
    "payment": ("read", "create", "refund"),
    "report": ("read", "export"),
}


# =============================================================================
# ROLES
# =============================================================================

ROLE_USER = "user"
ROLE_EDITOR = "editor"
ROLE_ADMIN = "admin"

ROLE_PERMISSIONS = {
    ROLE_USER: {
        "user": ("read",),
        "product": ("read",),
        "stock": ("read",),
        "sale": ("read",),
        "payment": ("read",),
    },
    ROLE_EDITOR: {
        "user": ("read", "update"),
        "audit": ("read",),
        "product": ("read", "create", "update"),
        "stock": ("read", "create", "adjust"),
        "sale": ("read", "create", "update"),
        "payment": ("read", "create"),
        "report": ("read",),
    },
    ROLE_ADMIN: dict(STATEMENT),
}

ROLE_DESCRIPTIONS = {
    ROLE_USER: "Read-only access to products, stock, sales and payments",
    ROLE_EDITOR: "Operational access: products, stock movements, sales and payments",
    ROLE_ADMIN: "Full access including deletes, sale voids and user management",
}

ROLES = tuple(ROLE_PERMISSIONS)
DEFAULT_ROLE = ROLE_USER


def is_valid_role(role: str | None) -> bool:
    return role in ROLE_PERMISSIONS


def role_allows(role: str | None, resource: str, action: str) -> bool:
    """True when the role grants action on resource. Unknown roles grant nothing."""
    granted = ROLE_PERMISSIONS.get(role or "", {})
    return action in granted.get(resource, ())


def permissions_for_role(role: str | None) -> list[str]:
    """Flat "resource:action" codes, sorted, for API responses."""
    granted = ROLE_PERMISSIONS.get(role or "", {})
    return sorted(f"{resource}:{action}" for resource, actions in granted.items() for action in actions)


def role_table() -> list[dict]:
    return [
        {
            "role": role,
            "description": ROLE_DESCRIPTIONS.get(role),
            "permissions": permissions_for_role(role),
        }
        for role in ROLES
    ]
