# backend/prodex/core/roles.py
from enum import Enum
from typing import Dict, FrozenSet, Optional, Set

from .errors import Forbidden


class Role(str, Enum):
    SALES = "sales"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"


# Roles allowed to approve a price below the suggested one
ELEVATED_ROLES: FrozenSet[Role] = frozenset({Role.SUPERVISOR, Role.ADMIN})

# Capability table per operation. "*" and "resource:*" are wildcards.
CAPABILITIES: Dict[Role, Set[str]] = {
    Role.ADMIN: {"*"},
    Role.SUPERVISOR: {
        "quotes:*",
        "quote_groups:*",
        "orders:convert",
        "products:*",
        "supplies:purchase",
    },
    Role.SALES: {
        "quotes:preview",
        "quotes:create",
        "quotes:read",
        "quote_groups:create",
        "quote_groups:read",
        "orders:convert",
        "products:read",
    },
}


def parse_role(role_name: Optional[str]) -> Role:
    try:
        return Role((role_name or "").strip().lower())
    except ValueError:
        raise Forbidden(f"Unknown role: {role_name!r}")


def has_capability(role: Role, needed: str) -> bool:
    """
    Match rules:
      - exact: needed in perms
      - global wildcard: "*" in perms
      - resource wildcard: "resource:*" in perms  <->  "resource:action" needed
    """
    perms = CAPABILITIES.get(role, set())
    if needed in perms or "*" in perms:
        return True
    if ":" in needed:
        resource, _ = needed.split(":", 1)
        return f"{resource}:*" in perms
    return False


def is_elevated(role: Role) -> bool:
    return role in ELEVATED_ROLES
