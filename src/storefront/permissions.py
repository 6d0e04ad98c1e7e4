"""Roles, permissions and the caller identity.

Authentication happens upstream; the gateway forwards the caller as
``X-User-Id`` / ``X-User-Role`` / ``X-User-Permissions`` headers.
"""

from dataclasses import dataclass, field

from .errors import AuthenticationRequiredError, ForbiddenError

PERMISSIONS = (
    # Catalog
    "products:read",
    "products:write",
    "products:*",
    # Posts / blog
    "posts:read",
    "posts:write",
    "posts:*",
    "posts:read:own",
    "posts:write:own",
    # Orders / ops
    "orders:update",
    # Analytics & billing
    "analytics:view",
    "billing:view",
    # User admin
    "users:read",
    "users:role:set",
    "users:permission:set",
    # Settings
    "settings:write",
    # Support & FAQs
    "support:read",
    "support:reply",
    "support:*",
    "faqs:read",
    "faqs:write",
    "faqs:*",
)

ROLE_DEFAULTS: dict[str, tuple[str, ...]] = {
    "user": (),
    "manager": (
        "products:read",
        "products:write",
        "posts:read",
        "posts:write",
        "analytics:view",
        "orders:update",
        "support:read",
        "support:reply",
        "faqs:read",
        "faqs:write",
    ),
    "admin": PERMISSIONS,
}

STAFF_ROLES = ("admin", "manager")

ORDERS_UPDATE = "orders:update"
ORDERS_VIEW = ("billing:view", "orders:update", "analytics:view")


def match_permission(granted: str, needed: str) -> bool:
    """Exact match, or a trailing ``*`` on the grant matches by prefix."""
    if not granted or not needed:
        return False
    if granted == needed:
        return True
    if granted.endswith("*"):
        return needed.startswith(granted[:-1])
    return False


def has_any_permission(granted: list[str] | tuple[str, ...], needed: list[str] | tuple[str, ...]) -> bool:
    return any(match_permission(g, n) for n in needed for g in granted)


def role_permissions(role: str) -> list[str]:
    return list(dict.fromkeys(ROLE_DEFAULTS.get(role, ())))


@dataclass(frozen=True)
class Actor:
    """The authenticated caller."""

    user_id: str
    role: str = "user"
    permissions: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_headers(
        cls,
        user_id: str | None,
        role: str | None = None,
        permissions: str | None = None,
    ) -> "Actor | None":
        """Build an actor from gateway headers; None when there is no user id."""
        if not user_id or not user_id.strip():
            return None
        role = (role or "user").strip().lower()
        if permissions is not None and permissions.strip():
            perms = tuple(p.strip() for p in permissions.split(",") if p.strip())
        else:
            perms = tuple(role_permissions(role))
        return cls(user_id=user_id.strip(), role=role, permissions=perms)

    def can(self, *needed: str) -> bool:
        return has_any_permission(self.permissions, needed)


def require_actor(actor: Actor | None) -> Actor:
    """
    Raises:
        AuthenticationRequiredError: If there is no caller identity.
    """
    if actor is None:
        raise AuthenticationRequiredError()
    return actor


def require_staff(actor: Actor | None, *needed: str) -> Actor:
    """
    Require an admin/manager holding any of the needed permissions.

    Raises:
        AuthenticationRequiredError: If there is no caller identity.
        ForbiddenError: If the role or permissions don't suffice.
    """
    actor = require_actor(actor)
    if actor.role not in STAFF_ROLES:
        raise ForbiddenError("role")
    if needed and not actor.can(*needed):
        raise ForbiddenError("permission")
    return actor
