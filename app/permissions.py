"""
Roles, actions, and the single permission check every caller goes through.

Routers and services never compare role strings themselves; they ask
``has_permission(principal.role, Action.X)`` and decide ownership
separately with ``Principal.owns``.
"""
from dataclasses import dataclass
from enum import Enum

from app.errors import Forbidden, Unauthorized


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str | None) -> "Role":
        """Unknown or missing roles fall back to the least privileged one."""
        try:
            return cls(value) if value else cls.USER
        except ValueError:
            return cls.USER


class Action(str, Enum):
    # Reading the "all rows" projection, i.e. soft-deleted rows too.
    VIEW_DELETED = "view_deleted"
    # Mutating a resource owned by someone else.
    MANAGE_ANY = "manage_any"
    RECOVER = "recover"
    HARD_DELETE = "hard_delete"
    CHANGE_ROLE = "change_role"
    MANAGE_CATEGORIES = "manage_categories"
    REPAIR_CASCADE = "repair_cascade"


_GRANTS: dict[Role, frozenset[Action]] = {
    Role.USER: frozenset(),
    Role.ADMIN: frozenset(Action),
}


def has_permission(role: Role, action: Action) -> bool:
    return action in _GRANTS.get(role, frozenset())


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as forwarded by the auth gateway."""

    id: str
    role: Role = Role.USER
    session_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can(self, action: Action) -> bool:
        return has_permission(self.role, action)

    def owns(self, owner_id: str) -> bool:
        return self.id == owner_id

    def may_manage(self, owner_id: str) -> bool:
        """Owners manage their own resources; MANAGE_ANY covers the rest."""
        return self.owns(owner_id) or self.can(Action.MANAGE_ANY)


def require(principal: Principal | None, action: Action) -> Principal:
    """Return *principal* if it may perform *action*, else raise."""
    if principal is None:
        raise Unauthorized()
    if not principal.can(action):
        raise Forbidden()
    return principal
