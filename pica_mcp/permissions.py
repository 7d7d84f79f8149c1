"""Permission level and allowlist checks applied before calls reach Pica."""

from enum import Enum
from typing import Iterable, TypeVar

WILDCARD = "*"


class PermissionLevel(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


# None means every method is allowed.
ALLOWED_METHODS: dict[PermissionLevel, frozenset[str] | None] = {
    PermissionLevel.READ: frozenset({"GET"}),
    PermissionLevel.WRITE: frozenset({"GET", "POST", "PUT", "PATCH"}),
    PermissionLevel.ADMIN: None,
}

T = TypeVar("T")


def is_method_allowed(method: str | None, level: PermissionLevel) -> bool:
    """Return True if ``method`` may be executed at ``level`` (case-insensitive)."""
    allowed = ALLOWED_METHODS[PermissionLevel(level)]
    if allowed is None:
        return True
    return (method or "").upper() in allowed


def filter_by_permissions(actions: Iterable[T], level: PermissionLevel) -> list[T]:
    """Keep only actions whose ``method`` is allowed at ``level``."""
    return [action for action in actions if is_method_allowed(action.method, level)]


def is_wildcard(allowlist: Iterable[str] | None) -> bool:
    return allowlist is not None and WILDCARD in allowlist


def is_action_allowed(action_id: str, allowlist: Iterable[str]) -> bool:
    """True if the allowlist is the wildcard or names ``action_id`` exactly."""
    allowlist = tuple(allowlist)
    return WILDCARD in allowlist or action_id in allowlist


def filter_by_allowlist(actions: Iterable[T], allowlist: Iterable[str]) -> list[T]:
    allowlist = tuple(allowlist)
    return [action for action in actions if is_action_allowed(action.id, allowlist)]
