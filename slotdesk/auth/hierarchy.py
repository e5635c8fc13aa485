"""
Account hierarchy rules.

Four levels, lower number = more privilege:

    1 admin -> 2 distributor -> 3 agency -> 4 user

Everything here is pure so the rules can be tested without a database.
Every handler that decides "may this caller see that row" goes through
`can_access` (single row) or `visibility_filter` (list queries); the two
encode the same rule.
"""

from collections.abc import Sequence
from enum import StrEnum
from typing import Protocol
from uuid import UUID

MIN_LEVEL = 1
MAX_LEVEL = 4


class Role(StrEnum):
    ADMIN = "admin"
    DISTRIBUTOR = "distributor"
    AGENCY = "agency"
    USER = "user"


_ROLE_BY_LEVEL = {
    1: Role.ADMIN,
    2: Role.DISTRIBUTOR,
    3: Role.AGENCY,
    4: Role.USER,
}
_LEVEL_BY_ROLE = {role: level for level, role in _ROLE_BY_LEVEL.items()}

# How many parent hops below the caller are still visible
_REACH_BY_ROLE = {
    Role.DISTRIBUTOR: 2,
    Role.AGENCY: 1,
    Role.USER: 0,
}


class Caller(Protocol):
    id: UUID
    level: int


def role_of(level: int) -> Role:
    """Role label for a hierarchy level."""
    try:
        return _ROLE_BY_LEVEL[level]
    except KeyError:
        raise ValueError(f"Invalid hierarchy level: {level}") from None


def level_of(role: Role | str) -> int:
    return _LEVEL_BY_ROLE[Role(role)]


def child_level(parent_level: int | None) -> int:
    """Level of an account created under `parent_level` (no parent -> plain user)."""
    if parent_level is None:
        return MAX_LEVEL
    return min(parent_level + 1, MAX_LEVEL)


def role_permits(level: int, allowed: Sequence[Role | str]) -> bool:
    """
    Authorization guard for endpoint allow-lists.

    Only the numeric level is consulted: a caller is admitted when its level
    is at least as privileged as the least privileged listed role, so a stale
    role label can never lock out (or let in) an account. Admins always pass.
    """
    allowed_roles = {Role(r) for r in allowed}

    if level == MIN_LEVEL:
        return True

    if not allowed_roles:
        return False

    return level <= max(level_of(r) for r in allowed_roles)


def can_access(caller: Caller, owner_id: UUID | None, owner_chain: Sequence[UUID | None] = ()) -> bool:
    """
    Decide whether `caller` may act on a resource owned by `owner_id`.

    Args:
        caller: Authenticated account (id + level)
        owner_id: Account that owns the resource
        owner_chain: Owner's ancestors, nearest first (parent, grandparent, ...)
    """
    role = role_of(caller.level)
    if role is Role.ADMIN:
        return True

    if owner_id is None:
        return False

    if owner_id == caller.id:
        return True

    reach = _REACH_BY_ROLE[role]
    return caller.id in tuple(owner_chain)[:reach]


def can_assign(caller: Caller, assignee_id: UUID, assignee_chain: Sequence[UUID | None]) -> bool:
    """Slots may only be assigned strictly below the caller (admins: anyone)."""
    if role_of(caller.level) is Role.ADMIN:
        return True
    return assignee_id != caller.id and can_access(caller, assignee_id, assignee_chain)


def visibility_filter(
    caller: Caller,
    *,
    owner: str,
    parent: str,
    grandparent: str,
    include_self: bool = True,
) -> tuple[str, list[UUID]]:
    """
    SQL predicate equivalent to `can_access` for list queries.

    Args:
        caller: Authenticated account
        owner: Column holding the owning user id (e.g. "s.assigned_user_id")
        parent: Column holding the owner's parent id
        grandparent: Column holding the owner's grandparent id
        include_self: Whether rows owned by the caller are part of the result

    Column arguments are fixed SQL fragments chosen by the service, never
    request input.

    Returns:
        (predicate, params) with %s placeholders
    """
    role = role_of(caller.level)
    if role is Role.ADMIN:
        return "TRUE", []

    reach = _REACH_BY_ROLE[role]
    ancestor_columns = [parent, grandparent][:reach]

    terms = [f"{column} = %s" for column in ancestor_columns]
    params = [caller.id] * len(ancestor_columns)

    if include_self:
        terms.insert(0, f"{owner} = %s")
        params.insert(0, caller.id)

    if not terms:
        return "FALSE", []

    return "(" + " OR ".join(terms) + ")", params
