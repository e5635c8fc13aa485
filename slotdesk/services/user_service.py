"""
User service: account hierarchy reads and writes.

Service layer returns domain models only - API layer handles HTTP concerns.
Access to another account always goes through `can_access` with the target's
parent chain, loaded by `get_hierarchy_node`.
"""

from typing import Any
from uuid import UUID

import psycopg

from slotdesk.auth.hierarchy import can_access, child_level, visibility_filter
from slotdesk.auth.passwords import hash_password, verify_password
from slotdesk.db.helpers import build_update, fetch_all, fetch_one, fetch_val
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.errors import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.api.pagination import Page, PageParams
from slotdesk.models.api.user_request import (
    PasswordChangeRequest,
    UserCreateRequest,
    UserUpdateRequest,
)
from slotdesk.models.domain.user_domain import CurrentUser, User, UserDetail, UserSummary

logger = get_logger(__name__)

_SUMMARY_COLUMNS = """
    u.id, u.user_code, u.email, u.full_name, u.phone, u.level, u.status,
    u.parent_id, u.last_login_at, u.created_at, u.updated_at,
    p.full_name AS parent_name,
    (SELECT COUNT(*) FROM users c WHERE c.parent_id = u.id) AS children_count,
    (SELECT COUNT(*) FROM slots s WHERE s.assigned_user_id = u.id) AS slot_count,
    (SELECT COUNT(*) FROM slots s WHERE s.assigned_user_id = u.id AND s.status = 'active')
        AS active_slot_count,
    COALESCE(ub.cash_balance, 0) AS cash_balance,
    COALESCE(ub.point_balance, 0) AS point_balance
"""

_SUMMARY_FROM = """
    FROM users u
    LEFT JOIN users p ON p.id = u.parent_id
    LEFT JOIN user_balances ub ON ub.user_id = u.id
"""


async def get_hierarchy_node(
    conn: psycopg.AsyncConnection, user_id: UUID, *, lock: bool = False
) -> dict[str, Any] | None:
    """
    Load a user's id, level and the two nearest ancestors.

    Args:
        conn: Connection (inside a transaction when lock=True)
        user_id: Account to look up
        lock: Take a row lock on the user for the rest of the transaction

    Returns:
        {"id", "level", "parent_id", "grandparent_id"} or None
    """
    query = """
        SELECT u.id, u.level, u.parent_id, p.parent_id AS grandparent_id
        FROM users u
        LEFT JOIN users p ON p.id = u.parent_id
        WHERE u.id = %s
    """
    if lock:
        query += " FOR UPDATE OF u"
    return await fetch_one(conn, query, (user_id,))


def owner_chain(node: dict[str, Any]) -> tuple[UUID | None, UUID | None]:
    return node["parent_id"], node["grandparent_id"]


async def _ensure_unique_identity(
    conn: psycopg.AsyncConnection, email: str, user_code: str
) -> None:
    existing = await fetch_val(
        conn,
        "SELECT id FROM users WHERE email = %s OR user_code = %s LIMIT 1",
        (email, user_code),
    )
    if existing:
        raise ConflictError("Email or user code already exists")


async def insert_user(
    conn: psycopg.AsyncConnection,
    *,
    email: str,
    password: str,
    full_name: str,
    user_code: str,
    phone: str | None,
    parent_id: UUID | None,
    level: int,
) -> User:
    """Insert a new account after checking email / user code uniqueness."""
    email = email.lower()
    await _ensure_unique_identity(conn, email, user_code)

    row = await fetch_one(
        conn,
        """
        INSERT INTO users (user_code, email, password_hash, full_name, phone, parent_id, level)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING *
        """,
        (user_code, email, hash_password(password), full_name, phone, parent_id, level),
    )
    return User(**row)


async def list_users(
    db: DatabasePoolManager,
    caller: CurrentUser,
    params: PageParams,
    *,
    level: int | None = None,
    status: str | None = None,
    search: str | None = None,
) -> Page[UserSummary]:
    """
    List the accounts below the caller (admins: everyone).

    The caller's own row is not part of the listing.
    """
    predicate, args = visibility_filter(
        caller, owner="u.id", parent="u.parent_id", grandparent="p.parent_id", include_self=False
    )
    where = [predicate, "u.id <> %s"]
    args.append(caller.id)

    if level is not None:
        where.append("u.level = %s")
        args.append(level)

    if status:
        where.append("u.status = %s")
        args.append(status)

    if search:
        where.append("(u.full_name ILIKE %s OR u.email ILIKE %s OR u.user_code ILIKE %s)")
        pattern = f"%{search}%"
        args.extend([pattern, pattern, pattern])

    where_sql = " AND ".join(where)

    async with db.connection() as conn:
        total = await fetch_val(conn, f"SELECT COUNT(*) {_SUMMARY_FROM} WHERE {where_sql}", args)
        rows = await fetch_all(
            conn,
            f"""
            SELECT {_SUMMARY_COLUMNS}
            {_SUMMARY_FROM}
            WHERE {where_sql}
            ORDER BY u.level, u.created_at DESC
            LIMIT %s OFFSET %s
            """,
            [*args, params.limit, params.offset],
        )

    return Page.build([UserSummary(**row) for row in rows], total or 0, params)


async def get_user(db: DatabasePoolManager, caller: CurrentUser, user_id: UUID) -> UserDetail:
    async with db.connection() as conn:
        row = await fetch_one(
            conn,
            f"""
            SELECT {_SUMMARY_COLUMNS},
                   p.email AS parent_email,
                   p.parent_id AS grandparent_id
            {_SUMMARY_FROM}
            WHERE u.id = %s
            """,
            (user_id,),
        )

    if not row:
        raise NotFoundError("User not found")

    if not can_access(caller, row["id"], (row["parent_id"], row["grandparent_id"])):
        raise AuthorizationError("Access denied")

    return UserDetail(**row)


async def create_user(
    db: DatabasePoolManager, caller: CurrentUser, payload: UserCreateRequest
) -> User:
    """Create an account one level below the caller, parented to the caller."""
    level = child_level(caller.level)

    async with db.transaction() as conn:
        user = await insert_user(
            conn,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            user_code=payload.user_code,
            phone=payload.phone,
            parent_id=caller.id,
            level=level,
        )

    logger.info(
        "User created",
        user_id=str(user.id),
        created_by=str(caller.id),
        level=level,
    )
    return user


async def update_user(
    db: DatabasePoolManager, caller: CurrentUser, user_id: UUID, payload: UserUpdateRequest
) -> User:
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise ValidationFailed("No fields to update")

    if not caller.is_admin and ({"status", "email"} & changes.keys()):
        raise AuthorizationError("Only administrators may change status or email")

    if "email" in changes:
        changes["email"] = changes["email"].lower()

    async with db.transaction() as conn:
        node = await get_hierarchy_node(conn, user_id, lock=True)
        if not node:
            raise NotFoundError("User not found")

        if not can_access(caller, node["id"], owner_chain(node)):
            raise AuthorizationError("Access denied")

        query, args = build_update("users", changes)
        row = await fetch_one(conn, query, [*args, user_id])

    logger.info(
        "User updated",
        user_id=str(user_id),
        updated_by=str(caller.id),
        fields=sorted(changes),
    )
    return User(**row)


async def change_password(
    db: DatabasePoolManager, caller: CurrentUser, user_id: UUID, payload: PasswordChangeRequest
) -> None:
    """Only the account owner may change a password, and must prove the current one."""
    if caller.id != user_id:
        raise AuthorizationError("You can only change your own password")

    async with db.connection() as conn:
        current_hash = await fetch_val(
            conn, "SELECT password_hash FROM users WHERE id = %s", (user_id,)
        )
        if current_hash is None:
            raise NotFoundError("User not found")

        if not verify_password(current_hash, payload.current_password):
            raise ValidationFailed("Current password is incorrect")

        await fetch_one(
            conn,
            "UPDATE users SET password_hash = %s, updated_at = NOW() WHERE id = %s RETURNING id",
            (hash_password(payload.new_password), user_id),
        )

    logger.info("Password changed", user_id=str(user_id))


async def list_children(
    db: DatabasePoolManager, caller: CurrentUser, user_id: UUID
) -> list[UserSummary]:
    async with db.connection() as conn:
        node = await get_hierarchy_node(conn, user_id)
        if not node:
            raise NotFoundError("User not found")

        if not can_access(caller, node["id"], owner_chain(node)):
            raise AuthorizationError("Access denied")

        rows = await fetch_all(
            conn,
            f"""
            SELECT {_SUMMARY_COLUMNS}
            {_SUMMARY_FROM}
            WHERE u.parent_id = %s
            ORDER BY u.created_at DESC
            """,
            (user_id,),
        )

    return [UserSummary(**row) for row in rows]
