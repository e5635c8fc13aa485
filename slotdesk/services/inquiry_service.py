"""
Inquiry service: support threads between an account and the staff above it.

Thread lifecycle:
    open -> in_progress -> resolved / closed

- A new inquiry is created together with its first message.
- The first staff reply on an unassigned inquiry assigns the replier and
  moves it to in_progress unless it is already resolved or closed; later
  replies never reassign.
- Staff (agency and above) may set any status explicitly. Entering
  resolved/closed stamps resolved_at, leaving them keeps the stamp.
- Opening a thread marks the other side's messages as read. Unread counts
  in listings use the same side rule.

Which side a message is on follows ownership: the inquiry's owner writes as
"user", anyone else with access writes as "admin".
"""

from uuid import UUID

import psycopg

from slotdesk.auth.hierarchy import can_access, visibility_filter
from slotdesk.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.errors import AuthorizationError, NotFoundError
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.api.inquiry_request import InquiryCreateRequest
from slotdesk.models.api.pagination import Page, PageParams
from slotdesk.models.domain.inquiry_domain import (
    CLOSING_STATUSES,
    Inquiry,
    InquiryMessage,
    InquiryStatus,
    InquiryThread,
    SenderType,
)
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.utils.codes import generate_code

logger = get_logger(__name__)

_INQUIRY_SELECT = """
    SELECT i.*,
           u.full_name AS user_name,
           u.email AS user_email,
           a.full_name AS admin_name,
           u.parent_id AS owner_parent_id,
           up.parent_id AS owner_grandparent_id
    FROM inquiries i
    JOIN users u ON u.id = i.user_id
    LEFT JOIN users up ON up.id = u.parent_id
    LEFT JOIN users a ON a.id = i.assigned_admin_id
"""

_MESSAGE_SELECT = """
    SELECT m.*, s.full_name AS sender_name, s.email AS sender_email
    FROM inquiry_messages m
    JOIN users s ON s.id = m.sender_id
"""


def sender_side(caller: CurrentUser, inquiry_owner_id: UUID) -> SenderType:
    return "user" if caller.id == inquiry_owner_id else "admin"


async def _fetch_accessible_inquiry(
    conn: psycopg.AsyncConnection, caller: CurrentUser, inquiry_id: UUID, *, lock: bool = False
) -> dict:
    query = f"{_INQUIRY_SELECT} WHERE i.id = %s"
    if lock:
        query += " FOR UPDATE OF i"

    row = await fetch_one(conn, query, (inquiry_id,))
    if not row:
        raise NotFoundError("Inquiry not found")

    if not can_access(caller, row["user_id"], (row["owner_parent_id"], row["owner_grandparent_id"])):
        raise AuthorizationError("Access denied")

    return row


async def list_inquiries(
    db: DatabasePoolManager,
    caller: CurrentUser,
    params: PageParams,
    *,
    status: str | None = None,
    priority: str | None = None,
) -> Page[Inquiry]:
    """Open first, then urgent/high priority, then newest."""
    predicate, args = visibility_filter(
        caller, owner="i.user_id", parent="u.parent_id", grandparent="up.parent_id"
    )
    where = [predicate]

    if status:
        where.append("i.status = %s")
        args.append(status)

    if priority:
        where.append("i.priority = %s")
        args.append(priority)

    where_sql = " AND ".join(where)

    async with db.connection() as conn:
        total = await fetch_val(
            conn,
            f"""
            SELECT COUNT(*)
            FROM inquiries i
            JOIN users u ON u.id = i.user_id
            LEFT JOIN users up ON up.id = u.parent_id
            WHERE {where_sql}
            """,
            args,
        )
        rows = await fetch_all(
            conn,
            f"""
            SELECT listed.*,
                   (SELECT COUNT(*) FROM inquiry_messages m
                    WHERE m.inquiry_id = listed.id AND m.is_read = FALSE
                      AND m.sender_type <> CASE WHEN listed.user_id = %s THEN 'user' ELSE 'admin' END)
                       AS unread_count,
                   (SELECT m.message FROM inquiry_messages m
                    WHERE m.inquiry_id = listed.id
                    ORDER BY m.created_at DESC LIMIT 1) AS last_message
            FROM ({_INQUIRY_SELECT} WHERE {where_sql}) AS listed
            ORDER BY
                CASE WHEN listed.status = 'open' THEN 0 ELSE 1 END,
                CASE listed.priority WHEN 'urgent' THEN 0 WHEN 'high' THEN 1 ELSE 2 END,
                listed.created_at DESC
            LIMIT %s OFFSET %s
            """,
            [caller.id, *args, params.limit, params.offset],
        )

    return Page.build([Inquiry(**row) for row in rows], total or 0, params)


async def create_inquiry(
    db: DatabasePoolManager, caller: CurrentUser, payload: InquiryCreateRequest
) -> Inquiry:
    async with db.transaction() as conn:
        inquiry = await fetch_one(
            conn,
            """
            INSERT INTO inquiries (inquiry_code, user_id, title, category, priority, status, last_message_at)
            VALUES (%s, %s, %s, %s, %s, 'open', NOW())
            RETURNING id
            """,
            (generate_code("INQ"), caller.id, payload.title, payload.category, payload.priority),
        )
        await execute_query(
            conn,
            """
            INSERT INTO inquiry_messages (inquiry_id, sender_id, sender_type, message)
            VALUES (%s, %s, 'user', %s)
            """,
            (inquiry["id"], caller.id, payload.message),
        )
        row = await fetch_one(conn, f"{_INQUIRY_SELECT} WHERE i.id = %s", (inquiry["id"],))

    logger.info("Inquiry created", inquiry_id=str(row["id"]), user_id=str(caller.id))
    return Inquiry(**row)


async def get_inquiry(db: DatabasePoolManager, caller: CurrentUser, inquiry_id: UUID) -> InquiryThread:
    """Load a thread and mark the other side's unread messages as read."""
    async with db.transaction() as conn:
        row = await _fetch_accessible_inquiry(conn, caller, inquiry_id)

        other_side = "admin" if sender_side(caller, row["user_id"]) == "user" else "user"
        marked = await execute_query(
            conn,
            """
            UPDATE inquiry_messages
            SET is_read = TRUE, read_at = NOW()
            WHERE inquiry_id = %s AND sender_type = %s AND is_read = FALSE
            """,
            (inquiry_id, other_side),
        )

        messages = await fetch_all(
            conn, f"{_MESSAGE_SELECT} WHERE m.inquiry_id = %s ORDER BY m.created_at", (inquiry_id,)
        )

    if marked:
        logger.debug("Inquiry messages marked read", inquiry_id=str(inquiry_id), count=marked)

    return InquiryThread(
        inquiry=Inquiry(**row),
        messages=[InquiryMessage(**m) for m in messages],
    )


async def add_message(
    db: DatabasePoolManager, caller: CurrentUser, inquiry_id: UUID, message: str
) -> InquiryMessage:
    """
    Post a message to a thread.

    The inquiry row is locked so that, of two staff members replying at the
    same time to an unassigned inquiry, exactly one becomes the assignee.
    """
    async with db.transaction() as conn:
        inquiry = await _fetch_accessible_inquiry(conn, caller, inquiry_id, lock=True)
        side = sender_side(caller, inquiry["user_id"])

        inserted = await fetch_one(
            conn,
            """
            INSERT INTO inquiry_messages (inquiry_id, sender_id, sender_type, message)
            VALUES (%s, %s, %s, %s)
            RETURNING id
            """,
            (inquiry_id, caller.id, side, message),
        )

        assigned = side == "admin" and inquiry["assigned_admin_id"] is None
        if assigned:
            # Resolved/closed threads only reopen through update_status
            status = inquiry["status"] if inquiry["status"] in CLOSING_STATUSES else "in_progress"
            await execute_query(
                conn,
                """
                UPDATE inquiries
                SET assigned_admin_id = %s, status = %s,
                    last_message_at = NOW(), updated_at = NOW()
                WHERE id = %s
                """,
                (caller.id, status, inquiry_id),
            )
        else:
            await execute_query(
                conn,
                "UPDATE inquiries SET last_message_at = NOW(), updated_at = NOW() WHERE id = %s",
                (inquiry_id,),
            )

        row = await fetch_one(conn, f"{_MESSAGE_SELECT} WHERE m.id = %s", (inserted["id"],))

    logger.info(
        "Inquiry message added",
        inquiry_id=str(inquiry_id),
        sender_id=str(caller.id),
        sender_type=side,
        assigned=assigned,
    )
    return InquiryMessage(**row)


async def update_status(
    db: DatabasePoolManager, caller: CurrentUser, inquiry_id: UUID, status: InquiryStatus
) -> Inquiry:
    async with db.transaction() as conn:
        current = await _fetch_accessible_inquiry(conn, caller, inquiry_id, lock=True)

        stamp_resolved = status in CLOSING_STATUSES and current["status"] != status
        await execute_query(
            conn,
            """
            UPDATE inquiries
            SET status = %s,
                resolved_at = CASE WHEN %s THEN NOW() ELSE resolved_at END,
                updated_at = NOW()
            WHERE id = %s
            """,
            (status, stamp_resolved, inquiry_id),
        )
        row = await fetch_one(conn, f"{_INQUIRY_SELECT} WHERE i.id = %s", (inquiry_id,))

    logger.info(
        "Inquiry status changed",
        inquiry_id=str(inquiry_id),
        from_status=current["status"],
        to_status=status,
        changed_by=str(caller.id),
    )
    return Inquiry(**row)
