"""
Announcement service.

Readers only ever see visible, unexpired announcements addressed to "all"
or to their own role; anonymous readers see "all" only and administrators
see every audience.
"""

from uuid import UUID

from slotdesk.db.helpers import build_update, fetch_all, fetch_one, fetch_val
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.errors import NotFoundError, ValidationFailed
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.api.announcement_request import (
    AnnouncementCreateRequest,
    AnnouncementUpdateRequest,
)
from slotdesk.models.api.pagination import Page, PageParams
from slotdesk.models.domain.announcement_domain import Announcement
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.utils.codes import generate_code

logger = get_logger(__name__)

_READABLE = "a.is_visible = TRUE AND (a.expires_at IS NULL OR a.expires_at > NOW())"


def audience_filter(viewer: CurrentUser | None) -> tuple[str, list]:
    if viewer is None:
        return "a.target_audience = 'all'", []
    if viewer.is_admin:
        return "TRUE", []
    return "a.target_audience IN ('all', %s)", [viewer.role.value]


async def list_announcements(
    db: DatabasePoolManager,
    viewer: CurrentUser | None,
    params: PageParams,
    *,
    type: str | None = None,
    priority: str | None = None,
    is_pinned: bool | None = None,
) -> Page[Announcement]:
    """Pinned first, then by priority, then newest."""
    audience, args = audience_filter(viewer)
    where = [_READABLE, audience]

    if type:
        where.append("a.type = %s")
        args.append(type)

    if priority:
        where.append("a.priority = %s")
        args.append(priority)

    if is_pinned is not None:
        where.append("a.is_pinned = %s")
        args.append(is_pinned)

    where_sql = " AND ".join(where)

    async with db.connection() as conn:
        total = await fetch_val(conn, f"SELECT COUNT(*) FROM announcements a WHERE {where_sql}", args)
        rows = await fetch_all(
            conn,
            f"""
            SELECT a.*, u.full_name AS author_name, u.email AS author_email
            FROM announcements a
            LEFT JOIN users u ON u.id = a.author_id
            WHERE {where_sql}
            ORDER BY
                a.is_pinned DESC,
                CASE a.priority
                    WHEN 'urgent' THEN 1
                    WHEN 'high' THEN 2
                    WHEN 'normal' THEN 3
                    ELSE 4
                END,
                a.created_at DESC
            LIMIT %s OFFSET %s
            """,
            [*args, params.limit, params.offset],
        )

    return Page.build([Announcement(**row) for row in rows], total or 0, params)


async def get_announcement(
    db: DatabasePoolManager, viewer: CurrentUser | None, announcement_id: UUID
) -> Announcement:
    """Read one announcement, counting the view in the same statement."""
    audience, args = audience_filter(viewer)

    async with db.connection() as conn:
        row = await fetch_one(
            conn,
            f"""
            WITH viewed AS (
                UPDATE announcements a
                SET view_count = a.view_count + 1
                WHERE a.id = %s AND {_READABLE} AND {audience}
                RETURNING a.*
            )
            SELECT viewed.*, u.full_name AS author_name, u.email AS author_email
            FROM viewed
            LEFT JOIN users u ON u.id = viewed.author_id
            """,
            [announcement_id, *args],
        )

    if not row:
        raise NotFoundError("Announcement not found")

    return Announcement(**row)


async def create_announcement(
    db: DatabasePoolManager, author: CurrentUser, payload: AnnouncementCreateRequest
) -> Announcement:
    async with db.connection() as conn:
        row = await fetch_one(
            conn,
            """
            INSERT INTO announcements (
                announcement_code, title, content, type, priority,
                is_pinned, target_audience, author_id, expires_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                generate_code("ANN"),
                payload.title,
                payload.content,
                payload.type,
                payload.priority,
                payload.is_pinned,
                payload.target_audience,
                author.id,
                payload.expires_at,
            ),
        )

    logger.info("Announcement created", announcement_id=str(row["id"]), author_id=str(author.id))
    return Announcement(**row, author_name=author.full_name, author_email=author.email)


async def update_announcement(
    db: DatabasePoolManager, announcement_id: UUID, payload: AnnouncementUpdateRequest
) -> Announcement:
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationFailed("No fields to update")

    # expires_at may be cleared; every other column is NOT NULL
    changes = {k: v for k, v in changes.items() if v is not None or k == "expires_at"}
    if not changes:
        raise ValidationFailed("No fields to update")

    query, args = build_update("announcements", changes)
    async with db.connection() as conn:
        row = await fetch_one(conn, query, [*args, announcement_id])

    if not row:
        raise NotFoundError("Announcement not found")

    logger.info("Announcement updated", announcement_id=str(announcement_id), fields=sorted(changes))
    return Announcement(**row)


async def delete_announcement(db: DatabasePoolManager, announcement_id: UUID) -> UUID:
    async with db.connection() as conn:
        deleted = await fetch_val(
            conn, "DELETE FROM announcements WHERE id = %s RETURNING id", (announcement_id,)
        )

    if not deleted:
        raise NotFoundError("Announcement not found")

    logger.info("Announcement deleted", announcement_id=str(announcement_id))
    return deleted
