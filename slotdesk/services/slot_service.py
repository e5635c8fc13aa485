"""
Slot service: assignment, lifecycle updates and ranking history.

Slots belong to their assignee; everyone above the assignee within reach
(see `can_access`) can read and update them. `duration_days` and
`remaining_days` are always computed from the date range at read time.
"""

from uuid import UUID

import psycopg

from slotdesk.auth.hierarchy import can_access, can_assign, visibility_filter
from slotdesk.db.helpers import build_update, fetch_all, fetch_one, fetch_val
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.errors import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.api.pagination import Page, PageParams
from slotdesk.models.api.slot_request import SlotCreateRequest, SlotUpdateRequest
from slotdesk.models.domain.slot_domain import (
    OPEN_SLOT_STATUSES,
    RankingEntry,
    Slot,
    classify_rank_change,
)
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.services.settings_service import get_int_setting
from slotdesk.services.user_service import get_hierarchy_node, owner_chain

logger = get_logger(__name__)

DEFAULT_MAX_SLOTS_PER_USER = 10

# au: assignee, ap: assignee's parent, ab: assigner, r: newest ranking
_SLOT_SELECT = """
    SELECT s.*,
           COALESCE(s.end_date - s.start_date, 0) AS duration_days,
           COALESCE(GREATEST(0, s.end_date - CURRENT_DATE), 0) AS remaining_days,
           au.full_name AS assigned_user_name,
           au.email AS assigned_user_email,
           ab.full_name AS assigned_by_name,
           au.parent_id AS owner_parent_id,
           ap.parent_id AS owner_grandparent_id,
           r.current_rank,
           r.previous_rank,
           r.rank_change
    FROM slots s
    JOIN users au ON au.id = s.assigned_user_id
    LEFT JOIN users ap ON ap.id = au.parent_id
    LEFT JOIN users ab ON ab.id = s.assigned_by_id
    LEFT JOIN LATERAL (
        SELECT sr.current_rank, sr.previous_rank, sr.rank_change
        FROM slot_rankings sr
        WHERE sr.slot_id = s.id
        ORDER BY sr.checked_at DESC, sr.created_at DESC
        LIMIT 1
    ) r ON TRUE
"""


def _slot_chain(row: dict) -> tuple[UUID | None, UUID | None]:
    return row["owner_parent_id"], row["owner_grandparent_id"]


async def _fetch_slot(conn: psycopg.AsyncConnection, slot_id: UUID) -> dict | None:
    return await fetch_one(conn, f"{_SLOT_SELECT} WHERE s.id = %s", (slot_id,))


async def _fetch_accessible_slot(
    conn: psycopg.AsyncConnection, caller: CurrentUser, slot_id: UUID
) -> dict:
    row = await _fetch_slot(conn, slot_id)
    if not row:
        raise NotFoundError("Slot not found")

    if not can_access(caller, row["assigned_user_id"], _slot_chain(row)):
        raise AuthorizationError("Access denied")

    return row


async def list_slots(
    db: DatabasePoolManager,
    caller: CurrentUser,
    params: PageParams,
    *,
    status: str | None = None,
    category: str | None = None,
    search: str | None = None,
) -> Page[Slot]:
    predicate, args = visibility_filter(
        caller, owner="s.assigned_user_id", parent="au.parent_id", grandparent="ap.parent_id"
    )
    where = [predicate]

    if status:
        where.append("s.status = %s")
        args.append(status)

    if category:
        where.append("s.category = %s")
        args.append(category)

    if search:
        where.append("(s.slot_name ILIKE %s OR s.keyword ILIKE %s OR s.slot_code ILIKE %s)")
        pattern = f"%{search}%"
        args.extend([pattern, pattern, pattern])

    where_sql = " AND ".join(where)

    async with db.connection() as conn:
        total = await fetch_val(
            conn,
            f"""
            SELECT COUNT(*)
            FROM slots s
            JOIN users au ON au.id = s.assigned_user_id
            LEFT JOIN users ap ON ap.id = au.parent_id
            WHERE {where_sql}
            """,
            args,
        )
        rows = await fetch_all(
            conn,
            f"{_SLOT_SELECT} WHERE {where_sql} ORDER BY s.created_at DESC LIMIT %s OFFSET %s",
            [*args, params.limit, params.offset],
        )

    return Page.build([Slot(**row) for row in rows], total or 0, params)


async def get_slot(db: DatabasePoolManager, caller: CurrentUser, slot_id: UUID) -> Slot:
    async with db.connection() as conn:
        row = await _fetch_accessible_slot(conn, caller, slot_id)
    return Slot(**row)


async def create_slot(
    db: DatabasePoolManager, caller: CurrentUser, payload: SlotCreateRequest
) -> Slot:
    """
    Assign a new slot to an account strictly below the caller.

    The assignee's row is locked while the open-slot cap is checked, so two
    concurrent assignments cannot both squeeze under the limit.
    """
    async with db.transaction() as conn:
        assignee = await get_hierarchy_node(conn, payload.assigned_user_id, lock=True)
        if not assignee:
            raise NotFoundError("Assigned user not found")

        if not can_assign(caller, assignee["id"], owner_chain(assignee)):
            raise AuthorizationError("You cannot assign slots to this user")

        existing = await fetch_val(
            conn, "SELECT id FROM slots WHERE slot_code = %s", (payload.slot_code,)
        )
        if existing:
            raise ConflictError("Slot code already exists")

        max_slots = await get_int_setting(conn, "max_slots_per_user", DEFAULT_MAX_SLOTS_PER_USER)
        open_slots = await fetch_val(
            conn,
            "SELECT COUNT(*) FROM slots WHERE assigned_user_id = %s AND status = ANY(%s)",
            (assignee["id"], list(OPEN_SLOT_STATUSES)),
        )
        if open_slots >= max_slots:
            raise ValidationFailed(f"User already has the maximum of {max_slots} open slots")

        inserted = await fetch_one(
            conn,
            """
            INSERT INTO slots (
                slot_code, slot_name, description, keyword, url, thumbnail,
                category, work_type, assigned_user_id, assigned_by_id,
                start_date, end_date, price
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                payload.slot_code,
                payload.slot_name,
                payload.description,
                payload.keyword,
                str(payload.url),
                payload.thumbnail,
                payload.category,
                payload.work_type,
                assignee["id"],
                caller.id,
                payload.start_date,
                payload.end_date,
                payload.price,
            ),
        )
        row = await _fetch_slot(conn, inserted["id"])

    logger.info(
        "Slot created",
        slot_id=str(row["id"]),
        assigned_user_id=str(assignee["id"]),
        assigned_by=str(caller.id),
    )
    return Slot(**row)


async def update_slot(
    db: DatabasePoolManager, caller: CurrentUser, slot_id: UUID, payload: SlotUpdateRequest
) -> Slot:
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise ValidationFailed("No fields to update")

    if "url" in changes:
        changes["url"] = str(changes["url"])

    async with db.transaction() as conn:
        await _fetch_accessible_slot(conn, caller, slot_id)

        query, args = build_update("slots", changes)
        await fetch_one(conn, query, [*args, slot_id])
        row = await _fetch_slot(conn, slot_id)

    logger.info("Slot updated", slot_id=str(slot_id), updated_by=str(caller.id), fields=sorted(changes))
    return Slot(**row)


async def delete_slot(db: DatabasePoolManager, slot_id: UUID) -> UUID:
    async with db.connection() as conn:
        deleted = await fetch_val(conn, "DELETE FROM slots WHERE id = %s RETURNING id", (slot_id,))

    if not deleted:
        raise NotFoundError("Slot not found")

    logger.info("Slot deleted", slot_id=str(slot_id))
    return deleted


async def record_rank(
    db: DatabasePoolManager, caller: CurrentUser, slot_id: UUID, current_rank: int
) -> RankingEntry:
    """
    Append a ranking observation and classify it against the previous one.

    The slot row is locked for the duration, so concurrent writers for the
    same slot see each other's rows and never share a "previous" entry.
    """
    if current_rank < 1:
        raise ValidationFailed("current_rank must be a positive integer")

    async with db.transaction() as conn:
        slot = await fetch_one(
            conn,
            """
            SELECT s.id, s.assigned_user_id,
                   au.parent_id AS owner_parent_id,
                   ap.parent_id AS owner_grandparent_id
            FROM slots s
            JOIN users au ON au.id = s.assigned_user_id
            LEFT JOIN users ap ON ap.id = au.parent_id
            WHERE s.id = %s
            FOR UPDATE OF s
            """,
            (slot_id,),
        )
        if not slot:
            raise NotFoundError("Slot not found")

        if not can_access(caller, slot["assigned_user_id"], _slot_chain(slot)):
            raise AuthorizationError("Access denied")

        previous_rank = await fetch_val(
            conn,
            """
            SELECT current_rank
            FROM slot_rankings
            WHERE slot_id = %s
            ORDER BY checked_at DESC, created_at DESC
            LIMIT 1
            """,
            (slot_id,),
        )
        change = classify_rank_change(previous_rank, current_rank)

        row = await fetch_one(
            conn,
            """
            INSERT INTO slot_rankings (slot_id, current_rank, previous_rank, rank_change)
            VALUES (%s, %s, %s, %s)
            RETURNING *
            """,
            (slot_id, current_rank, previous_rank, change.value),
        )

    logger.info(
        "Slot rank recorded",
        slot_id=str(slot_id),
        current_rank=current_rank,
        previous_rank=previous_rank,
        rank_change=change.value,
    )
    return RankingEntry(**row)


async def list_rankings(
    db: DatabasePoolManager, caller: CurrentUser, slot_id: UUID, limit: int
) -> list[RankingEntry]:
    """Ranking history of one slot, newest first."""
    async with db.connection() as conn:
        await _fetch_accessible_slot(conn, caller, slot_id)
        rows = await fetch_all(
            conn,
            """
            SELECT *
            FROM slot_rankings
            WHERE slot_id = %s
            ORDER BY checked_at DESC, created_at DESC
            LIMIT %s
            """,
            (slot_id, limit),
        )

    return [RankingEntry(**row) for row in rows]
