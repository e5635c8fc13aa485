"""
Cash service: balances, charge requests and the append-only ledger.

Balances change in exactly one place, `process_charge_request`, which runs
the status change, the balance upsert and the ledger append as a single
transaction. Everything else here only reads or creates pending requests.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from slotdesk.auth.hierarchy import Role, can_access, role_permits, visibility_filter
from slotdesk.db.helpers import fetch_all, fetch_one, fetch_val
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.errors import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.api.cash_request import ChargeRequestCreate
from slotdesk.models.api.pagination import Page, PageParams
from slotdesk.models.domain.cash_domain import (
    CHARGE_DESCRIPTION,
    Balance,
    CashStatistics,
    ChargeDecision,
    ChargeProcessingResult,
    ChargeRequest,
    LedgerEntry,
)
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.services.settings_service import get_decimal_setting
from slotdesk.services.user_service import get_hierarchy_node, owner_chain

logger = get_logger(__name__)

DEFAULT_MIN_CHARGE_AMOUNT = Decimal("10000")

# Joins every cash query uses to reach the owner's parent chain:
# u is the owning user, up the owner's parent.
_OWNER_JOINS = """
    JOIN users u ON u.id = {owner_column}
    LEFT JOIN users up ON up.id = u.parent_id
"""


def _owner_filter(caller: CurrentUser, owner_column: str) -> tuple[str, list]:
    return visibility_filter(caller, owner=owner_column, parent="u.parent_id", grandparent="up.parent_id")


async def get_balance(
    db: DatabasePoolManager, caller: CurrentUser, user_id: UUID | None = None
) -> Balance:
    """Balance of the caller, or of another account within the caller's reach."""
    target_id = user_id or caller.id

    async with db.connection() as conn:
        if target_id != caller.id:
            node = await get_hierarchy_node(conn, target_id)
            if not node:
                raise NotFoundError("User not found")
            if not can_access(caller, node["id"], owner_chain(node)):
                raise AuthorizationError("Access denied")

        row = await fetch_one(
            conn,
            "SELECT user_id, cash_balance, point_balance, last_updated FROM user_balances WHERE user_id = %s",
            (target_id,),
        )

    # Balances are created lazily on first credit
    return Balance(**row) if row else Balance(user_id=target_id)


async def create_charge_request(
    db: DatabasePoolManager, caller: CurrentUser, payload: ChargeRequestCreate
) -> ChargeRequest:
    async with db.connection() as conn:
        minimum = await get_decimal_setting(conn, "min_charge_amount", DEFAULT_MIN_CHARGE_AMOUNT)
        if payload.amount < minimum:
            raise ValidationFailed(f"Minimum charge amount is {minimum}")

        row = await fetch_one(
            conn,
            """
            INSERT INTO cash_charge_requests (user_id, amount, status, free_cash_percentage, account_holder)
            VALUES (%s, %s, 'pending', 0, %s)
            RETURNING *
            """,
            (caller.id, payload.amount, payload.account_holder),
        )

    logger.info(
        "Charge request created",
        request_id=str(row["id"]),
        user_id=str(caller.id),
        amount=str(payload.amount),
    )
    return ChargeRequest(**row)


async def list_charge_requests(
    db: DatabasePoolManager,
    caller: CurrentUser,
    params: PageParams,
    *,
    status: str | None = None,
) -> Page[ChargeRequest]:
    predicate, args = _owner_filter(caller, "cr.user_id")
    where = [predicate]

    if status:
        where.append("cr.status = %s")
        args.append(status)

    where_sql = " AND ".join(where)
    joins = _OWNER_JOINS.format(owner_column="cr.user_id")

    async with db.connection() as conn:
        total = await fetch_val(
            conn, f"SELECT COUNT(*) FROM cash_charge_requests cr {joins} WHERE {where_sql}", args
        )
        rows = await fetch_all(
            conn,
            f"""
            SELECT cr.*,
                   u.email, u.full_name, u.user_code,
                   p.full_name AS processor_name
            FROM cash_charge_requests cr
            {joins}
            LEFT JOIN users p ON p.id = cr.processor_id
            WHERE {where_sql}
            ORDER BY cr.requested_at DESC
            LIMIT %s OFFSET %s
            """,
            [*args, params.limit, params.offset],
        )

    return Page.build([ChargeRequest(**row) for row in rows], total or 0, params)


async def process_charge_request(
    db: DatabasePoolManager,
    request_id: UUID,
    decision: ChargeDecision,
    processor: CurrentUser,
    rejection_reason: str | None = None,
) -> ChargeProcessingResult:
    """
    Approve or reject a pending charge request exactly once.

    Args:
        db: Pool manager
        request_id: Charge request to decide
        decision: "approved" or "rejected"
        processor: Caller making the decision (agency level or above)
        rejection_reason: Stored on rejection only

    Returns:
        ChargeProcessingResult with the updated request and, on approval,
        the new balance and the appended ledger entry

    Raises:
        NotFoundError: Unknown request
        AuthorizationError: Processor below agency level, outside the
            requester's hierarchy, or deciding their own request
        ConflictError: Request is no longer pending

    The request row is locked first, so a concurrent second decision waits
    and then fails the pending check instead of crediting twice. The status
    change, balance upsert and ledger append commit together or not at all.
    """
    if not role_permits(processor.level, (Role.AGENCY,)):
        raise AuthorizationError("Insufficient permissions")

    balance = None
    ledger_entry = None

    async with db.transaction() as conn:
        current = await fetch_one(
            conn,
            """
            SELECT cr.*, u.parent_id AS owner_parent_id, up.parent_id AS owner_grandparent_id
            FROM cash_charge_requests cr
            JOIN users u ON u.id = cr.user_id
            LEFT JOIN users up ON up.id = u.parent_id
            WHERE cr.id = %s
            FOR UPDATE OF cr
            """,
            (request_id,),
        )
        if not current:
            raise NotFoundError("Request not found")

        owner_id = current["user_id"]
        if not processor.is_admin and owner_id == processor.id:
            raise AuthorizationError("You cannot process your own charge request")

        if not can_access(
            processor, owner_id, (current["owner_parent_id"], current["owner_grandparent_id"])
        ):
            raise AuthorizationError("Access denied")

        if current["status"] != "pending":
            raise ConflictError("Request already processed")

        updated = await fetch_one(
            conn,
            """
            UPDATE cash_charge_requests
            SET status = %s, processor_id = %s, processed_at = NOW(), rejection_reason = %s
            WHERE id = %s
            RETURNING *
            """,
            (
                decision,
                processor.id,
                rejection_reason if decision == "rejected" else None,
                request_id,
            ),
        )

        if decision == "approved":
            amount = current["amount"]

            balance_row = await fetch_one(
                conn,
                """
                INSERT INTO user_balances (user_id, cash_balance, point_balance, last_updated)
                VALUES (%s, %s, 0, NOW())
                ON CONFLICT (user_id) DO UPDATE
                SET cash_balance = user_balances.cash_balance + EXCLUDED.cash_balance,
                    last_updated = NOW()
                RETURNING user_id, cash_balance, point_balance, last_updated
                """,
                (owner_id, amount),
            )
            balance = Balance(**balance_row)

            ledger_row = await fetch_one(
                conn,
                """
                INSERT INTO cash_history (
                    user_id, transaction_type, amount, balance_type,
                    balance_after, description, reference_id, status
                ) VALUES (%s, 'charge', %s, 'paid', %s, %s, %s, 'completed')
                RETURNING *
                """,
                (owner_id, amount, balance.total_balance, CHARGE_DESCRIPTION, request_id),
            )
            ledger_entry = LedgerEntry(**ledger_row)

    logger.info(
        "Charge request processed",
        request_id=str(request_id),
        user_id=str(updated["user_id"]),
        decision=decision,
        processor_id=str(processor.id),
    )

    return ChargeProcessingResult(
        request=ChargeRequest(**updated),
        balance=balance,
        ledger_entry=ledger_entry,
    )


async def list_transactions(
    db: DatabasePoolManager,
    caller: CurrentUser,
    params: PageParams,
    *,
    transaction_type: str | None = None,
    user_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> Page[LedgerEntry]:
    predicate, args = _owner_filter(caller, "ch.user_id")
    where = [predicate]

    if user_id:
        where.append("ch.user_id = %s")
        args.append(user_id)

    if transaction_type:
        where.append("ch.transaction_type = %s")
        args.append(transaction_type)

    if date_from:
        where.append("ch.transaction_at >= %s")
        args.append(date_from)

    if date_to:
        # Inclusive: the whole of date_to
        where.append("ch.transaction_at < %s::date + 1")
        args.append(date_to)

    where_sql = " AND ".join(where)
    joins = _OWNER_JOINS.format(owner_column="ch.user_id")

    async with db.connection() as conn:
        total = await fetch_val(
            conn, f"SELECT COUNT(*) FROM cash_history ch {joins} WHERE {where_sql}", args
        )
        rows = await fetch_all(
            conn,
            f"""
            SELECT ch.*, u.email, u.full_name, u.user_code
            FROM cash_history ch
            {joins}
            WHERE {where_sql}
            ORDER BY ch.transaction_at DESC
            LIMIT %s OFFSET %s
            """,
            [*args, params.limit, params.offset],
        )

    return Page.build([LedgerEntry(**row) for row in rows], total or 0, params)


async def get_statistics(db: DatabasePoolManager, caller: CurrentUser) -> CashStatistics:
    """Revenue and request figures over the caller's subtree (admins: everything)."""
    history_filter, history_args = _owner_filter(caller, "ch.user_id")
    request_filter, request_args = _owner_filter(caller, "cr.user_id")
    user_filter, user_args = visibility_filter(
        caller, owner="u.id", parent="u.parent_id", grandparent="up.parent_id", include_self=False
    )

    async with db.connection() as conn:
        history = await fetch_one(
            conn,
            f"""
            SELECT
                COALESCE(SUM(ch.amount) FILTER (WHERE ch.transaction_type = 'charge'), 0)
                    AS total_revenue,
                COALESCE(SUM(ch.amount) FILTER (
                    WHERE ch.transaction_type = 'charge'
                    AND date_trunc('month', ch.transaction_at) = date_trunc('month', NOW())
                ), 0) AS monthly_revenue,
                COUNT(*) FILTER (WHERE ch.transaction_at::date = CURRENT_DATE)
                    AS today_transactions
            FROM cash_history ch
            {_OWNER_JOINS.format(owner_column="ch.user_id")}
            WHERE {history_filter}
            """,
            history_args,
        )
        requests = await fetch_one(
            conn,
            f"""
            SELECT
                COUNT(*) FILTER (WHERE cr.status = 'pending') AS pending_requests,
                COALESCE(ROUND(AVG(cr.amount) FILTER (WHERE cr.status = 'approved'), 2), 0)
                    AS average_charge
            FROM cash_charge_requests cr
            {_OWNER_JOINS.format(owner_column="cr.user_id")}
            WHERE {request_filter}
            """,
            request_args,
        )
        total_users = await fetch_val(
            conn,
            f"""
            SELECT COUNT(*)
            FROM users u
            LEFT JOIN users up ON up.id = u.parent_id
            WHERE u.level = 4 AND {user_filter}
            """,
            user_args,
        )

    return CashStatistics(**history, **requests, total_users=total_users or 0)
