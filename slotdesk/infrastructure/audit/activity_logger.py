"""
ActivityLogger - Append-only record of significant account actions.

Usage:
    from slotdesk.infrastructure.audit import activity_logger

    await activity_logger.log(
        db,
        user_id=user.id,
        action="charge_request_processed",
        entity_type="cash_charge_request",
        entity_id=request_id,
        details={"status": "approved"},
        ip_address="192.168.1.1",
        request_id="req-abc123",
    )

Every event is written to the structured log first and then inserted into
`activity_logs`. A failed insert is logged and reported as False; it never
fails the request that triggered it.
"""

from typing import Any
from uuid import UUID

from psycopg.types.json import Jsonb

from slotdesk.db.helpers import execute_query
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_INSERT = """
    INSERT INTO activity_logs (
        user_id, action, entity_type, entity_id,
        details, ip_address, user_agent, request_id
    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
"""


class ActivityLogger:
    """Writes activity events to structured logs and the database."""

    @staticmethod
    async def log(
        db: DatabasePoolManager,
        user_id: str | UUID | None,
        action: str,
        entity_type: str | None = None,
        entity_id: str | UUID | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        request_id: str | None = None,
    ) -> bool:
        """
        Log an activity event.

        Args:
            db: Pool manager used for the insert
            user_id: Acting user (None for anonymous actions such as failed logins)
            action: Action name (e.g., "login", "slot_created")
            entity_type: Kind of entity touched (e.g., "slot", "inquiry")
            entity_id: Id of the entity touched
            details: Additional JSON-serializable context
            ip_address: Client IP address
            user_agent: Client user agent string
            request_id: Request correlation ID

        Returns:
            True if stored, False if the insert failed (never raises)
        """
        user_id = str(user_id) if user_id else None
        entity_id = str(entity_id) if entity_id else None

        logger.info(
            "Activity event",
            activity_action=action,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            ip_address=ip_address,
            request_id=request_id,
        )

        try:
            async with db.connection() as conn:
                await execute_query(
                    conn,
                    _INSERT,
                    (
                        user_id,
                        action,
                        entity_type,
                        entity_id,
                        Jsonb(details) if details is not None else None,
                        ip_address,
                        user_agent,
                        request_id,
                    ),
                )
            return True

        except Exception as e:
            # Never fail the request because the activity trail could not be written
            logger.error(
                "Failed to write activity log",
                error=str(e),
                error_type=type(e).__name__,
                activity_action=action,
                user_id=user_id,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            return False


activity_logger = ActivityLogger()
