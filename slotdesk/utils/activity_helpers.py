"""
Activity Helper Utilities - One-line activity logging for endpoints.

Usage:
    from slotdesk.utils.activity_helpers import record_activity

    await record_activity(
        request,
        db,
        user_id=user.id,
        action="slot_created",
        entity_type="slot",
        entity_id=slot.id,
    )

Request context (IP, user agent, request id) is read from `request.state`,
where RequestContextMiddleware puts it.
"""

from typing import Any
from uuid import UUID

from fastapi import Request

from slotdesk.db.pool import DatabasePoolManager
from slotdesk.infrastructure.audit.activity_logger import activity_logger


async def record_activity(
    request: Request,
    db: DatabasePoolManager,
    user_id: str | UUID | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | UUID | None = None,
    details: dict[str, Any] | None = None,
) -> bool:
    return await activity_logger.log(
        db,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=getattr(request.state, "ip_address", None),
        user_agent=getattr(request.state, "user_agent", None),
        request_id=getattr(request.state, "request_id", None),
    )
