"""
System settings service.

Settings are plain key/value rows in `system_settings`; values are stored as
text and converted by the reader (`get_int_setting`, `get_decimal_setting`).
"""

from decimal import Decimal, InvalidOperation

import psycopg

from slotdesk.db.helpers import fetch_all, fetch_one, fetch_val
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.errors import NotFoundError
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.domain.settings_domain import SystemSetting

logger = get_logger(__name__)

_VALUE_QUERY = "SELECT setting_value FROM system_settings WHERE setting_key = %s"


async def get_setting_value(conn: psycopg.AsyncConnection, key: str) -> str | None:
    return await fetch_val(conn, _VALUE_QUERY, (key,))


async def get_int_setting(conn: psycopg.AsyncConnection, key: str, default: int) -> int:
    raw = await get_setting_value(conn, key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Non-integer system setting, using default", key=key, value=raw)
        return default


async def get_decimal_setting(
    conn: psycopg.AsyncConnection, key: str, default: Decimal
) -> Decimal:
    raw = await get_setting_value(conn, key)
    if raw is None:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        logger.warning("Non-numeric system setting, using default", key=key, value=raw)
        return default


async def list_settings(db: DatabasePoolManager) -> list[SystemSetting]:
    async with db.connection() as conn:
        rows = await fetch_all(
            conn,
            """
            SELECT setting_key, setting_value, description, updated_at
            FROM system_settings
            ORDER BY setting_key
            """,
        )
    return [SystemSetting(**row) for row in rows]


async def update_setting(db: DatabasePoolManager, key: str, value: str) -> SystemSetting:
    """Overwrite an existing setting; unknown keys are rejected rather than created."""
    async with db.connection() as conn:
        row = await fetch_one(
            conn,
            """
            UPDATE system_settings
            SET setting_value = %s, updated_at = NOW()
            WHERE setting_key = %s
            RETURNING setting_key, setting_value, description, updated_at
            """,
            (value, key),
        )

    if not row:
        raise NotFoundError("Setting not found")

    logger.info("System setting updated", key=key)
    return SystemSetting(**row)
