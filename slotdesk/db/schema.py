"""
Schema bootstrap.

Runs schema.sql (idempotent DDL + seed settings) and makes sure a root admin
account exists when ADMIN_EMAIL / ADMIN_PASSWORD are configured.
"""

from pathlib import Path

from slotdesk.auth.passwords import hash_password
from slotdesk.config import Settings, settings
from slotdesk.db.helpers import execute_query
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


async def apply_schema(db: DatabasePoolManager, config: Settings = settings) -> None:
    """Create tables, indexes and seed rows, then bootstrap the admin account."""
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")

    async with db.transaction() as conn:
        await conn.execute(ddl)

    logger.info("Database schema applied", path=str(SCHEMA_PATH))

    if config.ADMIN_EMAIL and config.ADMIN_PASSWORD:
        await ensure_admin(db, config)


async def ensure_admin(db: DatabasePoolManager, config: Settings = settings) -> None:
    query = """
        INSERT INTO users (user_code, email, password_hash, full_name, level, parent_id)
        VALUES (%s, %s, %s, %s, 1, NULL)
        ON CONFLICT DO NOTHING
    """
    async with db.connection() as conn:
        created = await execute_query(
            conn,
            query,
            (
                config.ADMIN_USER_CODE,
                config.ADMIN_EMAIL.lower(),
                hash_password(config.ADMIN_PASSWORD),
                "System Administrator",
            ),
        )

    if created:
        logger.info("Bootstrap admin account created", email=config.ADMIN_EMAIL)
