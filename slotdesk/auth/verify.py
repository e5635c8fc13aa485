"""
verify.py
---------
Purpose:
    Request authentication and role guards for protected routes.

Notes:
    - `get_current_user` turns the bearer token into the active user row.
    - `get_optional_user` is the same for public routes that personalise
      their output when a token is present.
    - `require_roles(...)` builds an allow-list guard; the caller's level is
      what is compared, see `role_permits`.
"""

from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from slotdesk.auth.hierarchy import Role, role_permits
from slotdesk.auth.tokens import verify_token
from slotdesk.db.helpers import fetch_one
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.errors import AuthenticationError, AuthorizationError
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.domain.user_domain import CurrentUser

logger = get_logger(__name__)

_security = HTTPBearer(auto_error=False)

_ACTIVE_USER_QUERY = """
    SELECT id, user_code, email, full_name, level, status, parent_id
    FROM users
    WHERE id = %s AND status = 'active'
"""


async def load_active_user(db: DatabasePoolManager, user_id: str) -> CurrentUser | None:
    try:
        UUID(user_id)
    except ValueError:
        return None

    async with db.connection() as conn:
        row = await fetch_one(conn, _ACTIVE_USER_QUERY, (user_id,))

    return CurrentUser(**row) if row else None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
    db: DatabasePoolManager = Depends(get_db),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")

    claims = verify_token(credentials.credentials)

    user = await load_active_user(db, str(claims["sub"]))
    if not user:
        logger.warning("Token subject is missing or inactive", user_id=claims["sub"])
        raise AuthenticationError("User not found or inactive")

    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
    db: DatabasePoolManager = Depends(get_db),
) -> CurrentUser | None:
    """Like get_current_user, but anonymous or unusable tokens yield None."""
    if credentials is None or not credentials.credentials:
        return None

    try:
        claims = verify_token(credentials.credentials)
    except AuthenticationError:
        return None

    return await load_active_user(db, str(claims["sub"]))


def require_roles(*roles: Role):
    """
    Dependency factory guarding an endpoint by role.

    Usage:
        @router.post("/", dependencies=[Depends(require_roles(Role.ADMIN))])
        async def create(user: CurrentUser = Depends(require_roles(Role.ADMIN, Role.AGENCY))):
    """

    async def guard(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not role_permits(user.level, roles):
            logger.info(
                "Role guard rejected caller",
                user_id=str(user.id),
                level=user.level,
                allowed=[str(r) for r in roles],
            )
            raise AuthorizationError("Insufficient permissions")
        return user

    return guard
