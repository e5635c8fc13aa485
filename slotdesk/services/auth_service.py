"""
Authentication service: registration, login and the caller's own profile.

Tokens are stateless; logout is handled entirely by the client discarding
its token.
"""

from slotdesk.auth.hierarchy import child_level
from slotdesk.auth.passwords import verify_password
from slotdesk.auth.tokens import issue_token
from slotdesk.config import settings
from slotdesk.db.helpers import execute_query, fetch_one, fetch_val
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.errors import AuthenticationError, AuthorizationError, ValidationFailed
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.api.user_request import RegisterRequest
from slotdesk.models.domain.user_domain import CurrentUser, User, UserDetail
from slotdesk.services.user_service import get_user, insert_user

logger = get_logger(__name__)

_INVALID_CREDENTIALS = "Invalid email or password"


async def register(db: DatabasePoolManager, payload: RegisterRequest) -> tuple[User, str]:
    """
    Create an account and sign it in.

    The level is derived from the optional parent (parent level + 1, capped
    at the user level); without a parent the account is a plain user.
    Parents more privileged than REGISTER_MIN_PARENT_LEVEL are refused, so
    deployments can keep self-service sign-ups out of the upper levels.

    Returns:
        (user, token)
    """
    async with db.transaction() as conn:
        parent_level = None
        if payload.parent_id:
            parent_level = await fetch_val(
                conn, "SELECT level FROM users WHERE id = %s", (payload.parent_id,)
            )
            if parent_level is None:
                raise ValidationFailed("Parent user not found")
            if parent_level < settings.REGISTER_MIN_PARENT_LEVEL:
                raise AuthorizationError("Registration under this account is not allowed")

        user = await insert_user(
            conn,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            user_code=payload.user_code,
            phone=payload.phone,
            parent_id=payload.parent_id,
            level=child_level(parent_level),
        )

    logger.info("User registered", user_id=str(user.id), level=user.level)
    return user, issue_token(str(user.id))


async def login(db: DatabasePoolManager, email: str, password: str) -> tuple[User, str]:
    """
    Check credentials of an active account and issue a token.

    Unknown email, wrong password and inactive accounts all fail the same way.
    """
    async with db.connection() as conn:
        row = await fetch_one(
            conn,
            "SELECT * FROM users WHERE email = %s AND status = 'active'",
            (email.lower(),),
        )

        if not row or not verify_password(row["password_hash"], password):
            logger.info("Login failed", email=email.lower())
            raise AuthenticationError(_INVALID_CREDENTIALS)

        await execute_query(
            conn, "UPDATE users SET last_login_at = NOW() WHERE id = %s", (row["id"],)
        )

    user = User(**row)
    logger.info("User logged in", user_id=str(user.id))
    return user, issue_token(str(user.id))


async def get_me(db: DatabasePoolManager, caller: CurrentUser) -> UserDetail:
    return await get_user(db, caller, caller.id)
