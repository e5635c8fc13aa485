"""
tokens.py
---------
Purpose:
    Issue and verify the API's bearer tokens (HS256 JWT).

Notes:
    - The `sub` claim carries the user id; the user record itself is loaded
      fresh on every request so status changes take effect immediately.
    - Expiry defaults to JWT_EXPIRES_DAYS (7 days).
"""

from datetime import UTC, datetime, timedelta

import jwt

from slotdesk.config import settings
from slotdesk.errors import AuthenticationError


def issue_token(user_id: str, *, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> dict:
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": True, "require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid authentication token") from e

    return claims
