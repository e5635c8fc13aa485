"""
Tests for password hashing and bearer token issue/verify.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt
import pytest

from slotdesk.auth.passwords import hash_password, verify_password
from slotdesk.auth.tokens import issue_token, verify_token
from slotdesk.config import settings
from slotdesk.errors import AuthenticationError


class TestPasswords:
    def test_hash_is_salted_and_verifies(self):
        first = hash_password("secret123")
        second = hash_password("secret123")

        assert first != second
        assert first != "secret123"
        assert verify_password(first, "secret123")
        assert verify_password(second, "secret123")

    def test_wrong_password_does_not_verify(self):
        assert not verify_password(hash_password("secret123"), "secret124")

    def test_missing_hash_never_verifies(self):
        assert not verify_password(None, "anything")
        assert not verify_password("", "anything")


class TestTokens:
    def test_issued_token_carries_subject(self):
        user_id = str(uuid4())

        claims = verify_token(issue_token(user_id))

        assert claims["sub"] == user_id

    def test_default_expiry_is_seven_days(self):
        now = datetime.now(UTC).replace(microsecond=0)

        claims = verify_token(issue_token("abc", now=now))

        assert claims["exp"] - claims["iat"] == int(timedelta(days=settings.JWT_EXPIRES_DAYS).total_seconds())

    def test_expired_token_rejected(self):
        issued = datetime.now(UTC) - timedelta(days=settings.JWT_EXPIRES_DAYS + 1)

        with pytest.raises(AuthenticationError, match="expired"):
            verify_token(issue_token("abc", now=issued))

    def test_token_signed_with_other_secret_rejected(self):
        forged = jwt.encode(
            {"sub": "abc", "exp": datetime.now(UTC) + timedelta(hours=1)},
            "not-the-secret",
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError, match="Invalid"):
            verify_token(forged)

    def test_token_without_subject_rejected(self):
        token = jwt.encode(
            {"exp": datetime.now(UTC) + timedelta(hours=1)},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )

        with pytest.raises(AuthenticationError):
            verify_token(token)

    def test_garbage_rejected(self):
        with pytest.raises(AuthenticationError):
            verify_token("not.a.token")
