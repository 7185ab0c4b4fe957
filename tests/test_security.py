"""Tests for password hashing and session tokens."""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from papertrader.core.config import settings
from papertrader.core.exceptions import AuthenticationError
from papertrader.core.security import (
    JWT_ALGORITHM,
    create_session_token,
    decode_session_token,
    hash_password,
    session_lifetime,
    verify_password,
)


class TestPasswordHashing:
    def test_hash_verifies(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("s3cret-pass")
        assert not verify_password("other-pass", hashed)

    def test_malformed_hash_fails_closed(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestSessionTokens:
    def test_round_trip_carries_identity(self):
        token = create_session_token(42, "dave@example.com", "dave")

        user = decode_session_token(token)

        assert user.id == 42
        assert user.email == "dave@example.com"
        assert user.username == "dave"
        assert user.exp is not None

    def test_expired_token_rejected(self):
        token = create_session_token(
            1, "a@example.com", "a_user", expires_delta=timedelta(seconds=-5)
        )

        with pytest.raises(AuthenticationError) as exc_info:
            decode_session_token(token)
        assert exc_info.value.error_code == "TOKEN_EXPIRED"

    def test_tampered_token_rejected(self):
        token = create_session_token(1, "a@example.com", "a_user")
        header, payload, signature = token.split(".")
        forged = ".".join([header, payload, signature[:-2] + ("AA" if signature[-2:] != "AA" else "BB")])

        with pytest.raises(AuthenticationError) as exc_info:
            decode_session_token(forged)
        assert exc_info.value.error_code == "INVALID_TOKEN"

    def test_token_signed_with_other_secret_rejected(self):
        token = jwt.encode(
            {"sub": "1", "exp": 9999999999, "iat": 0, "iss": "papertrader", "aud": "papertrader-api"},
            "some-other-secret-that-is-long-enough-for-hs256",
            algorithm=JWT_ALGORITHM,
        )

        with pytest.raises(AuthenticationError):
            decode_session_token(token)

    def test_non_numeric_subject_rejected(self):
        token = jwt.encode(
            {"sub": "alice", "exp": 9999999999, "iat": 0, "iss": "papertrader", "aud": "papertrader-api"},
            settings.auth_secret,
            algorithm=JWT_ALGORITHM,
        )

        with pytest.raises(AuthenticationError) as exc_info:
            decode_session_token(token)
        assert exc_info.value.error_code == "INVALID_TOKEN"

    def test_remember_me_outlives_default_session(self):
        assert session_lifetime(remember=True) == timedelta(days=settings.remember_me_expire_days)
        assert session_lifetime() == timedelta(minutes=settings.session_expire_minutes)
        assert session_lifetime(remember=True) > session_lifetime()
