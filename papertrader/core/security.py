"""Security utilities: password hashing and signed session tokens."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from pydantic import BaseModel

from .config import settings
from .exceptions import AuthenticationError


# JWT Configuration
JWT_ALGORITHM = "HS256"
JWT_ISSUER = "papertrader"
JWT_AUDIENCE = "papertrader-api"

SESSION_COOKIE = "session"


class SessionUser(BaseModel):
    """Identity carried by a verified session token."""

    id: int
    email: str
    username: str
    exp: Optional[datetime] = None


def hash_password(password: str) -> str:
    """Hash password using bcrypt with salt."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def session_lifetime(remember: bool = False) -> timedelta:
    """Token lifetime: short by default, extended for remember-me."""
    if remember:
        return timedelta(days=settings.remember_me_expire_days)
    return timedelta(minutes=settings.session_expire_minutes)


def create_session_token(
    user_id: int,
    email: str,
    username: str,
    remember: bool = False,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed JWT bound to a user identity."""
    now = datetime.now(timezone.utc)
    expires = now + (expires_delta if expires_delta is not None else session_lifetime(remember))

    payload = {
        "sub": str(user_id),
        "email": email,
        "username": username,
        "exp": expires,
        "iat": now,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "jti": secrets.token_urlsafe(16),
    }

    return jwt.encode(payload, settings.auth_secret, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> SessionUser:
    """Decode and validate a session token."""
    try:
        payload = jwt.decode(
            token,
            settings.auth_secret,
            algorithms=[JWT_ALGORITHM],
            issuer=JWT_ISSUER,
            audience=JWT_AUDIENCE,
            options={
                "require": ["exp", "iat", "sub", "iss", "aud"],
            },
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(message="Token has expired", error_code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationError(message="Invalid token", error_code="INVALID_TOKEN")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError(message="Invalid token", error_code="INVALID_TOKEN")

    return SessionUser(
        id=user_id,
        email=payload.get("email", ""),
        username=payload.get("username", ""),
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
