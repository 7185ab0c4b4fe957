"""API dependencies for authentication and upstream clients."""

from __future__ import annotations

from fastapi import Cookie, Header

from papertrader.core.exceptions import AuthenticationError
from papertrader.core.security import SessionUser, decode_session_token
from papertrader.services.market_data import TiingoClient, get_market_data_client


__all__ = [
    "get_market_data",
    "require_user",
    "verify_token",
]


def _extract_token(
    authorization: str | None = None,
    session: str | None = None,
) -> str | None:
    """Extract JWT token from Authorization header or session cookie."""
    # Prefer Authorization header (for API clients)
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token

    # Fall back to session cookie (for browser clients)
    if session:
        return session

    return None


def verify_token(token: str | None) -> SessionUser | None:
    """Identity for a token, or None when it is missing, expired or forged."""
    if not token:
        return None
    try:
        return decode_session_token(token)
    except AuthenticationError:
        return None


async def require_user(
    authorization: str | None = Header(default=None),
    session: str | None = Cookie(default=None),
) -> SessionUser:
    """
    Require authenticated user.

    Raises AuthenticationError before any business logic runs.
    """
    token = _extract_token(authorization, session)
    if not token:
        raise AuthenticationError(
            message="Unauthorized",
            error_code="MISSING_CREDENTIALS",
        )

    return decode_session_token(token)


def get_market_data() -> TiingoClient:
    """Market data client dependency (overridable in tests)."""
    return get_market_data_client()
