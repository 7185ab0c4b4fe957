"""Auth-related schemas."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

from papertrader.core.config import settings


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,30}$")

# bcrypt only accepts this many bytes of input
PASSWORD_MAX_BYTES = 72


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_RE.match(v):
        raise ValueError("Invalid email address")
    return v


class RegisterRequest(BaseModel):
    """Registration request schema."""

    email: str = Field(..., min_length=3, max_length=255, examples=["trader@example.com"])
    username: str = Field(..., min_length=1, max_length=30, examples=["trader_1"])
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Validate and sanitize username."""
        v = v.strip()
        if not USERNAME_RE.match(v):
            raise ValueError(
                "Username must be 3-30 chars; letters, numbers, and underscores only."
            )
        return v

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        if len(v) < settings.password_min_length:
            raise ValueError(
                f"Password must be at least {settings.password_min_length} characters"
            )
        if len(v.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
        return v


class LoginRequest(BaseModel):
    """Login request schema."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)
    remember: bool = Field(default=False, description="Extend the session lifetime")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserResponse(BaseModel):
    """Public user fields."""

    id: int
    email: str
    username: str


class AuthResponse(BaseModel):
    """Login and registration response."""

    ok: bool = True
    user: UserResponse


class MeResponse(BaseModel):
    """Current user response."""

    user: UserResponse
