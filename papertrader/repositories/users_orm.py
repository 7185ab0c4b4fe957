"""User repository using SQLAlchemy ORM.

Usage:
    from papertrader.repositories.users_orm import get_user_by_email, create_user
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from papertrader.core.exceptions import ConflictError
from papertrader.core.logging import get_logger
from papertrader.database.connection import get_session
from papertrader.database.orm import User as UserORM


logger = get_logger("repositories.users_orm")


@dataclass
class UserRecord:
    """Registered user."""

    id: int
    email: str
    username: str
    password_hash: str
    created_at: datetime | None = None

    @classmethod
    def from_orm(cls, user: UserORM) -> UserRecord:
        """Create from ORM model."""
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            password_hash=user.password_hash,
            created_at=user.created_at,
        )

    def public(self) -> dict:
        return {"id": self.id, "email": self.email, "username": self.username}


async def get_user_by_email(email: str) -> UserRecord | None:
    """Get a user by (normalized) email."""
    async with get_session() as session:
        result = await session.execute(
            select(UserORM).where(UserORM.email == email.strip().lower())
        )
        user = result.scalar_one_or_none()
        return UserRecord.from_orm(user) if user else None


async def email_exists(email: str) -> bool:
    async with get_session() as session:
        result = await session.execute(
            select(UserORM.id).where(UserORM.email == email.strip().lower())
        )
        return result.first() is not None


async def username_exists(username: str) -> bool:
    async with get_session() as session:
        result = await session.execute(
            select(UserORM.id).where(UserORM.username == username)
        )
        return result.first() is not None


async def create_user(email: str, username: str, password_hash: str) -> UserRecord:
    """Insert a new user.

    The pre-checks in the register route give friendly messages; the unique
    constraints still decide races between two concurrent registrations.
    """
    async with get_session() as session:
        user = UserORM(
            email=email.strip().lower(),
            username=username,
            password_hash=password_hash,
        )
        session.add(user)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("Registration conflict", extra={"username": username})
            raise ConflictError(
                message="Email or username already registered.",
                error_code="ACCOUNT_EXISTS",
            )
        await session.refresh(user)
        logger.info("User registered", extra={"user_id": user.id})
        return UserRecord.from_orm(user)
