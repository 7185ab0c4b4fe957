"""Database module: pooled async engine, sessions and ORM models."""

from .connection import (
    close_database,
    db_healthcheck,
    get_async_database_url,
    get_session,
    init_database,
)
from .orm import Base, Order, Position, User


__all__ = [
    "init_database",
    "close_database",
    "get_session",
    "get_async_database_url",
    "db_healthcheck",
    "Base",
    "User",
    "Position",
    "Order",
]
