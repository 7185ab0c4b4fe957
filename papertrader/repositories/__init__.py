"""Data access layer repositories.

Each repository module provides async functions for database operations
using the ORM models from `papertrader.database.orm` with the
`get_session()` context manager.

- users_orm: registered accounts
- portfolio_orm: position and order read views
"""

from . import portfolio_orm
from . import users_orm


__all__ = ["portfolio_orm", "users_orm"]
