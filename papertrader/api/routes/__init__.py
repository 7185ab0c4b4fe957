"""API route modules."""

from . import auth, health, portfolio, stock


__all__ = ["auth", "health", "portfolio", "stock"]
