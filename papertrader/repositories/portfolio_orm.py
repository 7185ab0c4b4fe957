"""Portfolio read views - SQLAlchemy ORM async.

Pure projections of the ledger state; nothing here recomputes quantities
or costs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import desc, select

from papertrader.core.config import settings
from papertrader.database.connection import get_session
from papertrader.database.orm import Order, Position


def to_epoch_ms(ts: datetime | None) -> int | None:
    """Epoch milliseconds; naive timestamps are read as UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


def position_to_dict(p: Position) -> dict[str, Any]:
    """Convert Position ORM object to dictionary."""
    return {
        "symbol": p.symbol,
        "qty": p.qty,
        "avg_cost": p.avg_cost,
        "realized_pnl": p.realized_pnl,
        "last_trade_ts": to_epoch_ms(p.last_trade_ts),
    }


def order_to_dict(o: Order) -> dict[str, Any]:
    """Convert Order ORM object to dictionary."""
    return {
        "id": o.id,
        "symbol": o.symbol,
        "side": o.side,
        "qty": o.qty,
        "price": o.price,
        "ts": to_epoch_ms(o.created_at),
    }


async def list_positions(user_id: int) -> list[dict[str, Any]]:
    """List a user's positions by symbol ascending, closed ones included."""
    async with get_session() as session:
        result = await session.execute(
            select(Position)
            .where(Position.user_id == user_id)
            .order_by(Position.symbol)
        )
        return [position_to_dict(p) for p in result.scalars().all()]


async def list_orders(user_id: int, limit: int | None = None) -> list[dict[str, Any]]:
    """List a user's orders, most recent first, capped at `limit`."""
    limit = limit or settings.orders_list_limit
    async with get_session() as session:
        result = await session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(desc(Order.created_at), desc(Order.id))
            .limit(limit)
        )
        return [order_to_dict(o) for o in result.scalars().all()]
