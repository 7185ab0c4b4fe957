"""Position ledger: the only place quantity and cost arithmetic happens.

An order is applied in one transaction with the (user, symbol) position row
locked, so concurrent orders against the same holding serialize and none
of them reads a stale quantity or average cost. Average cost follows the
weighted-average method: buys re-average, partial sells leave it alone,
and a position that closes to zero resets it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from sqlalchemy import Select, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from papertrader.core.exceptions import (
    AppException,
    BadRequestError,
    ExternalServiceError,
    InsufficientHoldingError,
    NotFoundError,
    ValidationError,
)
from papertrader.core.logging import get_logger
from papertrader.database.orm import Order, Position
from papertrader.repositories.portfolio_orm import order_to_dict, position_to_dict
from papertrader.schemas.portfolio import MAX_ORDER_NOTIONAL
from papertrader.services.market_data import TiingoClient


logger = get_logger("portfolio.ledger")

Side = Literal["BUY", "SELL"]

# Storage scale and integer range of NUMERIC(20, 8)
AMOUNT_QUANT = Decimal("0.00000001")
AMOUNT_LIMIT = Decimal(10) ** 12
ZERO = Decimal(0)


@dataclass(frozen=True)
class PositionState:
    """Quantity, average cost and realized P&L of one holding."""

    qty: Decimal = ZERO
    avg_cost: Decimal = ZERO
    realized_pnl: Decimal = ZERO


@dataclass
class Fill:
    """Result of a placed order: the order row and the position after it."""

    order: dict[str, Any]
    position: dict[str, Any]


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(AMOUNT_QUANT)


def _order_too_large() -> BadRequestError:
    return BadRequestError(message="Order too large", error_code="ORDER_TOO_LARGE")


def apply_fill(state: PositionState, side: Side, qty: Decimal, price: Decimal) -> PositionState:
    """Apply one fill to a position.

    Raises InsufficientHoldingError when a sell exceeds the held quantity;
    partial sells are never executed and short positions never created.
    Raises BadRequestError when the order or the resulting position would
    not fit the stored precision.
    """
    if qty * price >= MAX_ORDER_NOTIONAL:
        raise _order_too_large()

    if side == "BUY":
        new_qty = state.qty + qty
        if new_qty >= AMOUNT_LIMIT:
            raise _order_too_large()
        if state.qty <= 0:
            new_avg = price
        else:
            new_avg = (state.qty * state.avg_cost + qty * price) / new_qty
        return PositionState(
            qty=new_qty,
            avg_cost=_quantize(new_avg),
            realized_pnl=state.realized_pnl,
        )

    if qty > state.qty:
        raise InsufficientHoldingError(held=state.qty, requested=qty)

    new_qty = state.qty - qty
    new_realized = state.realized_pnl + (price - state.avg_cost) * qty
    if abs(new_realized) >= AMOUNT_LIMIT:
        raise _order_too_large()
    return PositionState(
        qty=new_qty,
        avg_cost=ZERO if new_qty == 0 else state.avg_cost,
        realized_pnl=_quantize(new_realized),
    )


async def resolve_price(
    mode: Literal["limit", "market"],
    symbol: str,
    limit_price: Decimal | None,
    client: TiingoClient,
) -> Decimal:
    """Execution price: the caller's limit price or the latest quote.

    Runs before the ledger transaction opens so no row lock is held while
    waiting on the network.
    """
    if mode == "limit":
        if limit_price is None or not limit_price.is_finite() or limit_price <= 0:
            raise BadRequestError(message="Bad price", error_code="BAD_PRICE")
        return limit_price

    try:
        quote = await client.get_latest_quote(symbol)
    except NotFoundError:
        raise BadRequestError(message=f"Unknown symbol {symbol}", error_code="UNKNOWN_SYMBOL")
    except ValidationError:
        raise
    except AppException as e:
        logger.warning(f"Latest price unavailable for {symbol}: {e.message}")
        raise ExternalServiceError(
            message="Price service unavailable",
            error_code="QUOTE_UNAVAILABLE",
        )

    if not quote.price.is_finite() or quote.price <= 0:
        raise ExternalServiceError(message="Price service unavailable", error_code="QUOTE_UNAVAILABLE")
    return quote.price


def locked_position_query(user_id: int, symbol: str) -> Select:
    """SELECT ... FOR UPDATE on one position row."""
    return (
        select(Position)
        .where(Position.user_id == user_id, Position.symbol == symbol)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


async def place_order(
    session: AsyncSession,
    user_id: int,
    symbol: str,
    side: Side,
    qty: Decimal,
    price: Decimal,
) -> Fill:
    """Atomically update the holding and append the order.

    The position row is created if absent before it is locked, so the very
    first orders for a symbol serialize too. Any exception rolls back both
    the position change and the order insert.
    """
    now = datetime.now(timezone.utc)

    async with session.begin():
        insert = _insert_for(session)
        await session.execute(
            insert(Position)
            .values(
                user_id=user_id,
                symbol=symbol,
                qty=ZERO,
                avg_cost=ZERO,
                realized_pnl=ZERO,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "symbol"])
        )

        position = (await session.execute(locked_position_query(user_id, symbol))).scalar_one()
        current = PositionState(
            qty=position.qty,
            avg_cost=position.avg_cost,
            realized_pnl=position.realized_pnl,
        )

        try:
            updated = apply_fill(current, side, qty, price)
        except InsufficientHoldingError:
            logger.info(
                f"Rejected sell of {qty} {symbol}: holding {current.qty}",
                extra={"user_id": user_id, "symbol": symbol},
            )
            raise

        position.qty = updated.qty
        position.avg_cost = updated.avg_cost
        position.realized_pnl = updated.realized_pnl
        position.last_trade_ts = now

        order = Order(
            user_id=user_id,
            symbol=symbol,
            side=side,
            qty=qty,
            price=price,
            created_at=now,
        )
        session.add(order)
        await session.flush()

        fill = Fill(order=order_to_dict(order), position=position_to_dict(position))

    logger.info(
        f"Filled {side} {qty} {symbol} @ {price}",
        extra={"user_id": user_id, "order_id": fill.order["id"]},
    )
    return fill
