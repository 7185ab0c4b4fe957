"""Portfolio routes: order placement and read views."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from papertrader.api.dependencies import get_market_data, require_user
from papertrader.core.config import settings
from papertrader.core.security import SessionUser
from papertrader.database.connection import get_session
from papertrader.portfolio import ledger
from papertrader.repositories import portfolio_orm as portfolio_repo
from papertrader.schemas.portfolio import (
    OrderOut,
    OrderRequest,
    OrderResponse,
    OrdersResponse,
    PositionOut,
    PositionsResponse,
)
from papertrader.services.market_data import TiingoClient


router = APIRouter()


@router.post(
    "/order",
    response_model=OrderResponse,
    summary="Place a simulated order",
    description=(
        "Limit orders execute at the supplied price; market orders at the "
        "latest quote. Sells larger than the holding are rejected."
    ),
    responses={
        400: {"description": "Validation failure or insufficient holding"},
        502: {"description": "Price service unavailable"},
    },
)
async def place_order(
    payload: OrderRequest,
    user: SessionUser = Depends(require_user),
    client: TiingoClient = Depends(get_market_data),
) -> OrderResponse:
    price = await ledger.resolve_price(payload.mode, payload.symbol, payload.price, client)

    async with get_session() as session:
        fill = await ledger.place_order(
            session,
            user.id,
            payload.symbol,
            payload.side,
            payload.qty,
            price,
        )

    return OrderResponse(
        order=OrderOut(**fill.order),
        position=PositionOut(**fill.position),
    )


@router.get(
    "/positions",
    response_model=PositionsResponse,
    summary="List current positions",
)
async def list_positions(
    user: SessionUser = Depends(require_user),
) -> PositionsResponse:
    rows = await portfolio_repo.list_positions(user.id)
    return PositionsResponse(positions=[PositionOut(**r) for r in rows])


@router.get(
    "/orders",
    response_model=OrdersResponse,
    summary="List order history",
    description="Most recent first, capped at the configured maximum.",
)
async def list_orders(
    user: SessionUser = Depends(require_user),
) -> OrdersResponse:
    rows = await portfolio_repo.list_orders(user.id, limit=settings.orders_list_limit)
    return OrdersResponse(orders=[OrderOut(**r) for r in rows])
