"""Market data routes: price history, latest quote, what-if."""

from __future__ import annotations

from datetime import date
from typing import Literal, Union

from fastapi import APIRouter, Depends, Query

from papertrader.api.dependencies import get_market_data
from papertrader.core.exceptions import ValidationError
from papertrader.schemas.market import LatestQuoteResponse, normalize_ticker
from papertrader.services.market_data import PriceBar, TiingoClient, WhatIfResult


router = APIRouter()


def _ticker_or_400(raw: str) -> str:
    ticker = normalize_ticker(raw)
    if ticker is None:
        raise ValidationError(message="Bad ticker", error_code="BAD_TICKER")
    return ticker


@router.get(
    "",
    response_model=Union[list[PriceBar], LatestQuoteResponse],
    summary="Price history or latest price",
    description=(
        "Daily bars from `date` (default: a recent window) to today, or the "
        "latest close when `mode=latest`."
    ),
    responses={502: {"description": "Market data provider failed"}},
)
async def get_quote(
    ticker: str = Query(..., min_length=1, max_length=20),
    date_from: date | None = Query(default=None, alias="date"),
    mode: Literal["history", "latest"] = Query(default="history"),
    client: TiingoClient = Depends(get_market_data),
):
    symbol = _ticker_or_400(ticker)

    if mode == "latest":
        quote = await client.get_latest_quote(symbol)
        return LatestQuoteResponse(symbol=quote.symbol, price=float(quote.price), as_of=quote.as_of)

    return await client.get_price_history(symbol, start_date=date_from)


@router.get(
    "/what-if",
    response_model=WhatIfResult,
    summary="Hypothetical trade between two dates",
)
async def what_if(
    ticker: str = Query(..., min_length=1, max_length=20),
    buy_date: date = Query(...),
    sell_date: date = Query(...),
    qty: float = Query(default=1.0, gt=0),
    client: TiingoClient = Depends(get_market_data),
) -> WhatIfResult:
    symbol = _ticker_or_400(ticker)
    return await client.what_if(symbol, buy_date, sell_date, qty)
