"""Portfolio Pydantic schemas for API requests and responses."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .market import normalize_ticker


# Largest qty x price accepted for one order; NUMERIC(20, 8) holds 12 integer digits
MAX_ORDER_NOTIONAL = Decimal(10) ** 11


class OrderRequest(BaseModel):
    """Order ticket as submitted by the trade form."""

    symbol: str = Field(..., min_length=1, max_length=20, examples=["AAPL"])
    side: Literal["BUY", "SELL"]
    qty: Decimal = Field(..., gt=0, max_digits=20, decimal_places=8)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=20, decimal_places=8)
    mode: Literal["limit", "market"] = "limit"

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v):
        if not isinstance(v, str):
            raise ValueError("Missing symbol")
        ticker = normalize_ticker(v)
        if ticker is None:
            raise ValueError("Bad symbol")
        return ticker

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if v is None:
            return "limit"
        return v.strip().lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def require_limit_price(self) -> OrderRequest:
        if self.mode == "limit" and self.price is None:
            raise ValueError("Bad price")
        return self

    @model_validator(mode="after")
    def cap_notional(self) -> OrderRequest:
        # Market orders are capped by the ledger once the quote is known
        if self.mode == "limit" and self.price is not None:
            if self.qty * self.price >= MAX_ORDER_NOTIONAL:
                raise ValueError("Order too large")
        return self


class OrderOut(BaseModel):
    """Executed order."""

    id: int
    symbol: str
    side: str
    qty: float
    price: float
    ts: int = Field(..., description="Creation time, epoch milliseconds")


class PositionOut(BaseModel):
    """Current holding in one symbol."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    qty: float
    avg_cost: float = Field(..., alias="avgCost")
    realized_pnl: float = Field(..., alias="realizedPnL")
    last_trade_ts: Optional[int] = Field(
        default=None, alias="lastTradeTs", description="Epoch milliseconds"
    )


class OrderResponse(BaseModel):
    """Successful order placement."""

    ok: bool = True
    order: OrderOut
    position: PositionOut


class PositionsResponse(BaseModel):
    positions: list[PositionOut] = Field(default_factory=list)


class OrdersResponse(BaseModel):
    orders: list[OrderOut] = Field(default_factory=list)
