"""
Market data gateway backed by the Tiingo REST API.

Two modes:
- history: ordered daily bars for a date range (implicit default range)
- latest: the most recent close, used to price market orders

Upstream payloads are validated with pydantic before anything else sees
them. Failures are raised, never papered over with a stale or zero price.
There are no automatic retries; callers decide whether to resubmit.

Usage:
    from papertrader.services.market_data import get_market_data_client

    client = get_market_data_client()
    bars = await client.get_price_history("AAPL")
    quote = await client.get_latest_quote("AAPL")
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from papertrader.core.config import settings
from papertrader.core.exceptions import (
    BadRequestError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from papertrader.core.logging import get_logger
from papertrader.core.rate_limiter import RateLimiter
from papertrader.schemas.market import TICKER_RE


logger = get_logger("services.market_data")


class TiingoDailyBar(BaseModel):
    """One element of Tiingo's `/tiingo/daily/{ticker}/prices` response."""

    model_config = ConfigDict(extra="ignore")

    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    adjOpen: Optional[float] = None
    adjHigh: Optional[float] = None
    adjLow: Optional[float] = None
    adjClose: Optional[float] = None
    adjVolume: Optional[float] = None
    divCash: float = 0.0
    splitFactor: float = 1.0


_BARS = TypeAdapter(list[TiingoDailyBar])


class PriceBar(BaseModel):
    """Normalized daily bar returned to API clients."""

    model_config = ConfigDict(populate_by_name=True)

    bar_date: date = Field(alias="date")
    symbol: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    adj_open: Optional[float] = Field(default=None, alias="adjOpen")
    adj_high: Optional[float] = Field(default=None, alias="adjHigh")
    adj_low: Optional[float] = Field(default=None, alias="adjLow")
    adj_close: Optional[float] = Field(default=None, alias="adjClose")
    adj_volume: Optional[float] = Field(default=None, alias="adjVolume")
    div_cash: float = Field(default=0.0, alias="divCash")
    split_factor: float = Field(default=1.0, alias="splitFactor")
    price: float

    @classmethod
    def from_tiingo(cls, symbol: str, bar: TiingoDailyBar) -> PriceBar:
        return cls(
            bar_date=bar.date.date(),
            symbol=symbol,
            open=bar.open,
            high=bar.high,
            low=bar.low,
            close=bar.close,
            volume=bar.volume,
            adj_open=bar.adjOpen,
            adj_high=bar.adjHigh,
            adj_low=bar.adjLow,
            adj_close=bar.adjClose,
            adj_volume=bar.adjVolume,
            div_cash=bar.divCash,
            split_factor=bar.splitFactor,
            price=bar.close,
        )


class Quote(BaseModel):
    """Latest price for a symbol. Never persisted."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    price: Decimal
    as_of: Optional[date] = Field(default=None, alias="asOf")


class WhatIfResult(BaseModel):
    """Hypothetical buy-then-sell between two dates."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    qty: float
    buy_date: date = Field(alias="buyDate")
    buy_price: float = Field(alias="buyPrice")
    sell_date: date = Field(alias="sellDate")
    sell_price: float = Field(alias="sellPrice")
    pnl: float
    return_pct: float = Field(alias="returnPct")


class TiingoClient:
    """Thin async client for Tiingo daily prices."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.tiingo.com",
        timeout: float = 10.0,
        limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.limiter = limiter
        self._transport = transport

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GET a Tiingo endpoint and return decoded JSON."""
        if not self.api_key:
            raise ExternalServiceError(
                message="Market data API key is not configured",
                error_code="MARKET_DATA_NOT_CONFIGURED",
            )

        if self.limiter is not None and not await self.limiter.acquire(timeout=self.timeout):
            raise ExternalServiceError(
                message="Market data rate limit exceeded",
                error_code="MARKET_DATA_THROTTLED",
            )

        query = {**params, "token": self.api_key}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path, params=query)
        except httpx.TimeoutException:
            logger.warning(f"Timeout fetching {path}")
            raise ExternalServiceError(message="Market data request timed out")
        except httpx.HTTPError as e:
            logger.warning(f"Transport error fetching {path}: {type(e).__name__}")
            raise ExternalServiceError(message="Market data request failed")

        if response.status_code == 404:
            raise NotFoundError(message="Unknown ticker", error_code="UNKNOWN_SYMBOL")
        if response.status_code != 200:
            logger.warning(f"Tiingo returned {response.status_code} for {path}")
            raise ExternalServiceError(
                message=f"Market data provider returned {response.status_code}",
                details={"upstream_status": response.status_code},
            )

        try:
            return response.json()
        except ValueError:
            raise ExternalServiceError(message="Market data provider returned invalid JSON")

    async def _fetch_bars(self, symbol: str, params: dict[str, Any]) -> list[TiingoDailyBar]:
        # The symbol becomes a URL path segment
        if not TICKER_RE.match(symbol):
            raise ValidationError(message="Bad ticker", error_code="BAD_TICKER")
        payload = await self._get_json(f"/tiingo/daily/{symbol}/prices", params)
        try:
            bars = _BARS.validate_python(payload)
        except PydanticValidationError as e:
            logger.warning(f"Malformed price payload for {symbol}: {e.error_count()} errors")
            raise ExternalServiceError(message="Market data provider returned malformed data")
        return sorted(bars, key=lambda b: b.date)

    async def get_price_history(
        self,
        symbol: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[PriceBar]:
        """Daily bars from `start_date` to `end_date`, oldest first.

        Defaults to the last `quote_history_days` days ending today.
        """
        end_date = end_date or datetime.now(timezone.utc).date()
        start_date = start_date or end_date - timedelta(days=settings.quote_history_days)
        if start_date > end_date:
            raise BadRequestError(message="Start date is after end date", error_code="BAD_DATE_RANGE")

        bars = await self._fetch_bars(
            symbol,
            {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )
        logger.debug(f"Fetched {len(bars)} bars for {symbol}")
        return [PriceBar.from_tiingo(symbol, bar) for bar in bars]

    async def get_latest_quote(self, symbol: str) -> Quote:
        """Most recent close for `symbol`; must be a finite positive price."""
        bars = await self._fetch_bars(symbol, {})
        if not bars:
            raise ExternalServiceError(message=f"No recent price for {symbol}")

        last = bars[-1]
        if not math.isfinite(last.close) or last.close <= 0:
            raise ExternalServiceError(message=f"Invalid price for {symbol}")

        return Quote(symbol=symbol, price=Decimal(str(last.close)), as_of=last.date.date())

    async def what_if(
        self,
        symbol: str,
        buy_date: date,
        sell_date: date,
        qty: float = 1.0,
    ) -> WhatIfResult:
        """Profit from buying on `buy_date` and selling on `sell_date`.

        Uses the first close on or after the buy date and the last close on
        or before the sell date, so weekends and holidays resolve to the
        nearest trading day inside the range.
        """
        if sell_date < buy_date:
            raise BadRequestError(
                message="Sell date must not be before purchase date",
                error_code="BAD_DATE_RANGE",
            )

        bars = await self.get_price_history(symbol, buy_date, sell_date)
        if not bars:
            raise NotFoundError(message=f"No prices for {symbol} in that range")

        first, last = bars[0], bars[-1]
        pnl = (last.close - first.close) * qty
        return WhatIfResult(
            symbol=symbol,
            qty=qty,
            buy_date=first.bar_date,
            buy_price=first.close,
            sell_date=last.bar_date,
            sell_price=last.close,
            pnl=pnl,
            return_pct=(last.close - first.close) / first.close * 100 if first.close else 0.0,
        )


_instance: Optional[TiingoClient] = None


def get_market_data_client() -> TiingoClient:
    """Get the process-wide market data client."""
    global _instance
    if _instance is None:
        _instance = TiingoClient(
            api_key=settings.tiingo_api_key,
            base_url=settings.tiingo_base_url,
            timeout=float(settings.external_api_timeout),
            limiter=RateLimiter(
                "tiingo",
                calls_per_second=settings.quote_rate_limit_per_second,
                burst_size=max(1, int(settings.quote_rate_limit_per_second * 2)),
            ),
        )
    return _instance
