"""Market data schemas."""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


TICKER_RE = re.compile(r"^[A-Z0-9.\-]{1,20}$")


def normalize_ticker(raw: str) -> str | None:
    """Trim and upper-case a ticker; None when it is not a plausible symbol."""
    ticker = raw.strip().upper()
    return ticker if TICKER_RE.match(ticker) else None


class LatestQuoteResponse(BaseModel):
    """Latest-mode response of the quote endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    price: float
    as_of: Optional[date] = Field(default=None, alias="asOf")
