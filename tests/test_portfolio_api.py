"""Tests for portfolio API endpoints."""

from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from httpx import AsyncClient

from papertrader.core.exceptions import ExternalServiceError, NotFoundError


def _buy(symbol="AAPL", qty=10, price=100, **extra):
    return {"symbol": symbol, "side": "BUY", "qty": qty, "price": price, **extra}


class TestPortfolioAuth:
    """Every portfolio route refuses anonymous callers."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("post", "/portfolio/order"),
            ("get", "/portfolio/positions"),
            ("get", "/portfolio/orders"),
        ],
    )
    def test_requires_session(self, client: TestClient, method, path):
        kwargs = {"json": _buy()} if method == "post" else {}
        response = getattr(client, method)(path, **kwargs)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "Unauthorized"

    def test_forged_token_rejected(self, client: TestClient):
        response = client.get(
            "/portfolio/positions", headers={"Authorization": "Bearer not.a.token"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestOrderValidation:
    """Malformed order tickets are rejected with 400 before any ledger work."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"side": "BUY", "qty": 1, "price": 10},
            {"symbol": "AAPL", "side": "HOLD", "qty": 1, "price": 10},
            {"symbol": "AAPL", "side": "BUY", "qty": 0, "price": 10},
            {"symbol": "AAPL", "side": "BUY", "qty": -2, "price": 10},
            {"symbol": "AAPL", "side": "BUY", "qty": "lots", "price": 10},
            {"symbol": "AAPL", "side": "BUY", "qty": 1},
            {"symbol": "AAPL", "side": "BUY", "qty": 1, "price": 0},
            {"symbol": "AAPL", "side": "BUY", "qty": 1, "price": 10, "mode": "stop"},
            {"symbol": "A/../B?X", "side": "BUY", "qty": 1, "price": 10},
            {"symbol": "a/../b?x", "side": "BUY", "qty": 1, "price": 10},
            {"symbol": "A/../B?X", "side": "BUY", "qty": 1, "mode": "market"},
            {"symbol": "AAPL MSFT", "side": "SELL", "qty": 1, "mode": "market"},
            {"symbol": "AAPL", "side": "BUY", "qty": 1000000, "price": 100000},
        ],
    )
    async def test_bad_ticket_returns_400(
        self, async_client: AsyncClient, auth_headers, fake_market, payload
    ):
        from papertrader.repositories import portfolio_orm

        response = await async_client.post(
            "/portfolio/order", json=payload, headers=auth_headers
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert await portfolio_orm.list_orders(1) == []
        assert fake_market.quote_calls == []


class TestPlaceOrderEndpoint:
    """Tests for POST /portfolio/order."""

    @pytest.mark.asyncio
    async def test_limit_buy_returns_order_and_position(
        self, async_client: AsyncClient, auth_headers
    ):
        response = await async_client.post(
            "/portfolio/order",
            json=_buy(symbol=" aapl ", side="buy"),
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["ok"] is True
        assert body["order"]["symbol"] == "AAPL"
        assert body["order"]["side"] == "BUY"
        assert body["order"]["qty"] == 10
        assert body["order"]["price"] == 100
        assert isinstance(body["order"]["ts"], int)
        assert body["position"] == {
            "symbol": "AAPL",
            "qty": 10,
            "avgCost": 100,
            "realizedPnL": 0,
            "lastTradeTs": body["order"]["ts"],
        }

    @pytest.mark.asyncio
    async def test_fractional_quantities(self, async_client: AsyncClient, auth_headers):
        await async_client.post(
            "/portfolio/order", json=_buy(qty=0.5, price=10), headers=auth_headers
        )
        response = await async_client.post(
            "/portfolio/order", json=_buy(qty=1.5, price=20), headers=auth_headers
        )

        position = response.json()["position"]
        assert position["qty"] == 2
        assert position["avgCost"] == 17.5

    @pytest.mark.asyncio
    async def test_market_order_fills_at_latest_quote(
        self, async_client: AsyncClient, auth_headers, fake_market
    ):
        fake_market.price = Decimal("187.25")

        response = await async_client.post(
            "/portfolio/order",
            json={"symbol": "AAPL", "side": "BUY", "qty": 2, "mode": "market"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["order"]["price"] == 187.25
        assert fake_market.quote_calls == ["AAPL"]

    @pytest.mark.asyncio
    async def test_market_order_ignores_supplied_price(
        self, async_client: AsyncClient, auth_headers, fake_market
    ):
        fake_market.price = Decimal("50")

        response = await async_client.post(
            "/portfolio/order",
            json=_buy(price=1, mode="market"),
            headers=auth_headers,
        )

        assert response.json()["order"]["price"] == 50

    @pytest.mark.asyncio
    async def test_quote_failure_returns_502_and_writes_nothing(
        self, async_client: AsyncClient, auth_headers, fake_market, user
    ):
        from papertrader.repositories import portfolio_orm

        fake_market.error = ExternalServiceError(message="Tiingo down")

        response = await async_client.post(
            "/portfolio/order",
            json={"symbol": "AAPL", "side": "BUY", "qty": 1, "mode": "market"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error"] == "QUOTE_UNAVAILABLE"
        assert await portfolio_orm.list_orders(user.id) == []
        assert await portfolio_orm.list_positions(user.id) == []

    @pytest.mark.asyncio
    async def test_market_order_for_unknown_symbol_returns_400(
        self, async_client: AsyncClient, auth_headers, fake_market
    ):
        fake_market.error = NotFoundError(message="Unknown ticker")

        response = await async_client.post(
            "/portfolio/order",
            json={"symbol": "NOPE", "side": "BUY", "qty": 1, "mode": "market"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "UNKNOWN_SYMBOL"

    @pytest.mark.asyncio
    async def test_oversized_market_order_returns_400_and_writes_nothing(
        self, async_client: AsyncClient, auth_headers, fake_market, user
    ):
        from papertrader.repositories import portfolio_orm

        fake_market.price = Decimal("600000")

        response = await async_client.post(
            "/portfolio/order",
            json={"symbol": "BRK.A", "side": "BUY", "qty": 1000000, "mode": "market"},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "ORDER_TOO_LARGE"
        assert await portfolio_orm.list_orders(user.id) == []
        assert await portfolio_orm.list_positions(user.id) == []

    @pytest.mark.asyncio
    async def test_oversell_returns_400_with_holding(
        self, async_client: AsyncClient, auth_headers, user
    ):
        from papertrader.repositories import portfolio_orm

        await async_client.post("/portfolio/order", json=_buy(qty=2), headers=auth_headers)

        response = await async_client.post(
            "/portfolio/order",
            json={"symbol": "AAPL", "side": "SELL", "qty": 3, "price": 120},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["error"] == "INSUFFICIENT_HOLDING"
        assert body["message"] == "Cannot sell 3. You hold 2."
        assert body["details"] == {"held": 2.0, "requested": 3.0}

        positions = await portfolio_orm.list_positions(user.id)
        assert positions[0]["qty"] == Decimal("2")
        assert len(await portfolio_orm.list_orders(user.id)) == 1

    @pytest.mark.asyncio
    async def test_sell_realizes_profit(self, async_client: AsyncClient, auth_headers):
        await async_client.post("/portfolio/order", json=_buy(qty=10, price=100), headers=auth_headers)
        await async_client.post("/portfolio/order", json=_buy(qty=10, price=200), headers=auth_headers)

        response = await async_client.post(
            "/portfolio/order",
            json={"symbol": "AAPL", "side": "SELL", "qty": 5, "price": 250},
            headers=auth_headers,
        )

        position = response.json()["position"]
        assert position["qty"] == 15
        assert position["avgCost"] == 150
        assert position["realizedPnL"] == 500


class TestReadViews:
    """Tests for GET /portfolio/positions and /portfolio/orders."""

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, async_client: AsyncClient, auth_headers):
        positions = await async_client.get("/portfolio/positions", headers=auth_headers)
        orders = await async_client.get("/portfolio/orders", headers=auth_headers)

        assert positions.json() == {"positions": []}
        assert orders.json() == {"orders": []}

    @pytest.mark.asyncio
    async def test_positions_sorted_by_symbol_including_closed(
        self, async_client: AsyncClient, auth_headers
    ):
        for symbol in ["MSFT", "AAPL", "GOOG"]:
            await async_client.post(
                "/portfolio/order", json=_buy(symbol=symbol, qty=1), headers=auth_headers
            )
        await async_client.post(
            "/portfolio/order",
            json={"symbol": "GOOG", "side": "SELL", "qty": 1, "price": 90},
            headers=auth_headers,
        )

        response = await async_client.get("/portfolio/positions", headers=auth_headers)

        positions = response.json()["positions"]
        assert [p["symbol"] for p in positions] == ["AAPL", "GOOG", "MSFT"]
        goog = positions[1]
        assert goog["qty"] == 0
        assert goog["avgCost"] == 0
        assert goog["realizedPnL"] == -10

    @pytest.mark.asyncio
    async def test_orders_newest_first(self, async_client: AsyncClient, auth_headers):
        ids = []
        for price in (10, 11, 12):
            response = await async_client.post(
                "/portfolio/order", json=_buy(qty=1, price=price), headers=auth_headers
            )
            ids.append(response.json()["order"]["id"])

        response = await async_client.get("/portfolio/orders", headers=auth_headers)

        orders = response.json()["orders"]
        assert [o["id"] for o in orders] == list(reversed(ids))
        assert [o["price"] for o in orders] == [12, 11, 10]
        assert orders[0]["ts"] >= orders[-1]["ts"]

    @pytest.mark.asyncio
    async def test_orders_capped(self, async_client: AsyncClient, auth_headers, monkeypatch):
        from papertrader.core.config import settings

        monkeypatch.setattr(settings, "orders_list_limit", 2)
        for price in (10, 11, 12):
            await async_client.post(
                "/portfolio/order", json=_buy(qty=1, price=price), headers=auth_headers
            )

        response = await async_client.get("/portfolio/orders", headers=auth_headers)

        assert [o["price"] for o in response.json()["orders"]] == [12, 11]

    @pytest.mark.asyncio
    async def test_views_scoped_to_caller(
        self, async_client: AsyncClient, auth_headers, other_user
    ):
        from papertrader.core.security import create_session_token

        other_headers = {
            "Authorization": "Bearer "
            + create_session_token(other_user.id, other_user.email, other_user.username)
        }
        await async_client.post("/portfolio/order", json=_buy(), headers=other_headers)

        positions = await async_client.get("/portfolio/positions", headers=auth_headers)
        orders = await async_client.get("/portfolio/orders", headers=auth_headers)

        assert positions.json()["positions"] == []
        assert orders.json()["orders"] == []
