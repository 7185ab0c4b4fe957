"""API application factory."""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from papertrader.core.config import settings
from papertrader.core.exceptions import register_exception_handlers
from papertrader.core.logging import get_logger, request_id_var
from papertrader.schemas.common import ErrorResponse

from .routes import auth, health, portfolio, stock


logger = get_logger("api")

# Account and holdings data must not land in shared caches
_PRIVATE_PREFIXES = ("/auth", "/portfolio")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool for a standalone API process."""
    from papertrader.database.connection import close_database, init_database

    try:
        await init_database()
    except Exception as e:
        logger.warning(f"Database engine not initialized at startup: {e}")

    yield

    await close_database()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Security and cache headers for API responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "same-origin"
        path = request.url.path.removeprefix(request.scope.get("root_path", ""))
        if path.startswith(_PRIVATE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        if settings.https_enabled:
            response.headers["Strict-Transport-Security"] = "max-age=31536000"

        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID and log its outcome.

    Only the path is logged; quote queries and redirects may carry
    credentials in the query string.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        request_id_var.set(request_id)
        started = time.monotonic()

        response = await call_next(request)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        return response


def create_api_app() -> FastAPI:
    """Create and configure the API application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Paper-trading API: accounts, Tiingo prices, simulated orders and positions",
        root_path=settings.root_path,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid input or insufficient holding"},
            401: {"model": ErrorResponse, "description": "No valid session"},
            500: {"model": ErrorResponse, "description": "Internal Server Error"},
        },
    )

    # Last added runs outermost
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(stock.router, prefix="/stock", tags=["Market Data"])
    app.include_router(portfolio.router, prefix="/portfolio", tags=["Portfolio"])

    return app
