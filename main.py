from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from papertrader.api.app import create_api_app
from papertrader.api.dependencies import verify_token
from papertrader.core.config import settings
from papertrader.core.logging import setup_logging
from papertrader.core.security import SESSION_COOKIE
from papertrader.database.connection import close_database, init_database

PACKAGE_DIR = Path(__file__).resolve().parent / "papertrader"

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Mounted apps do not get lifespan events of their own
    await init_database()
    yield
    await close_database()


app = FastAPI(title="Papertrader UI", version=settings.app_version, lifespan=lifespan)
app.mount("/api", create_api_app())
app.mount("/static", StaticFiles(directory=PACKAGE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=PACKAGE_DIR / "templates")


@app.get("/", response_class=HTMLResponse)
async def dashboard(request: Request):
    user = verify_token(request.cookies.get(SESSION_COOKIE))
    if user is None:
        return RedirectResponse(url="/login")
    return templates.TemplateResponse(request, "dashboard.html", {"user": user})


@app.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    return templates.TemplateResponse(request, "login.html")


@app.get("/register", response_class=HTMLResponse)
async def register_page(request: Request):
    return templates.TemplateResponse(request, "register.html")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
