"""Authentication routes: register, login, logout, current user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from papertrader.api.dependencies import require_user
from papertrader.core.config import settings
from papertrader.core.exceptions import AuthenticationError, ConflictError
from papertrader.core.logging import get_logger
from papertrader.core.security import (
    SESSION_COOKIE,
    SessionUser,
    create_session_token,
    hash_password,
    session_lifetime,
    verify_password,
)
from papertrader.repositories import users_orm as users_repo
from papertrader.schemas.auth import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
    UserResponse,
)


logger = get_logger("api.auth")

router = APIRouter()


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
    responses={409: {"description": "Email or username already registered"}},
)
async def register(payload: RegisterRequest) -> AuthResponse:
    if await users_repo.email_exists(payload.email):
        raise ConflictError(message="Email already registered.", error_code="EMAIL_TAKEN")
    if await users_repo.username_exists(payload.username):
        raise ConflictError(message="Username is taken.", error_code="USERNAME_TAKEN")

    user = await users_repo.create_user(
        payload.email,
        payload.username,
        hash_password(payload.password),
    )
    return AuthResponse(user=UserResponse(**user.public()))


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Authenticate user",
    description="Login with email and password; sets the session cookie.",
    responses={401: {"description": "Invalid credentials"}},
)
async def login(payload: LoginRequest, response: Response) -> AuthResponse:
    user = await users_repo.get_user_by_email(payload.email)

    # Same error for unknown email and wrong password
    if user is None or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError(
            message="Invalid email or password.",
            error_code="INVALID_CREDENTIALS",
        )

    token = create_session_token(
        user.id, user.email, user.username, remember=payload.remember
    )

    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=settings.https_enabled,
        samesite="lax",
        domain=settings.domain,
        path="/",
        max_age=int(session_lifetime(payload.remember).total_seconds()),
    )

    logger.info("User logged in", extra={"user_id": user.id})
    return AuthResponse(user=UserResponse(**user.public()))


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Logout user",
    description="Clear the session cookie.",
)
async def logout(response: Response) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE,
        domain=settings.domain,
        path="/",
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user",
    responses={401: {"description": "Not authenticated"}},
)
async def get_me(user: SessionUser = Depends(require_user)) -> MeResponse:
    return MeResponse(
        user=UserResponse(id=user.id, email=user.email, username=user.username)
    )
