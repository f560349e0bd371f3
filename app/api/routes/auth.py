"""Authentication endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Request, status

from app.core.dependencies import Auth, CurrentUser, DbSession
from app.core.rate_limiter import get_client_ip, rate_limiter
from app.schemas.common import ApiResponse
from app.schemas.user import (
    AuthResponse,
    PasswordChange,
    RefreshRequest,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
    UserUpdate,
)
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Register
# ─────────────────────────────────────────────

@router.post(
    "/register",
    response_model=ApiResponse[AuthResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(user_data: UserCreate, request: Request, auth: Auth):
    """
    Register a new user.
    Returns the user with access and refresh tokens.
    """
    rate_limiter.check("register_ip", get_client_ip(request))

    user = await auth.register(user_data)
    tokens = await auth.create_tokens(user)
    return ApiResponse(
        message="User registered successfully",
        data=AuthResponse(user=UserResponse.model_validate(user), **tokens.model_dump()),
    )


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────

@router.post("/login", response_model=ApiResponse[AuthResponse])
async def login(credentials: UserLogin, request: Request, auth: Auth):
    """
    Authenticate a user.
    Returns access and refresh tokens.
    """
    email = credentials.email.lower()
    rate_limiter.check("login_ip", get_client_ip(request))
    rate_limiter.check("login_email", email)

    user = await auth.login(email, credentials.password)
    rate_limiter.reset("login_email", email)

    tokens = await auth.create_tokens(user)
    return ApiResponse(
        message="Login successful",
        data=AuthResponse(user=UserResponse.model_validate(user), **tokens.model_dump()),
    )


# ─────────────────────────────────────────────
# Refresh Token
# ─────────────────────────────────────────────

@router.post("/refresh", response_model=ApiResponse[TokenResponse])
async def refresh_token(body: RefreshRequest, auth: Auth):
    """
    Exchange a refresh token for a new access token.
    The refresh token is rotated unless rotation is disabled in settings.
    """
    tokens = await auth.refresh(body.refresh_token)
    return ApiResponse(message="Token refreshed successfully", data=tokens)


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=ApiResponse[None])
async def logout(current_user: CurrentUser, auth: Auth, body: Optional[RefreshRequest] = None):
    """Revoke the given refresh token for the current user. The body may be omitted."""
    await auth.logout(current_user, body.refresh_token if body else None)
    return ApiResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=ApiResponse[dict])
async def logout_all(current_user: CurrentUser, auth: Auth):
    """Revoke every refresh token of the current user."""
    revoked = await auth.logout_all(current_user)
    return ApiResponse(message="Logged out from all devices", data={"revoked": revoked})


# ─────────────────────────────────────────────
# Current User
# ─────────────────────────────────────────────

@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_current_user(current_user: CurrentUser):
    """Return authenticated user's info."""
    return ApiResponse(message="OK", data=UserResponse.model_validate(current_user))


@router.patch("/me", response_model=ApiResponse[UserResponse])
async def update_current_user(user_data: UserUpdate, current_user: CurrentUser, db: DbSession):
    """
    Update the current user's profile.
    """
    if user_data.name is not None:
        current_user.name = user_data.name
    if user_data.bio is not None:
        current_user.bio = user_data.bio
    if user_data.avatar_url is not None:
        current_user.avatar_url = user_data.avatar_url

    await UserStore.save(db, current_user)
    return ApiResponse(message="Profile updated successfully", data=UserResponse.model_validate(current_user))


# ─────────────────────────────────────────────
# Change Password
# ─────────────────────────────────────────────

@router.post("/change-password", response_model=ApiResponse[None])
async def change_password(password_data: PasswordChange, current_user: CurrentUser, auth: Auth):
    """
    Change the user's password.
    Requires the current password; every refresh token is revoked afterwards.
    """
    await auth.change_password(
        current_user,
        password_data.current_password,
        password_data.new_password,
    )
    return ApiResponse(message="Password changed successfully. Please log in again.")
