"""Pydantic schemas for API request/response validation."""

from app.schemas.common import ApiResponse, CamelModel, Pagination, error_envelope
from app.schemas.user import (
    UserCreate,
    UserLogin,
    UserUpdate,
    UserResponse,
    PublicProfileResponse,
    TokenResponse,
    AuthResponse,
    UserListResponse,
)

__all__ = [
    "ApiResponse",
    "CamelModel",
    "Pagination",
    "error_envelope",
    "UserCreate",
    "UserLogin",
    "UserUpdate",
    "UserResponse",
    "PublicProfileResponse",
    "TokenResponse",
    "AuthResponse",
    "UserListResponse",
]
