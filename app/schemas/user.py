"""User schemas for API validation."""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, EmailStr, Field, StrictBool

from app.models.user import UserRole, NAME_MAX_LENGTH, BIO_MAX_LENGTH, PASSWORD_MIN_LENGTH
from app.schemas.common import CamelModel, Pagination


class UserCreate(CamelModel):
    """Schema for user registration."""
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=72)


class UserLogin(CamelModel):
    """Schema for user login."""
    email: EmailStr
    password: str = Field(min_length=1)


class UserUpdate(CamelModel):
    """Schema for updating user profile."""
    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX_LENGTH)
    bio: Optional[str] = Field(None, max_length=BIO_MAX_LENGTH)
    # Accepts "avatar" or "avatarUrl"
    avatar_url: Optional[str] = Field(
        None,
        max_length=500,
        validation_alias=AliasChoices("avatar", "avatarUrl", "avatar_url"),
    )


class PasswordChange(CamelModel):
    """Schema for password change."""
    current_password: str
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=72)


class RefreshRequest(CamelModel):
    """Body of /auth/refresh and /auth/logout. Presence is checked by the service."""
    refresh_token: Optional[str] = None


class StatusUpdate(CamelModel):
    # JSON true/false only
    is_active: StrictBool


class RoleUpdate(CamelModel):
    # Plain str so an unknown role is a business-rule 400, not a schema error
    role: str


class UserResponse(CamelModel):
    """Schema for user response. Never carries the password hash or tokens."""
    id: str
    name: str
    email: str
    role: UserRole
    bio: str = ""
    avatar_url: str = ""
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class PublicProfileResponse(CamelModel):
    """Profile as seen by other users; email only for the owner or an admin."""
    id: str
    name: str
    bio: str = ""
    avatar_url: str = ""
    role: UserRole
    created_at: datetime
    email: Optional[str] = None


class TokenResponse(CamelModel):
    """Schema for JWT token response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class AuthResponse(TokenResponse):
    """Tokens plus the authenticated user (register / login)."""
    user: UserResponse


class UserListResponse(CamelModel):
    users: List[UserResponse]
    pagination: Pagination
