"""User administration and public profile endpoints."""

import logging
import math

from fastapi import APIRouter, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import AdminUser, DbSession, OptionalUser
from app.core.errors import BadRequest, NotFound
from app.models.user import User, UserRole
from app.schemas.common import ApiResponse, Pagination
from app.schemas.user import (
    PublicProfileResponse,
    RoleUpdate,
    StatusUpdate,
    UserListResponse,
    UserResponse,
)
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_PAGE_SIZE = 50


async def _get_other_user(db: AsyncSession, admin: User, user_id: str, own_message: str) -> User:
    user = await UserStore.find_by_id(db, user_id)
    if not user:
        raise NotFound("User not found")
    if user.id == admin.id:
        raise BadRequest(own_message)
    return user


@router.get("", response_model=ApiResponse[UserListResponse])
async def list_users(
    db: DbSession,
    admin: AdminUser,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
):
    """
    List all users (admin only), newest first.
    """
    users, total = await UserStore.list_users(db, page, limit)
    total_pages = math.ceil(total / limit) if total > 0 else 0

    return ApiResponse(
        message="OK",
        data=UserListResponse(
            users=[UserResponse.model_validate(u) for u in users],
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_users=total,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        ),
    )


@router.get("/profile/{user_id}", response_model=ApiResponse[PublicProfileResponse])
async def get_profile(user_id: str, db: DbSession, viewer: OptionalUser):
    """
    Public profile of a user.

    Deactivated accounts look exactly like missing ones. The email address is
    only included for the profile owner and for admins.
    """
    user = await UserStore.find_by_id(db, user_id)
    if not user or not user.is_active:
        raise NotFound("User not found")

    profile = PublicProfileResponse.model_validate(user)
    can_see_email = viewer is not None and (viewer.id == user.id or viewer.role == UserRole.ADMIN)
    if not can_see_email:
        profile.email = None
    return ApiResponse(message="OK", data=profile)


@router.put("/{user_id}/status", response_model=ApiResponse[UserResponse])
async def update_status(user_id: str, body: StatusUpdate, db: DbSession, admin: AdminUser):
    """
    Activate or deactivate a user (admin only).
    Deactivation also revokes every refresh token the user holds.
    """
    user = await _get_other_user(db, admin, user_id, "You cannot change your own status")

    user.is_active = body.is_active
    if not body.is_active:
        await UserStore.clear_refresh_tokens(db, user.id)
    await UserStore.save(db, user)

    logger.info(f"Admin {admin.id} set is_active={body.is_active} for user {user.id}")
    action = "activated" if body.is_active else "deactivated"
    return ApiResponse(message=f"User {action} successfully", data=UserResponse.model_validate(user))


@router.put("/{user_id}/role", response_model=ApiResponse[UserResponse])
async def update_role(user_id: str, body: RoleUpdate, db: DbSession, admin: AdminUser):
    """
    Change a user's role (admin only).
    """
    if body.role not in {r.value for r in UserRole}:
        raise BadRequest("Role must be either user or admin")

    user = await _get_other_user(db, admin, user_id, "You cannot change your own role")

    user.role = UserRole(body.role)
    await UserStore.save(db, user)

    logger.info(f"Admin {admin.id} set role={body.role} for user {user.id}")
    return ApiResponse(
        message=f"User role updated to {body.role} successfully",
        data=UserResponse.model_validate(user),
    )
