"""Shared FastAPI dependencies: DB session, auth service and the auth gates."""

from typing import Annotated, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.user import User
from app.services.auth_service import AuthService
from app.services.token_service import TokenService, get_token_service

DbSession = Annotated[AsyncSession, Depends(get_db)]
Tokens = Annotated[TokenService, Depends(get_token_service)]


def get_auth_service(db: DbSession, tokens: Tokens) -> AuthService:
    return AuthService(db, tokens)


Auth = Annotated[AuthService, Depends(get_auth_service)]
AuthorizationHeader = Annotated[Optional[str], Header(alias="Authorization")]


async def get_current_user(request: Request, auth: Auth, authorization: AuthorizationHeader = None) -> User:
    """Require a valid bearer token; the user is also attached to request.state."""
    user = await auth.authenticate(authorization)
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    auth: Auth,
    authorization: AuthorizationHeader = None,
) -> Optional[User]:
    """Attach the user when the bearer token is good, otherwise carry on anonymously."""
    user = await auth.authenticate_optional(authorization)
    request.state.user = user
    return user


async def get_admin_user(user: Annotated[User, Depends(get_current_user)]) -> User:
    return AuthService.require_admin(user)


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]
AdminUser = Annotated[User, Depends(get_admin_user)]
