"""Authentication service: login, bearer verification and the refresh-token lifecycle."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import BadRequest, Forbidden, Unauthenticated, ValidationError
from app.core.security import verify_password
from app.models.refresh_token import RefreshToken
from app.models.user import User, UserRole
from app.schemas.user import TokenResponse, UserCreate
from app.services.token_service import TokenError, TokenExpired, TokenService, hash_token
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

# Messages surfaced to clients
MISSING_TOKEN = "No token provided"
INVALID_TOKEN = "Invalid token"
TOKEN_EXPIRED = "Token expired"
USER_NOT_FOUND = "User not found"
ACCOUNT_DEACTIVATED = "Account deactivated"
ADMIN_REQUIRED = "Admin privileges required"
REFRESH_TOKEN_REQUIRED = "Refresh token is required"
INVALID_OR_EXPIRED_REFRESH = "Invalid or expired refresh token"
INVALID_REFRESH = "Invalid refresh token"


@dataclass
class RefreshContext:
    """A refresh token that passed every check, with its owner."""
    user: User
    token: str
    record: RefreshToken


class AuthService:
    """Authentication operations bound to one database session."""

    def __init__(self, db: AsyncSession, tokens: TokenService, rotate_refresh_tokens: Optional[bool] = None):
        self.db = db
        self.tokens = tokens
        if rotate_refresh_tokens is None:
            rotate_refresh_tokens = get_settings().refresh_token_rotation
        self.rotate_refresh_tokens = rotate_refresh_tokens

    # ─── Token Creation (access + refresh, store refresh in DB) ─────────
    async def create_tokens(self, user: User) -> TokenResponse:
        access_token = self.tokens.issue_access_token(user)
        refresh_token = await self.tokens.issue_refresh_token(self.db, user)
        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self.tokens.access_expires_in,
        )

    # ─── Registration ───────────────────────────
    async def register(self, user_data: UserCreate) -> User:
        if await UserStore.find_by_email(self.db, user_data.email):
            raise ValidationError(
                "Email already registered",
                errors=[{"field": "email", "message": "already registered"}],
            )

        user = User(
            name=user_data.name,
            email=user_data.email,
            role=UserRole.USER,
            is_active=True,
        )
        user.password = user_data.password
        await UserStore.save(self.db, user)
        logger.info(f"Registered user {user.id}")
        return user

    # ─── Login ──────────────────────────────────
    async def login(self, email: str, password: str) -> User:
        try:
            user = await UserStore.verify_credentials(self.db, email, password)
        except Unauthenticated:
            logger.info(f"Failed login for {email[:3]}***")
            raise
        logger.info(f"User {user.id} logged in")
        return user

    # ─── Auth Gate ──────────────────────────────
    async def authenticate(self, authorization: Optional[str]) -> User:
        """Resolve an ``Authorization: Bearer <token>`` header to an active user."""
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            raise Unauthenticated(MISSING_TOKEN, code="missing_token")

        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            raise Unauthenticated(MISSING_TOKEN, code="missing_token")

        try:
            claims = self.tokens.decode_access_token(token)
        except TokenExpired:
            raise Unauthenticated(TOKEN_EXPIRED, code="token_expired")
        except TokenError as exc:
            logger.debug(f"Rejected access token: {exc}")
            raise Unauthenticated(INVALID_TOKEN, code="invalid_token")

        user = await UserStore.find_by_id(self.db, claims["sub"])
        if not user:
            raise Unauthenticated(USER_NOT_FOUND, code="user_not_found")
        if not user.is_active:
            raise Unauthenticated(ACCOUNT_DEACTIVATED, code="account_deactivated")
        return user

    async def authenticate_optional(self, authorization: Optional[str]) -> Optional[User]:
        """Like authenticate(), but any failure means an anonymous request."""
        try:
            return await self.authenticate(authorization)
        except Unauthenticated as exc:
            if authorization:
                logger.debug(f"Optional auth ignored credentials: {exc.code}")
            return None

    @staticmethod
    def require_admin(user: Optional[User]) -> User:
        if user is None or user.role != UserRole.ADMIN:
            raise Forbidden(ADMIN_REQUIRED)
        return user

    # ─── Refresh Flow ───────────────────────────
    async def verify_refresh_token(self, refresh_token: Optional[str]) -> RefreshContext:
        if not refresh_token:
            raise BadRequest(REFRESH_TOKEN_REQUIRED)

        try:
            claims = self.tokens.decode_refresh_token(refresh_token)
        except TokenError as exc:
            logger.debug(f"Rejected refresh token: {exc}")
            raise Unauthenticated(INVALID_OR_EXPIRED_REFRESH, code="invalid_refresh_token")

        user = await UserStore.find_by_id(self.db, claims["sub"])
        if not user:
            raise Unauthenticated(USER_NOT_FOUND, code="user_not_found")
        if not user.is_active:
            raise Unauthenticated(ACCOUNT_DEACTIVATED, code="account_deactivated")

        record = await UserStore.find_refresh_token(
            self.db, user.id, claims["jti"], hash_token(refresh_token)
        )
        if record is None:
            logger.warning(f"Refresh token not in stored set for user {user.id}")
            raise Unauthenticated(INVALID_REFRESH, code="revoked_refresh_token")

        return RefreshContext(user=user, token=refresh_token, record=record)

    async def refresh(self, refresh_token: Optional[str]) -> TokenResponse:
        """
        Exchange a refresh token for a new access token.

        With rotation the presented token is revoked and a new one issued;
        otherwise the same refresh token is handed back.
        """
        ctx = await self.verify_refresh_token(refresh_token)
        access_token = self.tokens.issue_access_token(ctx.user)

        if self.rotate_refresh_tokens:
            # Another request may have redeemed the same token since it was verified
            if not await UserStore.remove_refresh_token(self.db, ctx.user.id, ctx.record.jti):
                logger.warning(f"Refresh token for user {ctx.user.id} was already redeemed")
                raise Unauthenticated(INVALID_REFRESH, code="revoked_refresh_token")
            new_refresh_token = await self.tokens.issue_refresh_token(self.db, ctx.user)
        else:
            new_refresh_token = ctx.token

        return TokenResponse(
            access_token=access_token,
            refresh_token=new_refresh_token,
            token_type="bearer",
            expires_in=self.tokens.access_expires_in,
        )

    # ─── Logout ─────────────────────────────────
    async def logout(self, user: User, refresh_token: Optional[str]) -> bool:
        """Remove one refresh token from the user's set. Unknown tokens are a no-op."""
        if not refresh_token:
            return False
        try:
            claims = self.tokens.decode_refresh_token(refresh_token)
        except TokenError:
            return False

        if claims["sub"] != user.id:
            return False
        return await UserStore.remove_refresh_token(self.db, user.id, claims["jti"])

    async def logout_all(self, user: User) -> int:
        return await UserStore.clear_refresh_tokens(self.db, user.id)

    # ─── Password ───────────────────────────────
    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """Verify the current password, store the new hash and end every session."""
        full_user = await UserStore.find_by_id(self.db, user.id, with_credentials=True)
        if full_user is None or not verify_password(current_password, full_user.hashed_password):
            raise BadRequest("Current password is incorrect")

        full_user.password = new_password
        await UserStore.save(self.db, full_user)
        await UserStore.clear_refresh_tokens(self.db, full_user.id)
