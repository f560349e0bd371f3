"""Credential store: persistence of users and their refresh-token sets."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from app.core.errors import AuthError, ValidationError
from app.core.security import FAKE_HASHED_PASSWORD, verify_password
from app.models.refresh_token import RefreshToken
from app.models.user import User

logger = logging.getLogger(__name__)


class UserStore:
    """Lookup, save and credential checks for user records."""

    # ─── Lookup ──────────────────────────────────
    @staticmethod
    def _select_user(with_credentials: bool):
        stmt = select(User)
        if with_credentials:
            # Overwrite any projected copy already in the identity map
            return stmt.execution_options(populate_existing=True)
        return stmt.options(defer(User.hashed_password, raiseload=True))

    @staticmethod
    async def find_by_email(db: AsyncSession, email: str, with_credentials: bool = False) -> Optional[User]:
        stmt = UserStore._select_user(with_credentials).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_id(db: AsyncSession, user_id: str, with_credentials: bool = False) -> Optional[User]:
        """
        Load a user by id.

        Without credentials the password hash is deferred (reading it raises)
        and the refresh-token set is never loaded.
        """
        stmt = UserStore._select_user(with_credentials).where(User.id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_users(db: AsyncSession, page: int, limit: int) -> Tuple[List[User], int]:
        """Newest users first, offset pagination."""
        total_result = await db.execute(select(func.count(User.id)))
        total = total_result.scalar() or 0

        result = await db.execute(
            UserStore._select_user(with_credentials=False)
            .order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ─── Persistence ─────────────────────────────
    @staticmethod
    async def save(db: AsyncSession, user: User) -> User:
        """Flush a new or modified user. Constraint violations become ValidationError."""
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            logger.info(f"Rejected user save: {exc.orig}")
            raise ValidationError(
                "Email already registered",
                errors=[{"field": "email", "message": "already registered"}],
            ) from exc
        return user

    # ─── Credentials ─────────────────────────────
    @staticmethod
    async def verify_credentials(db: AsyncSession, email: str, password: str) -> User:
        """
        Return the active user owning these credentials.

        Unknown email, inactive account and wrong password all raise the same
        AuthError, and a password hash is always checked so the three cases
        take comparable time.
        """
        user = await UserStore.find_by_email(db, email, with_credentials=True)
        hashed_password = user.hashed_password if user else FAKE_HASHED_PASSWORD
        password_correct = verify_password(password, hashed_password)

        if not user or not password_correct or not user.is_active:
            raise AuthError()

        user.last_login = datetime.now(timezone.utc)
        await UserStore.save(db, user)
        return user

    # ─── Refresh-token set ───────────────────────
    @staticmethod
    async def find_refresh_token(
        db: AsyncSession,
        user_id: str,
        jti: str,
        token_hash: str,
    ) -> Optional[RefreshToken]:
        """The stored, unexpired entry for this exact token, if any."""
        result = await db.execute(
            select(RefreshToken).where(
                RefreshToken.jti == jti,
                RefreshToken.user_id == user_id,
                RefreshToken.token_hash == token_hash,
                RefreshToken.expires_at > datetime.now(timezone.utc),
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def remove_refresh_token(db: AsyncSession, user_id: str, jti: str) -> bool:
        result = await db.execute(
            delete(RefreshToken).where(
                RefreshToken.user_id == user_id,
                RefreshToken.jti == jti,
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    @staticmethod
    async def clear_refresh_tokens(db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    async def count_refresh_tokens(db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            select(func.count(RefreshToken.jti)).where(RefreshToken.user_id == user_id)
        )
        return result.scalar() or 0
