"""
Token issuing and verification.

Access tokens are stateless: signature + expiry only. Refresh tokens are
signed with a separate key and are only honoured while an entry for them
exists in the owner's stored refresh-token set.
"""

import hashlib
import hmac
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.models.refresh_token import RefreshToken
from app.models.user import User

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
REFRESH_KEY_CONTEXT = b"blogsite/refresh-token/v1"


class TokenError(Exception):
    """Token failed verification."""


class TokenExpired(TokenError):
    """Signature is valid but the token is past its expiry."""


def derive_refresh_secret(primary_secret: str) -> str:
    """Derive the refresh signing key from the primary key (HMAC-SHA256)."""
    return hmac.new(primary_secret.encode("utf-8"), REFRESH_KEY_CONTEXT, hashlib.sha256).hexdigest()


def hash_token(token: str) -> str:
    """Lookup digest for a refresh token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TokenSettings:
    access_secret: str
    refresh_secret: str
    algorithm: str = "HS256"
    access_expires: timedelta = timedelta(days=7)
    refresh_expires: timedelta = timedelta(days=7)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenSettings":
        return cls(
            access_secret=settings.jwt_secret_key,
            refresh_secret=settings.jwt_refresh_secret_key or derive_refresh_secret(settings.jwt_secret_key),
            algorithm=settings.jwt_algorithm,
            access_expires=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_expires=timedelta(days=settings.refresh_token_expire_days),
        )


class TokenService:
    """Signs and verifies access and refresh tokens."""

    def __init__(self, config: TokenSettings):
        if config.access_secret == config.refresh_secret:
            raise ValueError("refresh tokens must be signed with a different key than access tokens")
        self.config = config

    @property
    def access_expires_in(self) -> int:
        return int(self.config.access_expires.total_seconds())

    # ─── Signing ────────────────────────────────
    def _encode(
        self,
        claims: Dict[str, Any],
        secret: str,
        expires_delta: timedelta,
        jti: Optional[str] = None,
        issued_at: Optional[datetime] = None,
    ) -> str:
        now = issued_at or datetime.now(timezone.utc)
        payload = {
            **claims,
            "jti": jti or str(uuid.uuid4()),
            "iat": now,
            "exp": now + expires_delta,
        }
        return jwt.encode(payload, secret, algorithm=self.config.algorithm)

    def issue_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        """Sign {id, email, role} with the primary key."""
        return self._encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "role": user.role.value,
                "type": ACCESS_TOKEN_TYPE,
            },
            self.config.access_secret,
            expires_delta if expires_delta is not None else self.config.access_expires,
        )

    async def issue_refresh_token(
        self,
        db: AsyncSession,
        user: User,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Sign {id} with the refresh key and add it to the user's stored set."""
        expires_delta = expires_delta if expires_delta is not None else self.config.refresh_expires
        jti = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        token = self._encode(
            {"sub": str(user.id), "type": REFRESH_TOKEN_TYPE},
            self.config.refresh_secret,
            expires_delta,
            jti=jti,
            issued_at=now,
        )

        # Drop entries that have outlived their TTL while we are here
        await db.execute(
            delete(RefreshToken).where(
                RefreshToken.user_id == user.id,
                RefreshToken.expires_at <= now,
            ).execution_options(synchronize_session=False)
        )
        db.add(
            RefreshToken(
                jti=jti,
                user_id=user.id,
                token_hash=hash_token(token),
                created_at=now,
                expires_at=now + expires_delta,
            )
        )
        await db.flush()
        return token

    # ─── Verification ───────────────────────────
    def _decode(self, token: str, secret: str, expected_type: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, secret, algorithms=[self.config.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired("Token expired") from exc
        except JWTError as exc:
            raise TokenError(f"Invalid token: {exc}") from exc

        if payload.get("type") != expected_type:
            raise TokenError("Wrong token type")
        if not payload.get("sub") or not payload.get("jti"):
            raise TokenError("Token is missing required claims")
        return payload

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        return self._decode(token, self.config.access_secret, ACCESS_TOKEN_TYPE)

    def decode_refresh_token(self, token: str) -> Dict[str, Any]:
        return self._decode(token, self.config.refresh_secret, REFRESH_TOKEN_TYPE)


@lru_cache()
def get_token_service() -> TokenService:
    """Token service built from the cached application settings."""
    return TokenService(TokenSettings.from_settings(get_settings()))
