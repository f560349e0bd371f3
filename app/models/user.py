"""User model for authentication."""

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String, Boolean, DateTime, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.core.errors import ValidationError
from app.core.security import hash_password
from app.db.session import Base

if TYPE_CHECKING:
    from app.models.refresh_token import RefreshToken

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
NAME_MAX_LENGTH = 50
BIO_MAX_LENGTH = 500
PASSWORD_MIN_LENGTH = 6


class UserRole(str, Enum):
    """Roles a user account can hold."""
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """User model for authentication and authorization."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Authentication
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))

    # Profile
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH))
    bio: Mapped[str] = mapped_column(Text, default="")
    avatar_url: Mapped[str] = mapped_column(String(500), default="")

    # Authorization
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(
            UserRole,
            name="user_role",
            native_enum=False,
            values_callable=lambda roles: [r.value for r in roles],
        ),
        default=UserRole.USER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Outstanding refresh tokens. Never loaded alongside the user; queried
    # through the RefreshToken table instead.
    refresh_tokens: Mapped[List["RefreshToken"]] = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    # ─── Password (write-only) ──────────────────
    @property
    def password(self):
        raise AttributeError("password is a write-only attribute")

    @password.setter
    def password(self, plaintext: str) -> None:
        # Hashing happens only here, so unrelated updates never rehash.
        if not plaintext or len(plaintext) < PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
                errors=[{"field": "password", "message": "too short"}],
            )
        self.hashed_password = hash_password(plaintext)

    # ─── Field validation ───────────────────────
    @validates("email")
    def _validate_email(self, key, value):
        email = (value or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError(
                "Please provide a valid email",
                errors=[{"field": key, "message": "invalid format"}],
            )
        return email

    @validates("name")
    def _validate_name(self, key, value):
        name = (value or "").strip()
        if not name:
            raise ValidationError("Please provide a name", errors=[{"field": key, "message": "required"}])
        if len(name) > NAME_MAX_LENGTH:
            raise ValidationError(
                f"Name cannot be more than {NAME_MAX_LENGTH} characters",
                errors=[{"field": key, "message": "too long"}],
            )
        return name

    @validates("bio")
    def _validate_bio(self, key, value):
        if value and len(value) > BIO_MAX_LENGTH:
            raise ValidationError(
                f"Bio cannot be more than {BIO_MAX_LENGTH} characters",
                errors=[{"field": key, "message": "too long"}],
            )
        return value or ""

    @validates("role")
    def _validate_role(self, key, value):
        try:
            return UserRole(value)
        except ValueError:
            raise ValidationError(
                "Role must be either user or admin",
                errors=[{"field": key, "message": "invalid choice"}],
            )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
