"""Password hashing (bcrypt via passlib)."""

from passlib.context import CryptContext

from app.core.config import get_settings

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)

# Precomputed fake hash to mitigate timing attacks
FAKE_HASHED_PASSWORD = pwd_context.hash("this_is_a_fake_user_that_never_exists_2025")


def hash_password(password: str) -> str:
    """Hash a plaintext password with a fresh random salt."""
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """Check a plaintext password against a stored hash.

    A malformed or unknown hash counts as a mismatch rather than an error.
    """
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False
