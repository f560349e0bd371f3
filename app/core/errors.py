"""
Typed application errors.

Every failure an operation can report is one of these classes. The HTTP
boundary in ``main.py`` turns them into the JSON envelope
``{"success": false, "message": ..., "errors": [...]}`` with the matching
status code.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500
    code: str = "error"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.errors = errors
        self.headers = headers
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(AppError):
    """Input shape or store constraint violated (duplicate email, field length...)."""
    status_code = 400
    code = "validation_error"
    default_message = "Validation failed"


class BadRequest(AppError):
    """Malformed request or business-rule rejection."""
    status_code = 400
    code = "bad_request"
    default_message = "Bad request"


class Unauthenticated(AppError):
    """Missing, invalid or expired credentials."""
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required"


class AuthError(Unauthenticated):
    """Credential check failed. Never says which part was wrong."""
    code = "invalid_credentials"
    default_message = "Invalid credentials"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class TooManyRequests(AppError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests"


class Internal(AppError):
    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"
