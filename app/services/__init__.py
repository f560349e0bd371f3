"""Services for business logic."""

from app.services.auth_service import AuthService
from app.services.token_service import TokenService, get_token_service
from app.services.user_store import UserStore

__all__ = ["AuthService", "TokenService", "get_token_service", "UserStore"]
