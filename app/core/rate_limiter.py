"""
In-memory sliding-window rate limiter for the login and registration endpoints.

Counts attempts per client IP and per email. State lives in this process
only; a multi-instance deployment would need a shared backend.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Tuple

from app.core.config import get_settings
from app.core.errors import TooManyRequests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: int


DEFAULT_LIMITS: Dict[str, RateLimitConfig] = {
    "login_ip": RateLimitConfig(max_requests=20, window_seconds=900),
    "login_email": RateLimitConfig(max_requests=10, window_seconds=900),
    "register_ip": RateLimitConfig(max_requests=10, window_seconds=3600),
}


class RateLimiter:
    """Thread-safe sliding-window counter keyed by ``<limit_type>:<identifier>``."""

    def __init__(self, configs: Dict[str, RateLimitConfig] = None):
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()
        self.configs = dict(configs or DEFAULT_LIMITS)

    def _prune(self, key: str, window_seconds: int, now: float) -> None:
        cutoff = now - window_seconds
        self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]

    def is_allowed(self, limit_type: str, identifier: str) -> Tuple[bool, int]:
        """
        Record an attempt and report whether it is within the limit.

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        config = self.configs.get(limit_type)
        if config is None:
            logger.warning(f"Unknown rate limit type: {limit_type}")
            return True, 0

        key = f"{limit_type}:{identifier}"
        with self._lock:
            now = time.time()
            self._prune(key, config.window_seconds, now)
            attempts = self._requests[key]

            if len(attempts) >= config.max_requests:
                retry_after = int(min(attempts) + config.window_seconds - now) + 1
                return False, max(retry_after, 1)

            attempts.append(now)
            return True, 0

    def check(self, limit_type: str, identifier: str) -> None:
        """Raise TooManyRequests when the limit is exceeded."""
        if not get_settings().rate_limit_enabled:
            return
        allowed, retry_after = self.is_allowed(limit_type, identifier)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {limit_type}: {identifier[:20]}...")
            raise TooManyRequests(
                f"Too many requests. Please try again in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )

    def reset(self, limit_type: str, identifier: str) -> None:
        """Forget attempts for one key (e.g. after a successful login)."""
        with self._lock:
            self._requests.pop(f"{limit_type}:{identifier}", None)

    def clear(self) -> None:
        with self._lock:
            self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


def get_client_ip(request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
