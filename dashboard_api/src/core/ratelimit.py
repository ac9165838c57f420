from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import Request, Response
from limits import RateLimitItem, RateLimitItemPerSecond
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.core.errors import ErrorResponses
from src.core.features import is_feature_enabled
from src.core.settings import get_app_settings

logger = logging.getLogger(__name__)


def client_key(request: Request) -> str:
    """Rate limit key: first X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return get_remote_address(request)


class RateLimiter:
    """
    Fixed-window request budget per client, backed by slowapi's in-memory storage.

    State is per worker process; deployments behind several workers get a per-worker budget.
    """

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.item: RateLimitItem = RateLimitItemPerSecond(max_requests, window_seconds)
        self.slowapi = Limiter(key_func=client_key, storage_uri="memory://", strategy="fixed-window")

    # PUBLIC_INTERFACE
    def hit(self, key: str) -> tuple[bool, int, float]:
        """Count one request for key. Returns (allowed, remaining, reset_at_epoch)."""
        allowed = self.slowapi.limiter.hit(self.item, key)
        reset_at, remaining = self.slowapi.limiter.get_window_stats(self.item, key)
        return allowed, max(0, remaining), reset_at

    def reset(self) -> None:
        self.slowapi.reset()


_limiter: Optional[RateLimiter] = None


# PUBLIC_INTERFACE
def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        settings = get_app_settings()
        _limiter = RateLimiter(settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
    return _limiter


def _headers(limit: int, remaining: int, reset_at: float) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": datetime.fromtimestamp(reset_at, tz=timezone.utc).isoformat(),
    }


# PUBLIC_INTERFACE
async def rate_limit(request: Request, response: Response) -> None:
    """
    Router dependency enforcing the per-client request budget.

    Active only while the rate_limiting feature is enabled.
    """
    if not is_feature_enabled("rate_limiting"):
        return
    limiter = get_rate_limiter()
    key = client_key(request)
    allowed, remaining, reset_at = limiter.hit(key)
    headers = _headers(limiter.max_requests, remaining, reset_at)
    if not allowed:
        logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
        headers["Retry-After"] = str(max(1, int(reset_at - time.time())))
        raise ErrorResponses.too_many_requests(headers=headers)
    for name, value in headers.items():
        response.headers[name] = value
