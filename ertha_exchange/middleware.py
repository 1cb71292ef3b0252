# ertha_exchange/middleware.py
import logging
import time
import uuid
from typing import Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from ertha_exchange.config import Settings
from ertha_exchange.utils.helpers import api_response, get_client_ip

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


class RateLimiter:
    """Per-key moving-window limit backed by `limits` in-memory storage."""

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = max(1, int(window_seconds))
        self.item = RateLimitItemPerSecond(max_requests, self.window_seconds)
        self.storage = MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self.storage)

    def is_rate_limited(self, key: str) -> Tuple[bool, Optional[int]]:
        """
        Record a hit for `key` unless it is over the limit.

        Returns:
            Tuple of (is_limited, seconds_until_reset)
        """
        if self._limiter.hit(self.item, key):
            return False, None
        stats = self._limiter.get_window_stats(self.item, key)
        return True, max(1, int(stats.reset_time - time.time()))

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self.storage.reset()
        else:
            self._limiter.clear(self.item, key)


def register_middleware(app: FastAPI, settings: Settings) -> None:
    """Request id + access log on every request; rate limiting under the API prefix."""
    limiter = None
    if settings.rate_limit_max_requests > 0:
        limiter = RateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_ms / 1000)
    app.state.rate_limiter = limiter

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if limiter is not None and request.url.path.startswith(settings.api_prefix):
            client_ip = get_client_ip(request) or "unknown"
            limited, retry_after = limiter.is_rate_limited(client_ip)
            if limited:
                logger.warning("Rate limit hit for %s on %s", client_ip, request.url.path)
                return JSONResponse(
                    status_code=429,
                    content=api_response(None, RATE_LIMIT_MESSAGE, success=False),
                    headers={"Retry-After": str(retry_after)},
                )
        return await call_next(request)

    # registered last so it wraps everything, including rate-limited responses
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        logger.info("%s %s -> %s (%.1f ms) [%s]", request.method, request.url.path,
                    response.status_code, elapsed_ms, request_id)
        return response
