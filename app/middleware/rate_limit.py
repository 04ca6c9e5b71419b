"""Per-IP request rate limiting.

Two tiers share one sliding-window limiter:
- every HTTP request counts against the global limit
- ``/auth/login`` and ``/auth/register`` also count against a much
  stricter auth limit, to slow down password guessing

A client over either limit gets 429 with a ``Retry-After`` header.
WebSocket traffic is not counted.

Usage:
    app.add_middleware(RateLimitMiddleware, limiter=SlidingWindowLimiter())
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import settings

logger = logging.getLogger(__name__)

AUTH_PATHS = frozenset({"/auth/login", "/auth/register"})
EXEMPT_PATHS = frozenset({"/", "/health"})


class SlidingWindowLimiter:
    """
    In-memory sliding window keyed by ``(tier, identifier)``.

    Each allowed request stores its timestamp; a request is refused once
    ``limit`` timestamps fall inside the last ``window_seconds``. Refused
    requests are not recorded.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self.buckets: dict[str, list[float]] = defaultdict(list)
        self._last_sweep = clock()

    def is_allowed(
        self,
        identifier: str,
        limit: int,
        window_seconds: int,
        tier: str = "global",
    ) -> tuple[bool, int, int]:
        """
        Record a request if it fits under the limit.

        Returns:
            Tuple of (is_allowed, remaining_requests, retry_after_seconds)
        """
        now = self.clock()
        self._sweep(now, window_seconds)

        key = f"{tier}:{identifier}"
        window_start = now - window_seconds
        hits = [t for t in self.buckets[key] if t > window_start]
        self.buckets[key] = hits

        if len(hits) >= limit:
            retry_after = int(hits[0] + window_seconds - now) + 1 if hits else window_seconds
            return False, 0, retry_after

        hits.append(now)
        return True, limit - len(hits), 0

    def reset(self) -> None:
        self.buckets.clear()

    def _sweep(self, now: float, window_seconds: int) -> None:
        # Drop idle clients at most once per window
        if now - self._last_sweep < window_seconds:
            return
        cutoff = now - window_seconds
        for key in list(self.buckets):
            if not self.buckets[key] or self.buckets[key][-1] <= cutoff:
                del self.buckets[key]
        self._last_sweep = now


def client_identifier(request: Request) -> str:
    """Client IP, honouring ``X-Forwarded-For`` when behind a proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the global and auth limits to every HTTP request."""

    def __init__(
        self,
        app,
        limiter: SlidingWindowLimiter,
        global_limit: int = settings.rate_limit_global_max,
        auth_limit: int = settings.rate_limit_auth_max,
        window_seconds: int = settings.rate_limit_window_seconds,
        get_identifier: Optional[Callable[[Request], str]] = None,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.global_limit = global_limit
        self.auth_limit = auth_limit
        self.window_seconds = window_seconds
        self.get_identifier = get_identifier or client_identifier

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in EXEMPT_PATHS:
            return await call_next(request)

        identifier = self.get_identifier(request)

        allowed, remaining, retry_after = self.limiter.is_allowed(
            identifier, self.global_limit, self.window_seconds, tier="global"
        )
        if not allowed:
            logger.warning(f"Global rate limit exceeded: ip={identifier} {request.method} {path}")
            return self._too_many(
                "Too many requests. Please slow down and try again later.",
                self.global_limit,
                retry_after,
            )

        if path in AUTH_PATHS:
            auth_allowed, _, auth_retry = self.limiter.is_allowed(
                identifier, self.auth_limit, self.window_seconds, tier="auth"
            )
            if not auth_allowed:
                logger.warning(
                    f"Auth rate limit exceeded: ip={identifier} {request.method} {path} "
                    f"(possible brute force)"
                )
                return self._too_many(
                    "Too many login or register attempts. Please wait before trying again.",
                    self.auth_limit,
                    auth_retry,
                )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.global_limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    @staticmethod
    def _too_many(detail: str, limit: int, retry_after: int) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": detail, "retry_after": retry_after},
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            },
        )
