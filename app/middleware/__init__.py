"""HTTP middleware."""

from .rate_limit import RateLimitMiddleware, SlidingWindowLimiter

__all__ = ["RateLimitMiddleware", "SlidingWindowLimiter"]
