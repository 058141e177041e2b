"""Rate limiting module."""

from .limiter import IRateLimiter, RateLimiter, raise_if_denied

__all__ = ["IRateLimiter", "RateLimiter", "raise_if_denied"]
