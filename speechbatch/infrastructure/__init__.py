"""Shared async resources: HTTP session pool, concurrency limiter, token cache."""

from .concurrency import ConcurrencyLimiter
from .session_pool import SessionPool
from .token_cache import TokenCache

__all__ = ["ConcurrencyLimiter", "SessionPool", "TokenCache"]
