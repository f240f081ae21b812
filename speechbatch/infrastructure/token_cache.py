"""
Per-adapter bearer token cache.

Each adapter instance owns one cache, so instances never share token state
and stay independently testable. Refresh is serialized with an asyncio.Lock:
concurrent workers that find the token stale trigger exactly one fetch.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[Tuple[str, float]]]


@dataclass(frozen=True)
class CachedToken:
    """Token value and its absolute expiry on the cache clock"""
    value: str
    expires_at: float


class TokenCache:
    """Holds one token with an explicit expiry check"""

    def __init__(
        self,
        name: str = "token",
        refresh_skew_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            name: Label used in log messages
            refresh_skew_s: Treat the token as expired this many seconds early
            clock: Monotonic time source (injectable for tests)
        """
        self.name = name
        self.refresh_skew_s = refresh_skew_s
        self._clock = clock
        self._token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    def is_valid(self) -> bool:
        if self._token is None:
            return False
        return self._clock() < self._token.expires_at - self.refresh_skew_s

    @property
    def token(self) -> Optional[str]:
        return self._token.value if self.is_valid() else None

    def store(self, value: str, ttl_s: float) -> None:
        self._token = CachedToken(value=value, expires_at=self._clock() + ttl_s)

    def invalidate(self) -> None:
        self._token = None

    async def get_or_refresh(self, fetch: TokenFetcher) -> str:
        """
        Return the cached token, fetching a new one if it is missing or stale

        Args:
            fetch: Coroutine function returning (token, ttl_seconds)
        """
        if self.is_valid():
            return self._token.value

        async with self._lock:
            # Another worker may have refreshed while we waited
            if self.is_valid():
                return self._token.value

            value, ttl_s = await fetch()
            self.store(value, ttl_s)
            self.refresh_count += 1
            logger.debug("%s refreshed, valid for %.0fs", self.name, ttl_s)
            return value
