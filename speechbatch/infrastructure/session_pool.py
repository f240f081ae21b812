"""
HTTP session pooling for REST-based providers.

One pool per adapter instance: a lazily created aiohttp ClientSession over a
bounded TCPConnector. Sessions are recycled once they exceed
MAX_SESSION_AGE_S or get closed underneath us. A recycled session that still
carries requests is retired, not closed: it closes when its last request is
released, so a recycle never aborts a call in flight.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from aiohttp import ClientSession, ClientTimeout, TCPConnector

logger = logging.getLogger(__name__)

MAX_SESSION_AGE_S = 30 * 60


class SessionPool:
    """
    Connection pool for ONE provider

    Manages a single keep-alive session whose connector caps concurrent
    connections.
    """

    def __init__(
        self,
        provider_name: str,
        max_connections: int = 30,
        max_connections_per_host: int = 10,
        keepalive_timeout: int = 30,
        connection_timeout: float = 10.0,
        read_timeout: float = 30.0,
        max_session_age_s: float = MAX_SESSION_AGE_S,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize connection pool for specific provider

        Args:
            provider_name: Name of the provider (yandex, azure, ...)
            max_connections: Maximum total connections
            max_connections_per_host: Maximum connections per host
            keepalive_timeout: TCP keepalive timeout
            connection_timeout: Connection establishment timeout
            read_timeout: Read operation timeout
            max_session_age_s: Session lifetime before it is recycled
        """
        self.provider_name = provider_name
        self.max_connections = max_connections
        self.max_connections_per_host = max_connections_per_host
        self.keepalive_timeout = keepalive_timeout
        self.connection_timeout = connection_timeout
        self.read_timeout = read_timeout
        self.max_session_age_s = max_session_age_s
        self._clock = clock

        self._session: Optional[ClientSession] = None
        self._session_born: Optional[float] = None
        # Outstanding get_session() calls per session, current and retired
        self._leases: Dict[ClientSession, int] = {}
        self._retired: List[ClientSession] = []
        self._created_at: Optional[datetime] = None
        self._last_used: Optional[datetime] = None
        self._request_count = 0
        self._recycle_count = 0
        self._lock = asyncio.Lock()

        logger.debug("SessionPool created for %s", provider_name)

    def is_valid(self) -> bool:
        """Session exists, is open and younger than the maximum age"""
        if self._session is None or self._session.closed:
            return False
        return (self._clock() - self._session_born) < self.max_session_age_s

    async def get_session(self) -> ClientSession:
        """
        Get HTTP session from pool, creating or recycling it as needed

        Every call must be paired with release_session() once the request
        on the returned session has finished.
        """
        if not self.is_valid():
            async with self._lock:
                if not self.is_valid():
                    await self._recycle()

        session = self._session
        self._leases[session] = self._leases.get(session, 0) + 1
        self._last_used = datetime.now()
        self._request_count += 1
        return session

    async def release_session(self, session: ClientSession) -> None:
        """Release a session; a retired session closes with its last request"""
        remaining = self._leases.get(session, 0) - 1
        if remaining > 0:
            self._leases[session] = remaining
            return

        self._leases.pop(session, None)
        if session in self._retired:
            self._retired.remove(session)
            if not session.closed:
                await session.close()
            logger.debug("Retired HTTP session closed for %s", self.provider_name)

    async def _recycle(self) -> None:
        if self._session is not None:
            self._recycle_count += 1
            logger.info("Recycling HTTP session for %s", self.provider_name)
            if self._leases.get(self._session) and not self._session.closed:
                self._retired.append(self._session)
                self._session = None
            else:
                await self._close_session()

        connector = TCPConnector(
            limit=self.max_connections,
            limit_per_host=self.max_connections_per_host,
            keepalive_timeout=self.keepalive_timeout,
            ttl_dns_cache=300
        )
        timeout = ClientTimeout(
            total=self.connection_timeout + self.read_timeout,
            connect=self.connection_timeout,
            sock_read=self.read_timeout
        )
        self._session = ClientSession(
            connector=connector,
            timeout=timeout,
            headers={"User-Agent": f"speechbatch/{self.provider_name}"}
        )
        self._session_born = self._clock()
        self._created_at = datetime.now()
        logger.debug("HTTP session created for %s", self.provider_name)

    async def _close_session(self) -> None:
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

    async def close(self) -> None:
        """Cleanup connection pool resources"""
        async with self._lock:
            await self._close_session()
            retired, self._retired = self._retired, []
            for session in retired:
                if not session.closed:
                    await session.close()
            self._leases.clear()
        logger.debug("SessionPool closed for %s", self.provider_name)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get connection pool statistics"""
        return {
            "provider_name": self.provider_name,
            "created_at": self._created_at.isoformat() if self._created_at else None,
            "last_used": self._last_used.isoformat() if self._last_used else None,
            "request_count": self._request_count,
            "recycle_count": self._recycle_count,
            "is_valid": self.is_valid(),
            "retired_sessions": len(self._retired),
            "max_connections": self.max_connections,
            "max_connections_per_host": self.max_connections_per_host,
        }
