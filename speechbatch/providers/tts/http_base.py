"""
Shared plumbing for providers that speak plain HTTPS/REST through aiohttp.
"""

import json
import logging
from typing import Any, ClassVar, Dict, Mapping, Optional

from aiohttp import ClientTimeout

from ...core.config import ProviderConfig
from ...core.error_classifier import parse_retry_after
from ...core.exceptions import ProviderHTTPError, SynthesisError
from ...infrastructure.session_pool import SessionPool
from .base_tts import BaseTTSProvider

logger = logging.getLogger(__name__)

MAX_ERROR_BODY_CHARS = 1000


class HTTPTTSProvider(BaseTTSProvider):
    """Base for REST adapters: pooled session, bounded timeout, status mapping"""

    MAX_CONNECTIONS_PER_HOST: ClassVar[int] = 10

    def __init__(self, config: ProviderConfig, session_pool: Optional[SessionPool] = None):
        super().__init__(config)
        self._pool = session_pool or SessionPool(
            self.provider_name,
            max_connections_per_host=self.MAX_CONNECTIONS_PER_HOST,
            read_timeout=config.timeout
        )

    async def cleanup(self) -> None:
        await self._pool.close()
        await super().cleanup()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        data: Any = None
    ) -> bytes:
        """
        Perform one HTTP call bounded by the configured timeout.

        Raises:
            ProviderHTTPError: Non-2xx response (classified later by status)
        """
        session = await self._pool.get_session()
        timeout = ClientTimeout(total=self.config.timeout)

        try:
            async with session.request(
                method,
                url,
                headers=dict(headers or {}),
                params=dict(params) if params else None,
                json=json_body,
                data=data,
                timeout=timeout
            ) as response:
                body = await response.read()
                if response.status >= 400:
                    raise self._http_error(response.status, body, response.headers)
                return body
        finally:
            await self._pool.release_session(session)

    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        body = await self._request(method, url, **kwargs)
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise SynthesisError(
                f"{self.provider_name} returned malformed JSON from {url}",
                provider=self.provider_name
            ) from e

    def _http_error(self, status: int, body: bytes, headers: Mapping[str, str]) -> SynthesisError:
        """Build the error for a failed response; adapters override for vendor quirks."""
        text = body.decode("utf-8", errors="replace").strip()[:MAX_ERROR_BODY_CHARS]
        logger.debug("%s HTTP %s: %s", self.provider_name, status, text)
        return ProviderHTTPError(
            self.provider_name,
            status,
            text,
            retry_after=parse_retry_after(headers.get("Retry-After"))
        )

    @staticmethod
    def _error_detail(body: bytes) -> Dict[str, Any]:
        """Best-effort decode of a JSON error body"""
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}
