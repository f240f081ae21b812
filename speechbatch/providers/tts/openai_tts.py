"""
OpenAI TTS Provider

Uses the official AsyncOpenAI client (audio.speech.create). The SDK's own
retry loop is disabled so the retry executor owns every retry decision.
"""

import logging
from typing import Any, Dict, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    UnprocessableEntityError,
)

from ...core.error_classifier import parse_retry_after
from ...core.exceptions import (
    InvalidInputError,
    ProviderAuthenticationError,
    ProviderHTTPError,
    QuotaExceededError,
    SynthesisError,
    TransientProviderError,
)
from ...core.interfaces import AudioFormat, ProviderType
from .base_tts import BaseTTSProvider

logger = logging.getLogger(__name__)


class OpenAITTSProvider(BaseTTSProvider):
    """OpenAI text-to-speech (tts-1 / tts-1-hd / gpt-4o-mini-tts)"""

    provider_type = ProviderType.OPENAI
    max_text_length = 4096
    max_concurrency = 4
    default_voice = "alloy"
    DEFAULT_MODEL = "tts-1"

    VOICE_CATALOG = {
        "alloy": {"name": "Alloy", "gender": "neutral"},
        "ash": {"name": "Ash", "gender": "male"},
        "coral": {"name": "Coral", "gender": "female"},
        "echo": {"name": "Echo", "gender": "male"},
        "fable": {"name": "Fable", "gender": "neutral"},
        "nova": {"name": "Nova", "gender": "female"},
        "onyx": {"name": "Onyx", "gender": "male"},
        "sage": {"name": "Sage", "gender": "female"},
        "shimmer": {"name": "Shimmer", "gender": "female"},
    }
    STRICT_VOICE_CATALOG = True
    FORMAT_CODES = {
        AudioFormat.MP3: "mp3",
        AudioFormat.WAV: "wav",
    }

    def __init__(self, config, client: Optional[AsyncOpenAI] = None):
        super().__init__(config)
        self._client = client

    async def _initialize_client(self) -> None:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.credential("api_key"),
                base_url=self.config.option("base_url"),
                timeout=self.config.timeout,
                max_retries=0
            )

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        await super().cleanup()

    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        params: Dict[str, Any] = {
            "model": options.get("model") or self.config.option("model", self.DEFAULT_MODEL),
            "input": text,
            "voice": voice,
            "response_format": self.format_code,
        }

        speed = options.get("speed", self.config.option("speed"))
        if speed is not None:
            speed = self._float_option("speed", speed)
            if not 0.25 <= speed <= 4.0:
                raise InvalidInputError(f"Speed must be between 0.25 and 4.0, got {speed}", provider=self.provider_name)
            params["speed"] = speed

        instructions = options.get("instructions", self.config.option("instructions"))
        if instructions:
            params["instructions"] = instructions

        response = await self._client.audio.speech.create(**params)
        return response.content

    def _translate_error(self, error: Exception) -> Optional[SynthesisError]:
        name = self.provider_name

        if isinstance(error, APIConnectionError):
            # Includes APITimeoutError
            return TransientProviderError(f"OpenAI connection failed: {error}", provider=name)
        if isinstance(error, (AuthenticationError, PermissionDeniedError)):
            return ProviderAuthenticationError(f"OpenAI rejected credentials: {error.message}", provider=name)
        if isinstance(error, RateLimitError):
            retry_after = parse_retry_after(error.response.headers.get("retry-after"))
            if error.code == "insufficient_quota" or retry_after is not None:
                return QuotaExceededError(
                    f"OpenAI quota exceeded: {error.message}", provider=name, retry_after=retry_after
                )
            return TransientProviderError(f"OpenAI rate limited: {error.message}", provider=name)
        if isinstance(error, (BadRequestError, NotFoundError, UnprocessableEntityError)):
            return InvalidInputError(f"OpenAI rejected the request: {error.message}", provider=name)
        if isinstance(error, APIStatusError):
            return ProviderHTTPError(
                name,
                error.status_code,
                error.message,
                retry_after=parse_retry_after(error.response.headers.get("retry-after"))
            )
        return None

    async def _check_connectivity(self) -> None:
        await self._client.models.list()
