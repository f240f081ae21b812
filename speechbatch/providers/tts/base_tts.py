"""
TTS Base Provider for speechbatch

Minimal abstract base every vendor adapter implements:
- synthesize(text, voice, options) -> audio bytes
- validate_config(config) -> bool
- list_voices() -> List[Voice]

The base class owns the parts every vendor shares: pre-flight text checks
(no network call is made for empty or over-long text), lazy one-time
initialization, translation of vendor exceptions into SynthesisError
subclasses, and an empty-payload guard. Adapters never touch the filesystem.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Mapping, Optional

from ...core.config import ProviderConfig
from ...core.exceptions import (
    ConfigurationValidationError,
    InvalidInputError,
    SynthesisError,
    TransientProviderError,
)
from ...core.interfaces import AudioFormat, ProviderType
from ...core.schemas import Voice
from ...utils.validators import DataValidator

logger = logging.getLogger(__name__)


class BaseTTSProvider(ABC):
    """
    Abstract base for TTS providers.

    Class attributes describe the vendor so the registry, the validator and
    the scheduler can reason about it without an instance.
    """

    provider_type: ClassVar[ProviderType]
    max_text_length: ClassVar[int] = 5000
    # How many parallel calls the vendor tolerates; 1 forces sequential mode
    max_concurrency: ClassVar[int] = 4
    default_voice: ClassVar[str] = ""
    VOICE_CATALOG: ClassVar[Dict[str, Dict[str, str]]] = {}
    STRICT_VOICE_CATALOG: ClassVar[bool] = False
    FORMAT_CODES: ClassVar[Dict[AudioFormat, str]] = {}

    def __init__(self, config: ProviderConfig):
        if config.provider_id is not self.provider_type:
            raise ConfigurationValidationError(
                self.provider_type.value,
                [f"{self.__class__.__name__} cannot use a '{config.provider_name}' configuration"]
            )
        self.config = config
        self.provider_name = config.provider_name
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # Lifecycle

    async def initialize(self) -> None:
        """Initialize provider resources once (clients, sessions, tokens)."""
        if self._initialized:
            return
        async with self._init_lock:
            if not self._initialized:
                await self._initialize_client()
                self._initialized = True
                logger.debug("%s provider initialized", self.provider_name)

    async def _initialize_client(self) -> None:
        """Provider-specific initialization hook."""

    async def cleanup(self) -> None:
        """Clean up provider resources."""
        self._initialized = False

    async def __aenter__(self) -> "BaseTTSProvider":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.cleanup()

    # Synthesis

    async def synthesize(
        self,
        text: str,
        voice: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None
    ) -> bytes:
        """
        Synthesize one text into audio bytes.

        Raises:
            InvalidInputError: Empty or over-long text (raised before any network call)
            SynthesisError: Any classified provider failure
        """
        self._preflight(text)
        await self.initialize()

        voice = self.resolve_voice(voice)
        start_time = time.perf_counter()

        try:
            audio = await self._synthesize_implementation(text.strip(), voice, dict(options or {}))
        except SynthesisError:
            raise
        except Exception as e:
            translated = self._translate_error(e)
            if translated is None:
                raise
            raise translated from e

        if not audio:
            raise TransientProviderError("Provider returned an empty audio payload", provider=self.provider_name)

        logger.debug(
            "%s synthesis completed: %s chars -> %s bytes, %.2fs",
            self.provider_name, len(text), len(audio), time.perf_counter() - start_time
        )
        return audio

    def _preflight(self, text: Any) -> None:
        """Request validation; runs before initialization or network I/O."""
        ok, errors = DataValidator.validate_text(text, self.max_text_length)
        if not ok:
            raise InvalidInputError("; ".join(errors), provider=self.provider_name)

    def _float_option(self, name: str, value: Any) -> float:
        """Numeric option from per-job or config values; malformed input is the item's fault"""
        try:
            return float(value)
        except (TypeError, ValueError):
            raise InvalidInputError(
                f"Option '{name}' must be a number, got {value!r}",
                provider=self.provider_name
            ) from None

    def resolve_voice(self, voice: Optional[str]) -> str:
        return voice or self.config.voice or self.default_voice

    @property
    def format_code(self) -> str:
        """Vendor code for the configured audio format"""
        try:
            return self.FORMAT_CODES[self.config.audio_format]
        except KeyError:
            raise InvalidInputError(
                f"Audio format '{self.config.audio_format.value}' not supported",
                provider=self.provider_name
            ) from None

    @abstractmethod
    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        """Core synthesis implementation - provider specific."""
        raise NotImplementedError

    def _translate_error(self, error: Exception) -> Optional[SynthesisError]:
        """
        Map a vendor SDK exception to a SynthesisError.

        Return None to let the error classifier handle the raw exception
        (timeouts, connection errors).
        """
        return None

    # Discovery and validation

    async def list_voices(self) -> List[Voice]:
        """Voices from the static catalog; providers with a voices endpoint override."""
        return [
            Voice(
                voice_id=voice_id,
                name=info.get("name", voice_id.title()),
                language=info.get("language"),
                gender=info.get("gender"),
                provider=self.provider_name,
                description=info.get("description"),
            )
            for voice_id, info in self.VOICE_CATALOG.items()
        ]

    def validate_config(self, config: Optional[ProviderConfig] = None) -> bool:
        from ...utils.validators import ConfigurationValidator

        config = config or self.config
        report = ConfigurationValidator().validate(self.provider_type, config)
        for warning in report.warnings:
            logger.warning("%s config: %s", self.provider_name, warning)
        return report.is_valid

    async def test_connectivity(self) -> bool:
        """
        One cheap authenticated call; kept apart from validate_config so
        validation never touches the network.
        """
        try:
            await self.initialize()
            await self._check_connectivity()
            return True
        except Exception as e:
            logger.warning("Connectivity check failed for %s: %s", self.provider_name, e)
            return False

    async def _check_connectivity(self) -> None:
        await self.list_voices()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_name}, voice={self.resolve_voice(None)})"
