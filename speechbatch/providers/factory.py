"""
TTS Provider Registry

Maps ProviderType to adapter classes. The scheduler resolves the adapter
once per run; known provider ids without an adapter resolve to
ProviderNotImplementedError instead of a crash.
"""

import logging
from typing import Dict, List, Optional, Type, Union

from ..core.config import ProviderConfig
from ..core.exceptions import ConfigurationValidationError, ProviderNotFoundError, ProviderNotImplementedError
from ..core.interfaces import ProviderType
from .tts.azure_tts import AzureTTSProvider
from .tts.base_tts import BaseTTSProvider
from .tts.deepgram_tts import DeepgramTTSProvider
from .tts.elevenlabs_tts import ElevenLabsTTSProvider
from .tts.google_tts import GoogleTTSProvider
from .tts.openai_tts import OpenAITTSProvider
from .tts.yandex_tts import YandexTTSProvider

logger = logging.getLogger(__name__)

ProviderRef = Union[ProviderType, str]

DEFAULT_PROVIDERS: Dict[ProviderType, Type[BaseTTSProvider]] = {
    ProviderType.OPENAI: OpenAITTSProvider,
    ProviderType.GOOGLE: GoogleTTSProvider,
    ProviderType.YANDEX: YandexTTSProvider,
    ProviderType.ELEVENLABS: ElevenLabsTTSProvider,
    ProviderType.AZURE: AzureTTSProvider,
    ProviderType.DEEPGRAM: DeepgramTTSProvider,
}


def coerce_provider_type(provider: ProviderRef) -> ProviderType:
    """
    Accept a ProviderType or its name ('openai', 'OPENAI', 'amazon-polly')

    Raises:
        ProviderNotFoundError: Name is not a known provider
    """
    if isinstance(provider, ProviderType):
        return provider
    key = str(provider).strip().lower().replace("-", "_")
    try:
        return ProviderType(key)
    except ValueError:
        raise ProviderNotFoundError(str(provider), [p.value for p in ProviderType]) from None


class ProviderRegistry:
    """
    Registry of TTS adapter classes

    Supports:
    - Lookup by ProviderType or name
    - Registration of extra adapters (tests, plugins)
    - Instance creation from a ProviderConfig
    """

    def __init__(self, providers: Optional[Dict[ProviderType, Type[BaseTTSProvider]]] = None):
        self._providers: Dict[ProviderType, Type[BaseTTSProvider]] = dict(
            DEFAULT_PROVIDERS if providers is None else providers
        )

    def register(self, provider_type: ProviderType, provider_class: Type[BaseTTSProvider]) -> None:
        if not (isinstance(provider_class, type) and issubclass(provider_class, BaseTTSProvider)):
            raise ConfigurationValidationError(
                provider_type.value, ["Provider class must inherit from BaseTTSProvider"]
            )
        self._providers[provider_type] = provider_class
        logger.info("Registered TTS provider: %s -> %s", provider_type.value, provider_class.__name__)

    def unregister(self, provider_type: ProviderType) -> None:
        self._providers.pop(provider_type, None)

    def is_registered(self, provider: ProviderRef) -> bool:
        try:
            return coerce_provider_type(provider) in self._providers
        except ProviderNotFoundError:
            return False

    def resolve(self, provider: ProviderRef) -> Type[BaseTTSProvider]:
        """
        Return the adapter class for a provider

        Raises:
            ProviderNotFoundError: Unknown provider name
            ProviderNotImplementedError: Known provider without an adapter
        """
        provider_type = coerce_provider_type(provider)
        try:
            return self._providers[provider_type]
        except KeyError:
            raise ProviderNotImplementedError(provider_type.value, self.available_providers()) from None

    def create(self, config: ProviderConfig, **kwargs) -> BaseTTSProvider:
        """Instantiate the adapter for config.provider_id"""
        provider_class = self.resolve(config.provider_id)
        provider = provider_class(config, **kwargs)
        logger.debug("Created %r", provider)
        return provider

    def available_providers(self) -> List[str]:
        return [provider_type.value for provider_type in self._providers]


provider_registry = ProviderRegistry()
