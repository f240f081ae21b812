"""
speechbatch TTS Providers Package.

One adapter per vendor, all implementing BaseTTSProvider.
"""

from .azure_tts import AzureTTSProvider
from .base_tts import BaseTTSProvider
from .deepgram_tts import DeepgramTTSProvider
from .elevenlabs_tts import ElevenLabsTTSProvider
from .google_tts import GoogleTTSProvider
from .openai_tts import OpenAITTSProvider
from .yandex_tts import YandexTTSProvider

__all__ = [
    "BaseTTSProvider",
    "OpenAITTSProvider",
    "GoogleTTSProvider",
    "YandexTTSProvider",
    "ElevenLabsTTSProvider",
    "AzureTTSProvider",
    "DeepgramTTSProvider",
]
