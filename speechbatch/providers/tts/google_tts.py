"""
Google Cloud Text-to-Speech Provider

Async gRPC client from google-cloud-texttospeech, authenticated with a
service-account JSON key file.
"""

import logging
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import texttospeech_v1
from google.cloud.texttospeech_v1 import types
from google.oauth2 import service_account

from ...core.exceptions import (
    InvalidInputError,
    ProviderAuthenticationError,
    ProviderHTTPError,
    QuotaExceededError,
    SynthesisError,
    TransientProviderError,
)
from ...core.interfaces import AudioFormat, ProviderType
from ...core.schemas import Voice
from ...utils.audio import looks_like_wav, pcm_to_wav
from .base_tts import BaseTTSProvider

logger = logging.getLogger(__name__)

LINEAR16_SAMPLE_RATE = 24000


class GoogleTTSProvider(BaseTTSProvider):
    """Google Cloud TTS (Standard, WaveNet, Neural2 and Studio voices)"""

    provider_type = ProviderType.GOOGLE
    max_text_length = 5000
    max_concurrency = 6
    default_voice = "en-US-Neural2-F"

    VOICE_CATALOG = {
        "en-US-Neural2-F": {"language": "en-US", "gender": "female"},
        "en-US-Neural2-D": {"language": "en-US", "gender": "male"},
        "en-GB-Neural2-A": {"language": "en-GB", "gender": "female"},
        "ru-RU-Wavenet-A": {"language": "ru-RU", "gender": "female"},
        "ru-RU-Wavenet-B": {"language": "ru-RU", "gender": "male"},
        "de-DE-Neural2-B": {"language": "de-DE", "gender": "male"},
    }
    FORMAT_CODES = {
        AudioFormat.MP3: "MP3",
        AudioFormat.WAV: "LINEAR16",
    }

    def __init__(self, config, client: Optional[texttospeech_v1.TextToSpeechAsyncClient] = None):
        super().__init__(config)
        self._client = client

    async def _initialize_client(self) -> None:
        if self._client is not None:
            return
        path = self.config.credential("credentials_path")
        try:
            credentials = service_account.Credentials.from_service_account_file(path)
        except (OSError, ValueError) as e:
            raise ProviderAuthenticationError(
                f"Cannot load Google service-account key from {path}: {e}",
                provider=self.provider_name
            ) from e
        self._client = texttospeech_v1.TextToSpeechAsyncClient(credentials=credentials)
        logger.debug("Google TTS client created for %s", credentials.service_account_email)

    async def cleanup(self) -> None:
        self._client = None
        await super().cleanup()

    @staticmethod
    def language_for_voice(voice: str, fallback: str = "en-US") -> str:
        """'en-US-Neural2-F' -> 'en-US'"""
        parts = voice.split("-")
        if len(parts) >= 2 and len(parts[0]) in (2, 3):
            return f"{parts[0]}-{parts[1]}"
        return fallback

    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        language = options.get("language") or self.config.option("language") or self.language_for_voice(voice)
        encoding = types.AudioEncoding[self.format_code]

        audio_config = types.AudioConfig(audio_encoding=encoding)
        if encoding == types.AudioEncoding.LINEAR16:
            audio_config.sample_rate_hertz = LINEAR16_SAMPLE_RATE
        speed = options.get("speed", self.config.option("speed"))
        if speed is not None:
            audio_config.speaking_rate = self._float_option("speed", speed)
        pitch = options.get("pitch", self.config.option("pitch"))
        if pitch is not None:
            audio_config.pitch = self._float_option("pitch", pitch)

        response = await self._client.synthesize_speech(
            input=types.SynthesisInput(text=text),
            voice=types.VoiceSelectionParams(language_code=language, name=voice),
            audio_config=audio_config,
            timeout=self.config.timeout
        )

        audio = response.audio_content
        if audio and encoding == types.AudioEncoding.LINEAR16 and not looks_like_wav(audio):
            audio = pcm_to_wav(audio, LINEAR16_SAMPLE_RATE)
        return audio

    def _translate_error(self, error: Exception) -> Optional[SynthesisError]:
        name = self.provider_name

        if isinstance(error, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied,
                              auth_exceptions.GoogleAuthError)):
            return ProviderAuthenticationError(f"Google rejected credentials: {error}", provider=name)
        if isinstance(error, google_exceptions.ResourceExhausted):
            return QuotaExceededError(f"Google quota exhausted: {error.message}", provider=name)
        if isinstance(error, (google_exceptions.InvalidArgument, google_exceptions.NotFound,
                              google_exceptions.FailedPrecondition)):
            return InvalidInputError(f"Google rejected the request: {error.message}", provider=name)
        if isinstance(error, (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded,
                              google_exceptions.InternalServerError, google_exceptions.Aborted,
                              google_exceptions.RetryError)):
            return TransientProviderError(f"Google TTS temporarily unavailable: {error}", provider=name)
        if isinstance(error, google_exceptions.GoogleAPICallError):
            return ProviderHTTPError(name, int(error.code or 500), error.message or str(error))
        return None

    async def list_voices(self) -> List[Voice]:
        await self.initialize()
        try:
            response = await self._client.list_voices(
                language_code=self.config.option("language"), timeout=self.config.timeout
            )
        except google_exceptions.GoogleAPICallError as e:
            raise self._translate_error(e) from e

        voices = []
        for item in response.voices:
            gender = types.SsmlVoiceGender(item.ssml_gender).name.lower()
            voices.append(Voice(
                voice_id=item.name,
                name=item.name,
                language=item.language_codes[0] if item.language_codes else None,
                gender=None if gender == "ssml_voice_gender_unspecified" else gender,
                provider=self.provider_name,
            ))
        return voices
