"""
Yandex SpeechKit TTS Provider

REST v1 synthesis endpoint. Authenticates either with a static API key or
with an OAuth token exchanged for a short-lived IAM token (cached per
adapter instance). WAV output is requested as raw LPCM and wrapped locally.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from ...core.exceptions import ProviderAuthenticationError, ProviderHTTPError, SynthesisError
from ...core.interfaces import AudioFormat, ProviderType
from ...infrastructure.token_cache import TokenCache
from ...utils.audio import pcm_to_wav
from .http_base import HTTPTTSProvider

logger = logging.getLogger(__name__)

LPCM_SAMPLE_RATE = 48000
IAM_TOKEN_TTL_S = 3600.0


class YandexTTSProvider(HTTPTTSProvider):
    """Yandex SpeechKit synthesis over aiohttp"""

    API_BASE_URL = "https://tts.api.cloud.yandex.net/speech/v1/tts:synthesize"
    IAM_TOKEN_URL = "https://iam.api.cloud.yandex.net/iam/v1/tokens"

    provider_type = ProviderType.YANDEX
    max_text_length = 5000
    max_concurrency = 4
    default_voice = "jane"

    VOICE_CATALOG = {
        # Russian voices
        "jane": {"language": "ru-RU", "gender": "female"},
        "oksana": {"language": "ru-RU", "gender": "female"},
        "omazh": {"language": "ru-RU", "gender": "female"},
        "zahar": {"language": "ru-RU", "gender": "male"},
        "ermil": {"language": "ru-RU", "gender": "male"},
        "alena": {"language": "ru-RU", "gender": "female", "description": "Premium neural voice"},
        "filipp": {"language": "ru-RU", "gender": "male", "description": "Premium neural voice"},
        # English voices
        "john": {"language": "en-US", "gender": "male"},
        # Other
        "silaerkan": {"language": "kk-KZ", "gender": "male"},
        "lea": {"language": "de-DE", "gender": "female"},
    }
    STRICT_VOICE_CATALOG = True
    FORMAT_CODES = {
        AudioFormat.MP3: "mp3",
        AudioFormat.WAV: "lpcm",
    }

    def __init__(self, config, session_pool=None, token_cache: Optional[TokenCache] = None):
        super().__init__(config, session_pool)
        self._iam_tokens = token_cache or TokenCache(name="yandex-iam")

    @property
    def uses_iam(self) -> bool:
        return not self.config.credential("api_key") and bool(self.config.credential("oauth_token"))

    async def _authorization_header(self) -> str:
        if not self.uses_iam:
            return f"Api-Key {self.config.credential('api_key')}"
        token = await self._iam_tokens.get_or_refresh(self._fetch_iam_token)
        return f"Bearer {token}"

    async def _fetch_iam_token(self) -> Tuple[str, float]:
        payload = await self._request_json(
            "POST",
            self.IAM_TOKEN_URL,
            json_body={"yandexPassportOauthToken": self.config.credential("oauth_token")}
        )
        token = payload.get("iamToken") if isinstance(payload, dict) else None
        if not token:
            raise ProviderAuthenticationError("Yandex IAM exchange returned no token", provider=self.provider_name)
        return token, IAM_TOKEN_TTL_S

    def _synthesis_form(self, text: str, voice: str, options: Dict[str, Any]) -> Dict[str, str]:
        voice_info = self.VOICE_CATALOG.get(voice, {})
        form = {
            "text": text,
            "voice": voice,
            "lang": options.get("language") or self.config.option("language") or voice_info.get("language", "ru-RU"),
            "format": self.format_code,
        }
        if form["format"] == "lpcm":
            form["sampleRateHertz"] = str(LPCM_SAMPLE_RATE)

        for key in ("speed", "emotion"):
            value = options.get(key, self.config.option(key))
            if value is not None:
                form[key] = str(value)

        folder_id = self.config.credential("folder_id")
        if folder_id:
            form["folderId"] = folder_id
        return form

    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        headers = {"Authorization": await self._authorization_header()}
        form = self._synthesis_form(text, voice, options)

        audio = await self._request("POST", self.API_BASE_URL, headers=headers, data=form)
        if audio and form["format"] == "lpcm":
            audio = pcm_to_wav(audio, LPCM_SAMPLE_RATE)
        return audio

    def _http_error(self, status: int, body: bytes, headers) -> SynthesisError:
        if status == 401 and self.uses_iam:
            self._iam_tokens.invalidate()
        error = super()._http_error(status, body, headers)
        if isinstance(error, ProviderHTTPError):
            detail = self._error_detail(body)
            if detail.get("error_message"):
                error.context["vendor_message"] = detail["error_message"]
        return error

    async def _check_connectivity(self) -> None:
        # No voices endpoint on v1; a one-word synthesis is the cheapest authenticated call
        await self._synthesize_implementation("test", self.resolve_voice(None), {})
