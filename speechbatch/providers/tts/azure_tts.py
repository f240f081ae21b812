"""
Azure Cognitive Services Speech TTS Provider

REST synthesis with SSML bodies. The subscription key is exchanged for a
bearer token that Azure honours for ten minutes; the token is cached per
adapter instance and refreshed a little before that.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from xml.sax.saxutils import escape, quoteattr

from ...core.exceptions import ProviderAuthenticationError, SynthesisError
from ...core.interfaces import AudioFormat, ProviderType
from ...core.schemas import Voice
from ...infrastructure.token_cache import TokenCache
from .http_base import HTTPTTSProvider

logger = logging.getLogger(__name__)

TOKEN_TTL_S = 540.0


class AzureTTSProvider(HTTPTTSProvider):
    """Azure neural voices over the regional REST endpoint"""

    TOKEN_URL = "https://{region}.api.cognitive.microsoft.com/sts/v1.0/issueToken"
    SYNTHESIS_URL = "https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"
    VOICES_URL = "https://{region}.tts.speech.microsoft.com/cognitiveservices/voices/list"
    USER_AGENT = "speechbatch"

    provider_type = ProviderType.AZURE
    max_text_length = 5000
    max_concurrency = 8
    default_voice = "en-US-JennyNeural"

    VOICE_CATALOG = {
        "en-US-JennyNeural": {"language": "en-US", "gender": "female"},
        "en-US-GuyNeural": {"language": "en-US", "gender": "male"},
        "en-GB-SoniaNeural": {"language": "en-GB", "gender": "female"},
        "ru-RU-SvetlanaNeural": {"language": "ru-RU", "gender": "female"},
        "ru-RU-DmitryNeural": {"language": "ru-RU", "gender": "male"},
        "de-DE-KatjaNeural": {"language": "de-DE", "gender": "female"},
    }
    FORMAT_CODES = {
        AudioFormat.MP3: "audio-24khz-48kbitrate-mono-mp3",
        AudioFormat.WAV: "riff-24khz-16bit-mono-pcm",
    }

    def __init__(self, config, session_pool=None, token_cache: Optional[TokenCache] = None):
        super().__init__(config, session_pool)
        # Refresh one minute early so in-flight calls never carry an expired token
        self._tokens = token_cache or TokenCache(name="azure-token", refresh_skew_s=60.0)

    def _url(self, template: str) -> str:
        return template.format(region=self.config.region)

    async def _fetch_token(self) -> Tuple[str, float]:
        body = await self._request(
            "POST",
            self._url(self.TOKEN_URL),
            headers={"Ocp-Apim-Subscription-Key": self.config.credential("subscription_key")}
        )
        token = body.decode("utf-8").strip()
        if not token:
            raise ProviderAuthenticationError("Azure issueToken returned an empty token", provider=self.provider_name)
        return token, TOKEN_TTL_S

    @staticmethod
    def build_ssml(text: str, voice: str, language: str, rate: Optional[str] = None,
                   pitch: Optional[str] = None) -> str:
        """Wrap plain text in SSML; text is XML-escaped"""
        content = escape(text)
        if rate or pitch:
            attrs = ""
            if rate:
                attrs += f" rate={quoteattr(str(rate))}"
            if pitch:
                attrs += f" pitch={quoteattr(str(pitch))}"
            content = f"<prosody{attrs}>{content}</prosody>"
        return (
            f"<speak version='1.0' xml:lang={quoteattr(language)}>"
            f"<voice name={quoteattr(voice)}>{content}</voice>"
            f"</speak>"
        )

    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        token = await self._tokens.get_or_refresh(self._fetch_token)
        language = options.get("language") or "-".join(voice.split("-")[:2])
        ssml = self.build_ssml(
            text,
            voice,
            language,
            rate=options.get("rate", self.config.option("rate")),
            pitch=options.get("pitch", self.config.option("pitch"))
        )

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/ssml+xml",
            "X-Microsoft-OutputFormat": self.format_code,
            "User-Agent": self.USER_AGENT,
        }
        return await self._request(
            "POST", self._url(self.SYNTHESIS_URL), headers=headers, data=ssml.encode("utf-8")
        )

    def _http_error(self, status: int, body: bytes, headers) -> SynthesisError:
        if status == 401:
            self._tokens.invalidate()
        return super()._http_error(status, body, headers)

    async def list_voices(self) -> List[Voice]:
        payload = await self._request_json(
            "GET",
            self._url(self.VOICES_URL),
            headers={"Ocp-Apim-Subscription-Key": self.config.credential("subscription_key")}
        )
        return [
            Voice(
                voice_id=item["ShortName"],
                name=item.get("DisplayName", item["ShortName"]),
                language=item.get("Locale"),
                gender=(item.get("Gender") or "").lower() or None,
                provider=self.provider_name,
                description=item.get("LocalName"),
            )
            for item in (payload if isinstance(payload, list) else [])
        ]
