"""
ElevenLabs TTS Provider (REST over aiohttp)
"""

import logging
from typing import Any, Dict, List

from ...core.error_classifier import parse_retry_after
from ...core.exceptions import QuotaExceededError, SynthesisError
from ...core.interfaces import AudioFormat, ProviderType
from ...core.schemas import Voice
from ...utils.audio import pcm_to_wav
from .http_base import HTTPTTSProvider

logger = logging.getLogger(__name__)

PCM_SAMPLE_RATE = 44100


class ElevenLabsTTSProvider(HTTPTTSProvider):
    """ElevenLabs text-to-speech; voices are addressed by opaque voice_id"""

    API_BASE_URL = "https://api.elevenlabs.io/v1"
    DEFAULT_MODEL = "eleven_multilingual_v2"

    provider_type = ProviderType.ELEVENLABS
    max_text_length = 5000
    # Free and starter tiers reject more than two concurrent requests
    max_concurrency = 2
    MAX_CONNECTIONS_PER_HOST = 4
    default_voice = "21m00Tcm4TlvDq8ikWAM"

    VOICE_CATALOG = {
        "21m00Tcm4TlvDq8ikWAM": {"name": "Rachel", "gender": "female", "language": "en"},
        "EXAVITQu4vr4xnSDxMaL": {"name": "Sarah", "gender": "female", "language": "en"},
        "ErXwobaYiN019PkySvjV": {"name": "Antoni", "gender": "male", "language": "en"},
        "TxGEqnHWrfWFTfGW9XjX": {"name": "Josh", "gender": "male", "language": "en"},
    }
    FORMAT_CODES = {
        AudioFormat.MP3: "mp3_44100_128",
        AudioFormat.WAV: f"pcm_{PCM_SAMPLE_RATE}",
    }

    def _headers(self) -> Dict[str, str]:
        return {"xi-api-key": self.config.credential("api_key"), "Accept": "*/*"}

    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        body: Dict[str, Any] = {
            "text": text,
            "model_id": options.get("model") or self.config.option("model", self.DEFAULT_MODEL),
        }
        voice_settings = {}
        for key in ("stability", "similarity_boost", "style", "speed"):
            value = options.get(key, self.config.option(key))
            if value is not None:
                voice_settings[key] = self._float_option(key, value)
        if voice_settings:
            body["voice_settings"] = voice_settings

        format_code = self.format_code
        audio = await self._request(
            "POST",
            f"{self.API_BASE_URL}/text-to-speech/{voice}",
            headers=self._headers(),
            params={"output_format": format_code},
            json_body=body
        )
        if audio and format_code.startswith("pcm_"):
            audio = pcm_to_wav(audio, PCM_SAMPLE_RATE)
        return audio

    def _http_error(self, status: int, body: bytes, headers) -> SynthesisError:
        detail = self._error_detail(body).get("detail")
        if isinstance(detail, dict) and detail.get("status") in ("quota_exceeded", "payment_required"):
            # ElevenLabs reports exhausted character credits as 401
            return QuotaExceededError(
                f"ElevenLabs quota exceeded: {detail.get('message', '')}",
                provider=self.provider_name,
                retry_after=parse_retry_after(headers.get("Retry-After"))
            )
        return super()._http_error(status, body, headers)

    async def list_voices(self) -> List[Voice]:
        payload = await self._request_json("GET", f"{self.API_BASE_URL}/voices", headers=self._headers())
        voices = []
        for item in payload.get("voices", []) if isinstance(payload, dict) else []:
            labels = item.get("labels") or {}
            voices.append(Voice(
                voice_id=item["voice_id"],
                name=item.get("name", item["voice_id"]),
                language=labels.get("language") or labels.get("accent"),
                gender=labels.get("gender"),
                provider=self.provider_name,
                description=item.get("description"),
            ))
        return voices
