"""
Deepgram Aura TTS Provider (REST over aiohttp)

The voice id is the Aura model name, e.g. 'aura-asteria-en'.
"""

import logging
from typing import Any, Dict

from ...core.interfaces import AudioFormat, ProviderType
from .http_base import HTTPTTSProvider

logger = logging.getLogger(__name__)


class DeepgramTTSProvider(HTTPTTSProvider):
    """Deepgram /v1/speak"""

    API_URL = "https://api.deepgram.com/v1/speak"
    PROJECTS_URL = "https://api.deepgram.com/v1/projects"

    provider_type = ProviderType.DEEPGRAM
    max_text_length = 2000
    max_concurrency = 5
    default_voice = "aura-asteria-en"

    VOICE_CATALOG = {
        "aura-asteria-en": {"name": "Asteria", "language": "en-US", "gender": "female"},
        "aura-luna-en": {"name": "Luna", "language": "en-US", "gender": "female"},
        "aura-stella-en": {"name": "Stella", "language": "en-US", "gender": "female"},
        "aura-athena-en": {"name": "Athena", "language": "en-GB", "gender": "female"},
        "aura-orion-en": {"name": "Orion", "language": "en-US", "gender": "male"},
        "aura-arcas-en": {"name": "Arcas", "language": "en-US", "gender": "male"},
        "aura-helios-en": {"name": "Helios", "language": "en-GB", "gender": "male"},
        "aura-zeus-en": {"name": "Zeus", "language": "en-US", "gender": "male"},
    }
    STRICT_VOICE_CATALOG = True
    FORMAT_CODES = {
        AudioFormat.MP3: "mp3",
        AudioFormat.WAV: "linear16",
    }

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Token {self.config.credential('api_key')}"}

    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        encoding = self.format_code
        params = {"model": voice, "encoding": encoding}
        if encoding == "linear16":
            params["container"] = "wav"
            params["sample_rate"] = "24000"

        return await self._request(
            "POST", self.API_URL, headers=self._headers(), params=params, json_body={"text": text}
        )

    async def _check_connectivity(self) -> None:
        await self._request_json("GET", self.PROJECTS_URL, headers=self._headers())
