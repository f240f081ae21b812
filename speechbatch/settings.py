"""
Process-level settings read from the environment.

A project `.env` (searched from the working directory upwards) is loaded once
at import; explicit environment variables always win over it.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import SecretStr

_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(dotenv_path=_dotenv_path, override=False)


def _secret(name: str) -> Optional[SecretStr]:
    value = os.getenv(name)
    return SecretStr(value.strip()) if value and value.strip() else None


# Credential field name -> environment variable, per provider id
CREDENTIAL_ENV_VARS: Dict[str, Dict[str, str]] = {
    "openai": {"api_key": "OPENAI_API_KEY"},
    "google": {"credentials_path": "GOOGLE_APPLICATION_CREDENTIALS"},
    "yandex": {
        "api_key": "YANDEX_API_KEY",
        "oauth_token": "YANDEX_OAUTH_TOKEN",
        "folder_id": "YANDEX_FOLDER_ID",
    },
    "elevenlabs": {"api_key": "ELEVENLABS_API_KEY"},
    "azure": {"subscription_key": "AZURE_SPEECH_KEY"},
    "deepgram": {"api_key": "DEEPGRAM_API_KEY"},
}

REGION_ENV_VARS: Dict[str, str] = {
    "azure": "AZURE_SPEECH_REGION",
}


class Settings:
    """Environment-backed defaults for the engine and the CLI."""

    def __init__(self):
        self.PROJECT_NAME: str = os.getenv("SPEECHBATCH_PROJECT_NAME", "speechbatch")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FILE: Optional[str] = os.getenv("SPEECHBATCH_LOG_FILE") or None

        # Provider call defaults
        self.REQUEST_TIMEOUT: float = float(os.getenv("SPEECHBATCH_REQUEST_TIMEOUT", "30"))
        self.DEFAULT_AUDIO_FORMAT: str = os.getenv("SPEECHBATCH_AUDIO_FORMAT", "mp3").lower()
        self.OUTPUT_DIR: Path = Path(os.getenv("SPEECHBATCH_OUTPUT_DIR", "output"))

        # Retry policy
        self.RETRY_MAX_ATTEMPTS: int = int(os.getenv("SPEECHBATCH_RETRY_MAX_ATTEMPTS", "3"))
        self.RETRY_BASE_DELAY_MS: int = int(os.getenv("SPEECHBATCH_RETRY_BASE_DELAY_MS", "1000"))
        self.RETRY_CAP_MS: int = int(os.getenv("SPEECHBATCH_RETRY_CAP_MS", "30000"))

        # Batch scheduling
        self.MAX_CONCURRENCY: int = int(os.getenv("SPEECHBATCH_MAX_CONCURRENCY", "4"))
        self.PARALLEL_THRESHOLD: int = int(os.getenv("SPEECHBATCH_PARALLEL_THRESHOLD", "10"))
        self.INTER_ITEM_DELAY_MS: int = int(os.getenv("SPEECHBATCH_INTER_ITEM_DELAY_MS", "250"))

    def credentials_for(self, provider_id: str) -> Dict[str, SecretStr]:
        """Credentials present in the environment for one provider."""
        found = {}
        for field_name, env_name in CREDENTIAL_ENV_VARS.get(provider_id, {}).items():
            secret = _secret(env_name)
            if secret is not None:
                found[field_name] = secret
        return found

    def region_for(self, provider_id: str) -> Optional[str]:
        env_name = REGION_ENV_VARS.get(provider_id)
        if not env_name:
            return None
        value = os.getenv(env_name)
        return value.strip() if value else None


settings = Settings()
