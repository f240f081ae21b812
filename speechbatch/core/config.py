"""
speechbatch Configuration Models

Pydantic v2 models for everything a batch run reads:
- ProviderConfig: one provider's credentials and output settings, frozen so
  workers can share it without copying
- RetryPolicy: retry executor numbers
- BatchSettings: scheduler knobs (concurrency, thresholds, pacing)
"""

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from ..settings import Settings, settings as default_settings
from .interfaces import AudioFormat, ProviderType

MAX_REQUEST_TIMEOUT = 60.0


class RetryPolicy(BaseModel):
    """Retry executor configuration"""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per item, first call included")
    base_delay_ms: int = Field(default=1000, ge=0, le=60_000, description="Delay before the second attempt")
    cap_ms: int = Field(default=30_000, ge=0, le=300_000, description="Upper bound for any single delay")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        settings = settings or default_settings
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay_ms=settings.RETRY_BASE_DELAY_MS,
            cap_ms=settings.RETRY_CAP_MS
        )


class BatchSettings(BaseModel):
    """Batch scheduler configuration"""

    model_config = ConfigDict(frozen=True)

    max_concurrency: int = Field(default=4, ge=1, le=32, description="Configured worker ceiling")
    parallel_threshold: int = Field(default=10, ge=2, description="Item count that enables the worker pool")
    inter_item_delay_ms: int = Field(default=250, ge=100, description="Pause between sequential items")
    overwrite: bool = Field(default=False, description="Replace existing artifacts instead of suffixing")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BatchSettings":
        settings = settings or default_settings
        return cls(
            max_concurrency=settings.MAX_CONCURRENCY,
            parallel_threshold=settings.PARALLEL_THRESHOLD,
            inter_item_delay_ms=settings.INTER_ITEM_DELAY_MS
        )


class ProviderConfig(BaseModel):
    """
    Configuration bundle for one provider

    Constructed by the caller, validated once per run and then shared
    read-only by every worker.
    """

    model_config = ConfigDict(frozen=True)

    provider_id: ProviderType
    credentials: Mapping[str, str] = Field(
        default_factory=dict, validate_default=True, repr=False, description="Opaque vendor credentials"
    )
    region: Optional[str] = Field(default=None, description="Vendor region, where the vendor has one")
    voice: Optional[str] = Field(default=None, description="Default voice for items without an override")
    audio_format: AudioFormat = Field(default=AudioFormat.MP3, description="Artifact format")
    output_dir: Path = Field(default=Path("output"), description="Directory receiving artifacts")
    timeout: float = Field(
        default=30.0, gt=0, le=MAX_REQUEST_TIMEOUT, description="Per-call timeout in seconds"
    )
    advanced_options: Mapping[str, Any] = Field(
        default_factory=dict, validate_default=True, description="Vendor-specific extras"
    )

    @field_validator("credentials", mode="before")
    @classmethod
    def strip_credentials(cls, v):
        """Drop empty credential values and unwrap secrets"""
        if v is None:
            return {}
        cleaned = {}
        for key, value in dict(v).items():
            if hasattr(value, "get_secret_value"):
                value = value.get_secret_value()
            if value is None:
                continue
            value = str(value).strip()
            if value:
                cleaned[str(key)] = value
        return cleaned

    @field_validator("credentials", "advanced_options")
    @classmethod
    def freeze_mapping(cls, v):
        """Read-only view over a private copy; frozen=True only guards attributes"""
        return MappingProxyType(dict(v))

    @field_serializer("credentials", "advanced_options")
    def dump_mapping(self, v):
        return dict(v)

    @field_validator("region", "voice")
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @property
    def provider_name(self) -> str:
        return self.provider_id.value

    def credential(self, name: str) -> Optional[str]:
        return self.credentials.get(name)

    def option(self, name: str, default: Any = None) -> Any:
        return self.advanced_options.get(name, default)

    @classmethod
    def from_settings(
        cls,
        provider_id: ProviderType,
        settings: Optional[Settings] = None,
        **overrides: Any
    ) -> "ProviderConfig":
        """
        Build a configuration from environment-backed settings

        Args:
            provider_id: Provider to configure
            settings: Settings instance (module default when omitted)
            **overrides: Field values that take precedence over settings
        """
        settings = settings or default_settings
        values: Dict[str, Any] = {
            "provider_id": provider_id,
            "credentials": settings.credentials_for(provider_id.value),
            "region": settings.region_for(provider_id.value),
            "audio_format": AudioFormat(settings.DEFAULT_AUDIO_FORMAT),
            "output_dir": settings.OUTPUT_DIR,
            "timeout": min(settings.REQUEST_TIMEOUT, MAX_REQUEST_TIMEOUT),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
