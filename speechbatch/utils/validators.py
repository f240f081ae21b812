"""
speechbatch Validation Module.

Validation categories:
- Data validation: job text and artifact filename sanitisation
- Configuration validation: structural, credential-shape and environment
  checks for a ProviderConfig, without any network I/O
"""

import json
import logging
import os
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..core.config import ProviderConfig
from ..core.interfaces import ProviderType

logger = logging.getLogger(__name__)


class DataValidator:
    """Input data validation. SRP: Only data validation."""

    MAX_FILENAME_LENGTH = 120
    FALLBACK_FILENAME = "untitled"

    _CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
    _SEPARATORS = re.compile(r"[\\/]+")
    _DISALLOWED = re.compile(r"[^\w\-. ]")
    _AUDIO_SUFFIX = re.compile(r"\.(mp3|wav|ogg|opus|flac|m4a|aac|pcm)$", re.IGNORECASE)
    _RESERVED_NAMES = frozenset(
        ["CON", "PRN", "AUX", "NUL"]
        + [f"COM{i}" for i in range(1, 10)]
        + [f"LPT{i}" for i in range(1, 10)]
    )

    @classmethod
    def validate_text(cls, text: Any, max_length: int) -> Tuple[bool, List[str]]:
        """Validates text for TTS."""
        errors = []

        if not isinstance(text, str) or not text.strip():
            errors.append("Text is empty")
            return False, errors

        length = len(text.strip())
        if length > max_length:
            errors.append(f"Text too long: {length} chars (max: {max_length})")

        return len(errors) == 0, errors

    @classmethod
    def sanitize_filename(cls, name: Any, fallback: Optional[str] = None) -> str:
        """
        Turn an arbitrary base name into a safe single path component.

        Strips path separators, traversal sequences, control and reserved
        characters, drops a trailing audio extension and caps the length.
        """
        fallback = fallback or cls.FALLBACK_FILENAME
        if not name or not isinstance(name, str):
            return fallback

        text = unicodedata.normalize("NFKC", name)
        text = cls._CONTROL_CHARS.sub("", text)
        text = cls._SEPARATORS.sub("_", text)
        while ".." in text:
            text = text.replace("..", "")
        text = cls._AUDIO_SUFFIX.sub("", text.strip())
        text = cls._DISALLOWED.sub("", text)
        text = re.sub(r"\s+", "_", text)
        text = re.sub(r"_+", "_", text)
        text = text.strip("._- ")

        if len(text) > cls.MAX_FILENAME_LENGTH:
            text = text[:cls.MAX_FILENAME_LENGTH].rstrip("._- ")
        if not text:
            return fallback
        if text.split(".")[0].upper() in cls._RESERVED_NAMES:
            text = f"_{text}"
        return text


def sanitize_filename(name: Any, fallback: Optional[str] = None) -> str:
    return DataValidator.sanitize_filename(name, fallback)


@dataclass
class ValidationReport:
    """Outcome of a configuration check; warnings never block a run"""
    provider: str
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class CredentialRule:
    """Expected shape of one credential field"""
    name: str
    min_length: int = 8
    pattern: Optional[str] = None  # mismatch is reported as a warning
    required: bool = True
    description: str = ""


CREDENTIAL_RULES: Dict[ProviderType, Tuple[CredentialRule, ...]] = {
    ProviderType.OPENAI: (
        CredentialRule("api_key", 20, r"^sk-[A-Za-z0-9_\-]+$", description="OpenAI API key"),
    ),
    ProviderType.GOOGLE: (
        CredentialRule("credentials_path", 1, description="service-account JSON path"),
    ),
    ProviderType.YANDEX: (
        CredentialRule("api_key", 20, r"^AQVN[\w\-]+$", required=False, description="SpeechKit API key"),
        CredentialRule("oauth_token", 20, r"^(y[0-3]_|AQAAAA)[\w\-]+$", required=False,
                       description="Yandex OAuth token"),
        CredentialRule("folder_id", 20, r"^b1g[a-z0-9]{17}$", required=False, description="cloud folder id"),
    ),
    ProviderType.ELEVENLABS: (
        CredentialRule("api_key", 32, r"^(sk_)?[A-Za-z0-9]{32,}$", description="ElevenLabs API key"),
    ),
    ProviderType.AZURE: (
        CredentialRule("subscription_key", 32, r"^([A-Fa-f0-9]{32}|[A-Za-z0-9]{84})$",
                       description="Speech resource key"),
    ),
    ProviderType.DEEPGRAM: (
        CredentialRule("api_key", 32, r"^[A-Fa-f0-9]{40}$", description="Deepgram API key"),
    ),
}

# At least one field of each group must be present
REQUIRE_ONE_OF: Dict[ProviderType, Tuple[str, ...]] = {
    ProviderType.YANDEX: ("api_key", "oauth_token"),
}

AZURE_REGION_PATTERN = re.compile(r"^[a-z0-9]+$")


class ConfigurationValidator:
    """
    Validates a provider configuration before any call.

    Never touches the network, so it is cheap enough to run on every
    configuration change. Connectivity is checked separately through
    `test_connectivity`.
    """

    def __init__(self, registry=None):
        """
        Args:
            registry: ProviderRegistry used to look up adapters (default registry when omitted)
        """
        self._registry = registry

    @property
    def registry(self):
        if self._registry is None:
            from ..providers.factory import provider_registry
            self._registry = provider_registry
        return self._registry

    def validate(self, provider_id: ProviderType, config: ProviderConfig) -> ValidationReport:
        """
        Run structural, credential-format and environment checks

        Args:
            provider_id: Provider the caller intends to run
            config: Configuration bundle to check

        Returns:
            ValidationReport with errors (blocking) and warnings (informational)
        """
        report = ValidationReport(provider=provider_id.value)

        if config.provider_id is not provider_id:
            report.errors.append(
                f"Configuration is for '{config.provider_id.value}', not '{provider_id.value}'"
            )
            return report

        provider_class = None
        if not self.registry.is_registered(provider_id):
            report.errors.append(f"Provider '{provider_id.value}' has no registered adapter")
        else:
            provider_class = self.registry.resolve(provider_id)

        self._check_credentials(provider_id, config, report)
        self._check_provider_specific(provider_id, config, report)
        if provider_class is not None:
            self._check_capabilities(provider_class, config, report)
        self._check_environment(config, report)

        if report.errors:
            logger.debug("Configuration for %s invalid: %s", provider_id.value, report.errors)
        return report

    # Structural and format checks

    def _check_credentials(self, provider_id: ProviderType, config: ProviderConfig,
                           report: ValidationReport) -> None:
        for rule in CREDENTIAL_RULES.get(provider_id, ()):
            value = config.credential(rule.name)
            if value is None:
                if rule.required:
                    report.errors.append(f"Missing required credential '{rule.name}' ({rule.description})")
                continue

            if any(ch.isspace() for ch in value):
                report.errors.append(f"Credential '{rule.name}' contains whitespace")
            elif len(value) < rule.min_length:
                report.errors.append(
                    f"Credential '{rule.name}' is too short ({len(value)} < {rule.min_length} chars)"
                )
            elif rule.pattern and not re.match(rule.pattern, value):
                report.warnings.append(f"Credential '{rule.name}' does not look like a {rule.description}")

        group = REQUIRE_ONE_OF.get(provider_id)
        if group and not any(config.credential(name) for name in group):
            report.errors.append(f"One of credentials {', '.join(group)} is required")

    def _check_provider_specific(self, provider_id: ProviderType, config: ProviderConfig,
                                 report: ValidationReport) -> None:
        if provider_id is ProviderType.AZURE:
            if not config.region:
                report.errors.append("Azure requires a region (e.g. 'westeurope')")
            elif not AZURE_REGION_PATTERN.match(config.region):
                report.errors.append(f"Invalid Azure region: {config.region}")

        elif provider_id is ProviderType.YANDEX:
            if config.credential("oauth_token") and not config.credential("folder_id"):
                report.errors.append("Yandex OAuth authentication requires 'folder_id'")

        elif provider_id is ProviderType.GOOGLE:
            path = config.credential("credentials_path")
            if path:
                self._check_google_credentials_file(Path(path), report)

    @staticmethod
    def _check_google_credentials_file(path: Path, report: ValidationReport) -> None:
        if not path.is_file():
            report.errors.append(f"Google credentials file not found: {path}")
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            report.errors.append(f"Google credentials file is not valid JSON: {e}")
            return
        if not isinstance(data, dict) or data.get("type") != "service_account":
            report.errors.append("Google credentials file is not a service-account key")
            return
        missing = [key for key in ("client_email", "private_key") if not data.get(key)]
        if missing:
            report.errors.append(f"Google credentials file lacks: {', '.join(missing)}")

    @staticmethod
    def _check_capabilities(provider_class, config: ProviderConfig, report: ValidationReport) -> None:
        if config.audio_format not in provider_class.FORMAT_CODES:
            report.errors.append(
                f"Audio format '{config.audio_format.value}' not supported by {config.provider_name}"
            )

        if config.voice and provider_class.STRICT_VOICE_CATALOG and config.voice not in provider_class.VOICE_CATALOG:
            report.warnings.append(
                f"Voice '{config.voice}' is not in the {config.provider_name} catalog; it will be sent as-is"
            )
        if not config.voice:
            report.warnings.append(
                f"No voice configured; items without a voice option use '{provider_class.default_voice}'"
            )

    # Environment checks

    @staticmethod
    def _check_environment(config: ProviderConfig, report: ValidationReport) -> None:
        output_dir = Path(config.output_dir)

        if output_dir.exists():
            if not output_dir.is_dir():
                report.errors.append(f"Output path is not a directory: {output_dir}")
            elif not os.access(output_dir, os.W_OK | os.X_OK):
                report.errors.append(f"Output directory is not writable: {output_dir}")
            return

        parent = output_dir.absolute().parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        if parent.is_dir() and os.access(parent, os.W_OK | os.X_OK):
            report.warnings.append(f"Output directory {output_dir} does not exist and will be created")
        else:
            report.errors.append(f"Output directory {output_dir} cannot be created under {parent}")
