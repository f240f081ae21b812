"""
Error classification for provider failures.

One pure mapping from raw exceptions to ErrorClassification, shared by the
retry executor and by user-facing reporting so the two never disagree.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import aiohttp

from .exceptions import ProviderHTTPError, QuotaExceededError, SynthesisError
from .interfaces import ErrorClassification

logger = logging.getLogger(__name__)

RETRYABLE_CLASSIFICATIONS = frozenset({
    ErrorClassification.TRANSIENT,
    ErrorClassification.QUOTA_EXCEEDED,
})

REMEDIATION_HINTS = {
    ErrorClassification.TRANSIENT: "Temporary provider or network problem; retry the item later.",
    ErrorClassification.AUTHENTICATION: "Check the provider credentials and their permissions.",
    ErrorClassification.QUOTA_EXCEEDED: (
        "Provider quota or rate limit reached; lower the concurrency or wait for the quota to reset."
    ),
    ErrorClassification.INVALID_INPUT: "Fix the item text or options; retrying will not help.",
    ErrorClassification.FATAL: "Unexpected failure; see the log for the full traceback.",
    ErrorClassification.NOT_IMPLEMENTED: "Choose a provider that has a registered adapter.",
}

AUTH_HINTS = {
    "openai": "Set a valid OPENAI_API_KEY (sk-...) with access to the audio API.",
    "google": "Point GOOGLE_APPLICATION_CREDENTIALS at a service-account JSON with Text-to-Speech enabled.",
    "yandex": "Check YANDEX_API_KEY or YANDEX_OAUTH_TOKEN and that the folder id grants ai.speechkit-tts.user.",
    "elevenlabs": "Check ELEVENLABS_API_KEY in the ElevenLabs profile settings.",
    "azure": "Check AZURE_SPEECH_KEY and that AZURE_SPEECH_REGION matches the resource region.",
    "deepgram": "Check DEEPGRAM_API_KEY and that the key has the 'member' scope.",
}

# Body fragments vendors use when a 429 means a spent quota rather than a burst limit
QUOTA_MARKERS = ("quota", "insufficient_quota", "credits", "character_limit", "billing")

# Any other 5xx is transient too; statuses outside these sets are fatal
TRANSIENT_STATUSES = frozenset({408, 500, 502, 503, 504})
INVALID_INPUT_STATUSES = frozenset({400, 404, 413, 415, 422})
AUTH_STATUSES = frozenset({401, 403})


@dataclass(frozen=True)
class ClassifiedError:
    """Classified failure as carried on JobResults and retry outcomes"""
    classification: ErrorClassification
    message: str
    hint: Optional[str] = None
    retry_after: Optional[float] = None
    error_code: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return is_retryable(self.classification)

    def to_dict(self) -> dict:
        return {
            "classification": self.classification.value,
            "message": self.message,
            "hint": self.hint,
            "error_code": self.error_code,
            "error_type": self.error_type,
        }

    def __str__(self) -> str:
        return f"[{self.classification.value}] {self.message}"


def is_retryable(classification: ErrorClassification) -> bool:
    """Only transient failures and quota hits are worth another attempt."""
    return classification in RETRYABLE_CLASSIFICATIONS


def parse_retry_after(value: Any) -> Optional[float]:
    """
    Parse a Retry-After value (delta-seconds or HTTP-date) into seconds.

    Returns None when the value is missing or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return max(0.0, float(value))

    text = str(value).strip()
    if not text:
        return None
    try:
        return max(0.0, float(text))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def classify_http_status(
    status: int,
    body: str = "",
    retry_after: Optional[float] = None
) -> ErrorClassification:
    """Map an HTTP status (plus quota signals) to a classification."""
    if status in AUTH_STATUSES:
        return ErrorClassification.AUTHENTICATION
    if status == 429:
        lowered = (body or "").lower()
        if retry_after is not None or any(marker in lowered for marker in QUOTA_MARKERS):
            return ErrorClassification.QUOTA_EXCEEDED
        return ErrorClassification.TRANSIENT
    if status in TRANSIENT_STATUSES or status >= 500:
        return ErrorClassification.TRANSIENT
    if status in INVALID_INPUT_STATUSES:
        return ErrorClassification.INVALID_INPUT
    return ErrorClassification.FATAL


def remediation_hint(classification: ErrorClassification, provider: Optional[str] = None) -> str:
    if classification is ErrorClassification.AUTHENTICATION and provider in AUTH_HINTS:
        return AUTH_HINTS[provider]
    return REMEDIATION_HINTS[classification]


def classify_error(error: BaseException, provider: Optional[str] = None) -> ClassifiedError:
    """
    Map a raw failure to the engine's taxonomy.

    Args:
        error: Exception raised by a provider call (or by artifact writing)
        provider: Provider name, used for provider-specific remediation hints

    Returns:
        ClassifiedError with classification, message, hint and optional retry delay
    """
    error_type = type(error).__name__
    retry_after: Optional[float] = None
    error_code: Optional[str] = None
    hint: Optional[str] = None

    if isinstance(error, ProviderHTTPError):
        provider = provider or error.provider
        retry_after = error.retry_after
        classification = classify_http_status(error.status, error.body, retry_after)
        error_code = error.error_code
        message = error.message
    elif isinstance(error, SynthesisError):
        provider = provider or error.provider
        classification = error.classification or ErrorClassification.FATAL
        error_code = error.error_code
        message = error.message
        hint = error.hint
        if isinstance(error, QuotaExceededError):
            retry_after = error.retry_after
    elif isinstance(error, aiohttp.ClientResponseError):
        headers = error.headers or {}
        retry_after = parse_retry_after(headers.get("Retry-After"))
        classification = classify_http_status(error.status, error.message or "", retry_after)
        error_code = f"HTTP_{error.status}"
        message = f"HTTP {error.status}: {error.message}"
    elif isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        classification = ErrorClassification.TRANSIENT
        message = f"Request timed out ({error_type})"
    elif isinstance(error, (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, ConnectionError)):
        classification = ErrorClassification.TRANSIENT
        message = f"Connection failed: {error}"
    elif isinstance(error, NotImplementedError):
        classification = ErrorClassification.NOT_IMPLEMENTED
        message = str(error) or "Operation not implemented"
    else:
        classification = ErrorClassification.FATAL
        message = f"{error_type}: {error}"

    return ClassifiedError(
        classification=classification,
        message=message,
        hint=hint or remediation_hint(classification, provider),
        retry_after=retry_after,
        error_code=error_code,
        error_type=error_type,
    )


__all__ = [
    "ClassifiedError",
    "classify_error",
    "classify_http_status",
    "is_retryable",
    "parse_retry_after",
    "remediation_hint",
    "RETRYABLE_CLASSIFICATIONS",
]
