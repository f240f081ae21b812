"""
speechbatch Exception Hierarchy

Design principles:
- SpeechBatchError: base for every engine error, carries error_code and context
- SynthesisError: provider-call failures, each subclass declares its
  ErrorClassification so retry policy and reporting read the same value
- ConfigurationValidationError / BatchInputError: rejected before a run starts
"""

from typing import Any, Dict, List, Optional, Sequence

from .interfaces import ErrorClassification


class SpeechBatchError(Exception):
    """
    Base exception for all speechbatch errors

    Provides consistent error interface with context information
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize speechbatch error

        Args:
            message: Human-readable error description
            error_code: Machine-readable error identifier
            context: Additional error context information
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "SPEECHBATCH_ERROR"
        self.context = context or {}

    def __str__(self) -> str:
        """String representation with context"""
        if self.context:
            return f"{self.message} (Code: {self.error_code}, Context: {self.context})"
        return f"{self.message} (Code: {self.error_code})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context
        }


class SynthesisError(SpeechBatchError):
    """
    Failure of a single provider synthesis call

    Subclasses pin `classification`; the error classifier reads it directly.
    """

    classification: Optional[ErrorClassification] = ErrorClassification.FATAL
    default_error_code = "SYNTHESIS_ERROR"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        hint: Optional[str] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        context = dict(context or {})
        if provider:
            context.setdefault("provider", provider)
        super().__init__(message, error_code or self.default_error_code, context)
        self.provider = provider
        self.hint = hint


class TransientProviderError(SynthesisError):
    """Timeouts, 5xx and other conditions that may clear on retry"""

    classification = ErrorClassification.TRANSIENT
    default_error_code = "PROVIDER_TRANSIENT"


class ProviderAuthenticationError(SynthesisError):
    """Rejected credentials (401/403-equivalent)"""

    classification = ErrorClassification.AUTHENTICATION
    default_error_code = "PROVIDER_AUTHENTICATION"


class QuotaExceededError(SynthesisError):
    """Vendor-specific quota or rate limit, optionally with a vendor-supplied delay"""

    classification = ErrorClassification.QUOTA_EXCEEDED
    default_error_code = "PROVIDER_QUOTA_EXCEEDED"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
        **kwargs
    ):
        super().__init__(message, provider=provider, **kwargs)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class InvalidInputError(SynthesisError):
    """Malformed request that no retry can fix"""

    classification = ErrorClassification.INVALID_INPUT
    default_error_code = "INVALID_INPUT"


class ProviderNotImplementedError(SynthesisError):
    """Provider id is known but no adapter is registered for it"""

    classification = ErrorClassification.NOT_IMPLEMENTED
    default_error_code = "PROVIDER_NOT_IMPLEMENTED"

    def __init__(self, provider: str, available_providers: Optional[Sequence[str]] = None):
        message = f"Provider '{provider}' has no registered adapter"
        if available_providers:
            message += f". Available providers: {', '.join(available_providers)}"
        super().__init__(
            message,
            provider=provider,
            context={"available_providers": list(available_providers or [])}
        )


class ProviderHTTPError(SynthesisError):
    """
    Non-2xx response from a vendor REST endpoint

    Classification is derived from the status code by the error classifier.
    """

    classification = None
    default_error_code = "PROVIDER_HTTP_ERROR"

    def __init__(
        self,
        provider: str,
        status: int,
        body: str = "",
        retry_after: Optional[float] = None
    ):
        message = f"{provider} returned HTTP {status}"
        if body:
            message += f": {body[:200]}"
        super().__init__(
            message,
            provider=provider,
            error_code=f"PROVIDER_HTTP_{status}",
            context={"status": status}
        )
        self.status = status
        self.body = body
        self.retry_after = retry_after


class ProviderNotFoundError(SpeechBatchError):
    """Provider name does not map to any known ProviderType"""

    def __init__(self, provider_name: str, available_providers: Optional[Sequence[str]] = None):
        message = f"Provider '{provider_name}' not found"
        if available_providers:
            message += f". Available providers: {', '.join(available_providers)}"
        super().__init__(
            message,
            "PROVIDER_NOT_FOUND",
            {"provider_name": provider_name, "available_providers": list(available_providers or [])}
        )
        self.provider_name = provider_name


class ConfigurationValidationError(SpeechBatchError):
    """Provider configuration failed validation; the batch must not start"""

    def __init__(self, provider: str, errors: List[str], warnings: Optional[List[str]] = None):
        message = f"Invalid configuration for provider '{provider}': {'; '.join(errors)}"
        super().__init__(
            message,
            "CONFIGURATION_INVALID",
            {"provider": provider, "errors": list(errors), "warnings": list(warnings or [])}
        )
        self.provider = provider
        self.errors = list(errors)
        self.warnings = list(warnings or [])


class BatchInputError(SpeechBatchError):
    """
    Batch rows rejected up front

    `row_errors` holds one RowError (row number and message) per problem;
    file-level problems are plain strings.
    """

    def __init__(self, row_errors: Sequence[Any]):
        self.row_errors = list(row_errors)
        count = len(self.row_errors)
        preview = "; ".join(str(err) for err in self.row_errors[:5])
        if count > 5:
            preview += f"; ... ({count - 5} more)"
        super().__init__(
            f"Batch rejected: {count} invalid row(s): {preview}",
            "BATCH_INPUT_INVALID",
            {"invalid_rows": count}
        )


class BatchStateError(SpeechBatchError):
    """Illegal batch state transition"""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot transition batch from '{current}' to '{requested}'",
            "BATCH_STATE_ERROR",
            {"current": current, "requested": requested}
        )
