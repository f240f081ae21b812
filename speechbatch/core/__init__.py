"""
speechbatch core: interfaces, exceptions, configuration models and data structures.
"""

from .error_classifier import ClassifiedError, classify_error, is_retryable
from .exceptions import (
    InvalidInputError,
    ProviderAuthenticationError,
    ProviderHTTPError,
    ProviderNotImplementedError,
    QuotaExceededError,
    SpeechBatchError,
    SynthesisError,
    TransientProviderError,
)
from .interfaces import AudioFormat, BatchState, ErrorClassification, ExecutionMode, ProviderType

__all__ = [
    "ClassifiedError",
    "classify_error",
    "is_retryable",
    "SpeechBatchError",
    "SynthesisError",
    "TransientProviderError",
    "ProviderAuthenticationError",
    "QuotaExceededError",
    "InvalidInputError",
    "ProviderNotImplementedError",
    "ProviderHTTPError",
    "AudioFormat",
    "BatchState",
    "ErrorClassification",
    "ExecutionMode",
    "ProviderType",
]
