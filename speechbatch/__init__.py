"""
speechbatch - multi-provider speech synthesis batch engine

Turns an ordered list of scripts into audio files through one of several
cloud TTS vendors (OpenAI, Google, Yandex, ElevenLabs, Azure, Deepgram).

Key Features:
- Uniform async provider contract with typed, classified failures
- Retry with capped exponential backoff for transient and quota failures only
- Offline configuration validation before a batch starts
- Sequential or bounded worker-pool execution with progress and cancellation

Usage:
    from speechbatch import BatchScheduler, ProviderConfig, ProviderType, load_batch_file

    config = ProviderConfig.from_settings(ProviderType.OPENAI, voice="alloy")
    run = await BatchScheduler().run(load_batch_file("batch.csv"), config)
    print(run.format_summary())
"""

from .batch.input_loader import load_batch_file, parse_batch_rows
from .batch.progress import CallbackProgressReporter, LoggingProgressReporter
from .batch.scheduler import BatchScheduler, CancellationToken
from .core.config import BatchSettings, ProviderConfig, RetryPolicy
from .core.exceptions import (
    BatchInputError,
    ConfigurationValidationError,
    ProviderNotFoundError,
    SpeechBatchError,
    SynthesisError,
)
from .core.interfaces import AudioFormat, BatchState, ErrorClassification, ProviderType
from .core.schemas import BatchRun, JobItem, JobResult, Voice
from .providers.factory import ProviderRegistry, provider_registry
from .providers.retry import RetryExecutor

__version__ = "0.1.0"

__all__ = [
    # Scheduling
    "BatchScheduler",
    "CancellationToken",
    "load_batch_file",
    "parse_batch_rows",
    "LoggingProgressReporter",
    "CallbackProgressReporter",

    # Config
    "ProviderConfig",
    "RetryPolicy",
    "BatchSettings",

    # Data
    "JobItem",
    "JobResult",
    "BatchRun",
    "Voice",
    "AudioFormat",
    "BatchState",
    "ErrorClassification",
    "ProviderType",

    # Providers
    "ProviderRegistry",
    "provider_registry",
    "RetryExecutor",

    # Exceptions
    "SpeechBatchError",
    "SynthesisError",
    "ConfigurationValidationError",
    "BatchInputError",
    "ProviderNotFoundError",
]
