"""
speechbatch Type Definitions and Protocol Interfaces

Small, focused enums and protocols shared by every layer of the engine:
- ProviderType: vendor identifiers used as registry keys
- AudioFormat: artifact formats the engine can write
- ErrorClassification: failure taxonomy that drives retry decisions
- BatchState / ExecutionMode: batch run state machine vocabulary
- ProgressReporter: consumer interface for progress sinks (UI, logs)
"""

from enum import Enum
from typing import Protocol, runtime_checkable


class ProviderType(Enum):
    """Speech-synthesis vendors known to the engine"""
    OPENAI = "openai"
    GOOGLE = "google"
    YANDEX = "yandex"
    ELEVENLABS = "elevenlabs"
    AZURE = "azure"
    DEEPGRAM = "deepgram"
    # Known vendor without an adapter; resolving it fails fast
    AMAZON_POLLY = "amazon_polly"


class AudioFormat(Enum):
    """Artifact formats; the value doubles as the file extension"""
    MP3 = "mp3"
    WAV = "wav"

    @property
    def extension(self) -> str:
        return self.value


class ErrorClassification(Enum):
    """Failure taxonomy attached to every synthesis failure"""
    TRANSIENT = "transient"
    AUTHENTICATION = "authentication"
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_INPUT = "invalid_input"
    FATAL = "fatal"
    NOT_IMPLEMENTED = "not_implemented"


class BatchState(Enum):
    """Batch run lifecycle states"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchState.COMPLETED, BatchState.PARTIALLY_FAILED, BatchState.CANCELLED)


class ExecutionMode(Enum):
    """How a batch dispatches its items"""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


@runtime_checkable
class ProgressReporter(Protocol):
    """
    Consumer interface for batch progress.

    Invoked after every JobResult and when an item is dispatched. Implementations
    may be plain callables or coroutines; the scheduler awaits coroutine results.
    """

    def on_progress(
        self,
        completed: int,
        total: int,
        succeeded: int,
        failed: int,
        current_item_label: str
    ) -> None:
        raise NotImplementedError
