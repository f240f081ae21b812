"""
speechbatch Data Structures

Job-level data carried between the scheduler, the retry executor and
progress sinks. JobItem and JobResult are immutable; BatchRun is the single
mutable record of a run and owns the state machine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import ProviderConfig
from .error_classifier import ClassifiedError
from .exceptions import BatchStateError
from .interfaces import BatchState, ErrorClassification, ExecutionMode

LABEL_PREVIEW_CHARS = 40


@dataclass(frozen=True)
class JobItem:
    """One text to synthesize and the base name of its artifact."""
    text: str
    target_file_base_name: str
    per_job_options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze the options so a shared item cannot be edited mid-run
        object.__setattr__(self, "per_job_options", MappingProxyType(dict(self.per_job_options)))

    @property
    def label(self) -> str:
        if self.target_file_base_name and self.target_file_base_name.strip():
            return self.target_file_base_name.strip()
        preview = " ".join((self.text or "").split())
        if len(preview) > LABEL_PREVIEW_CHARS:
            preview = preview[:LABEL_PREVIEW_CHARS - 3] + "..."
        return preview or "<empty>"


@dataclass(frozen=True)
class JobResult:
    """Outcome of one JobItem; produced exactly once per item."""
    job_index: int
    success: bool
    output_path: Optional[Path] = None
    error: Optional[ClassifiedError] = None
    byte_size: int = 0
    attempts: int = 0
    elapsed_ms: int = 0
    cancelled: bool = False

    @property
    def classification(self) -> Optional[ErrorClassification]:
        return self.error.classification if self.error else None

    @property
    def failed(self) -> bool:
        return not self.success and not self.cancelled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_index": self.job_index,
            "success": self.success,
            "output_path": str(self.output_path) if self.output_path else None,
            "error": self.error.to_dict() if self.error else None,
            "byte_size": self.byte_size,
            "attempts": self.attempts,
            "elapsed_ms": self.elapsed_ms,
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class Voice:
    """Voice offered by a provider."""
    voice_id: str
    name: str
    language: Optional[str] = None
    gender: Optional[str] = None
    provider: Optional[str] = None
    description: Optional[str] = None


_ALLOWED_TRANSITIONS = {
    BatchState.IDLE: {BatchState.RUNNING},
    BatchState.RUNNING: {BatchState.COMPLETED, BatchState.PARTIALLY_FAILED, BatchState.CANCELLED},
}


@dataclass
class BatchRun:
    """
    One execution of the scheduler over a list of JobItems.

    `results` is keyed by job_index and only ever grows; a run is terminal
    once it holds a result for every item.
    """
    items: Tuple[JobItem, ...]
    config: ProviderConfig
    concurrency_level: int = 1
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    state: BatchState = BatchState.IDLE
    results: Dict[int, JobResult] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def transition_to(self, state: BatchState) -> None:
        if state not in _ALLOWED_TRANSITIONS.get(self.state, set()):
            raise BatchStateError(self.state.value, state.value)
        self.state = state
        if state is BatchState.RUNNING:
            self.started_at = datetime.now()
        elif state.is_terminal:
            self.finished_at = datetime.now()

    def record(self, result: JobResult) -> None:
        if result.job_index in self.results:
            raise ValueError(f"Result for job {result.job_index} already recorded")
        self.results[result.job_index] = result

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def completed(self) -> int:
        return sum(1 for r in self.results.values() if not r.cancelled)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results.values() if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results.values() if r.failed)

    @property
    def cancelled(self) -> int:
        return sum(1 for r in self.results.values() if r.cancelled)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def ordered_results(self) -> List[JobResult]:
        return [self.results[i] for i in sorted(self.results)]

    def failures(self) -> List[JobResult]:
        return [r for r in self.ordered_results() if r.failed]

    def summary(self) -> Dict[str, Any]:
        """Run summary: succeeded/total plus every failure's classification and message."""
        return {
            "provider": self.config.provider_name,
            "state": self.state.value,
            "mode": self.mode.value,
            "concurrency_level": self.concurrency_level,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "ratio": f"{self.succeeded}/{self.total}",
            "duration_seconds": self.duration_seconds,
            "failures": [
                {
                    "job_index": r.job_index,
                    "label": self.items[r.job_index].label,
                    "classification": r.error.classification.value if r.error else None,
                    "message": r.error.message if r.error else None,
                    "hint": r.error.hint if r.error else None,
                }
                for r in self.failures()
            ],
        }

    def format_summary(self) -> str:
        lines = [f"{self.succeeded}/{self.total} succeeded ({self.state.value})"]
        if self.cancelled:
            lines.append(f"{self.cancelled} item(s) not dispatched (cancelled)")
        for failure in self.summary()["failures"]:
            lines.append(
                f"  #{failure['job_index']} {failure['label']}: "
                f"[{failure['classification']}] {failure['message']}"
            )
            if failure["hint"]:
                lines.append(f"      hint: {failure['hint']}")
        return "\n".join(lines)
