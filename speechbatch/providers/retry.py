"""
Classified retry for provider calls.

RetryExecutor wraps exactly one operation: it classifies every failure and
only retries transient failures and quota hits, with capped exponential
backoff. It knows nothing about batches; the scheduler builds one executor
per run and shares it across workers.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from ..core.config import RetryPolicy
from ..core.error_classifier import ClassifiedError, classify_error
from ..core.interfaces import ErrorClassification

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Classifier = Callable[..., ClassifiedError]


@dataclass
class RetryOutcome(Generic[T]):
    """Result of an executed operation: value or classified failure, plus retry trail"""
    success: bool
    value: Optional[T] = None
    failure: Optional[ClassifiedError] = None
    attempts: int = 0
    delays_ms: List[int] = field(default_factory=list)


class RetryExecutor:
    """Stateless decorator around one async call with classified backoff"""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: int = 1000,
        cap_ms: int = 30_000,
        sleep: Optional[Sleep] = None,
        classifier: Classifier = classify_error
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.cap_ms = cap_ms
        self._sleep = sleep or asyncio.sleep
        self._classifier = classifier

    @classmethod
    def from_policy(cls, policy: RetryPolicy, sleep: Optional[Sleep] = None) -> "RetryExecutor":
        return cls(
            max_attempts=policy.max_attempts,
            base_delay_ms=policy.base_delay_ms,
            cap_ms=policy.cap_ms,
            sleep=sleep
        )

    @staticmethod
    def backoff_delay_ms(attempt: int, base_delay_ms: int, cap_ms: int) -> int:
        """min(cap, base * 2^(attempt-1)) for the failed attempt number (1-based)"""
        return int(min(cap_ms, base_delay_ms * (2 ** (attempt - 1))))

    def compute_delay_ms(
        self,
        attempt: int,
        failure: ClassifiedError,
        base_delay_ms: Optional[int] = None,
        cap_ms: Optional[int] = None
    ) -> int:
        base = self.base_delay_ms if base_delay_ms is None else base_delay_ms
        cap = self.cap_ms if cap_ms is None else cap_ms
        if failure.classification is ErrorClassification.QUOTA_EXCEEDED and failure.retry_after is not None:
            return int(min(cap, failure.retry_after * 1000))
        return self.backoff_delay_ms(attempt, base, cap)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        cap_ms: Optional[int] = None,
        label: str = "operation",
        provider: Optional[str] = None
    ) -> RetryOutcome[T]:
        """
        Run `operation` until it succeeds, fails permanently or attempts run out

        Args:
            operation: Zero-argument coroutine function performing one call
            max_attempts / base_delay_ms / cap_ms: Per-call overrides
            label: Name used in log lines
            provider: Provider name forwarded to the classifier for hints

        Returns:
            RetryOutcome; failures are returned, never raised
        """
        attempts_allowed = max_attempts or self.max_attempts
        delays: List[int] = []

        for attempt in range(1, attempts_allowed + 1):
            logger.debug("%s: attempt %s/%s", label, attempt, attempts_allowed)
            try:
                value = await operation()
            except Exception as e:
                failure = self._classifier(e, provider)
                remaining = attempt < attempts_allowed

                if failure.retryable and remaining:
                    delay_ms = self.compute_delay_ms(attempt, failure, base_delay_ms, cap_ms)
                    logger.warning(
                        "%s failed (attempt %s/%s, %s), retrying in %sms: %s",
                        label, attempt, attempts_allowed,
                        failure.classification.value, delay_ms, failure.message
                    )
                    delays.append(delay_ms)
                    await self._sleep(delay_ms / 1000.0)
                    continue

                self._log_final_failure(label, attempt, attempts_allowed, failure, e)
                return RetryOutcome(success=False, failure=failure, attempts=attempt, delays_ms=delays)

            logger.debug("%s succeeded on attempt %s/%s (delay 0ms)", label, attempt, attempts_allowed)
            return RetryOutcome(success=True, value=value, attempts=attempt, delays_ms=delays)

        # Unreachable: the loop always returns on its last attempt
        raise AssertionError("retry loop exited without an outcome")

    @staticmethod
    def _log_final_failure(
        label: str,
        attempt: int,
        attempts_allowed: int,
        failure: ClassifiedError,
        error: Exception
    ) -> None:
        if failure.classification is ErrorClassification.FATAL:
            logger.error(
                "%s failed with unexpected error (attempt %s/%s, delay 0ms): %s",
                label, attempt, attempts_allowed, failure.message,
                exc_info=(type(error), error, error.__traceback__)
            )
        elif failure.retryable:
            logger.error(
                "%s failed after %s attempts (%s): %s",
                label, attempt, failure.classification.value, failure.message
            )
        else:
            logger.warning(
                "%s failed (attempt %s/%s, %s, not retried, delay 0ms): %s | hint: %s",
                label, attempt, attempts_allowed,
                failure.classification.value, failure.message, failure.hint
            )


__all__ = ["RetryExecutor", "RetryOutcome"]
