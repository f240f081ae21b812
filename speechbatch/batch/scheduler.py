"""
Batch Scheduler

Drives a list of JobItems through one provider:

    IDLE -> RUNNING -> COMPLETED | PARTIALLY_FAILED | CANCELLED

Small batches (or providers that tolerate no parallelism) run sequentially
with a fixed pause between items. Larger batches run on a bounded pool of
asyncio worker tasks pulling from a shared queue. Either way each item goes
through the retry executor, successful audio is written to disk, and the
JobResult is recorded and reported under one lock.
"""

import asyncio
import logging
import math
import os
import threading
import time
from functools import partial
from typing import Iterable, Optional

from ..core.config import BatchSettings, ProviderConfig, RetryPolicy
from ..core.error_classifier import classify_error
from ..core.exceptions import ConfigurationValidationError
from ..core.interfaces import BatchState, ExecutionMode, ProgressReporter
from ..core.schemas import BatchRun, JobItem, JobResult
from ..infrastructure.concurrency import ConcurrencyLimiter
from ..providers.factory import ProviderRegistry, provider_registry
from ..providers.retry import RetryExecutor, Sleep
from ..providers.tts.base_tts import BaseTTSProvider
from ..utils.validators import ConfigurationValidator
from .output_writer import OutputWriter, build_output_name
from .progress import LoggingProgressReporter, emit_progress

logger = logging.getLogger(__name__)

MIN_HEURISTIC_CONCURRENCY = 2
MAX_HEURISTIC_CONCURRENCY = 8
ITEMS_PER_WORKER = 10


class CancellationToken:
    """
    Cooperative cancellation flag.

    Backed by threading.Event so a GUI thread or signal handler can cancel a
    run executing on an event loop in another thread. Checked before every
    dispatch; calls already in flight are allowed to finish.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.info("Batch cancellation requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


def heuristic_concurrency(item_count: int) -> int:
    """One worker per ten items, clamped to [2, 8]"""
    return max(MIN_HEURISTIC_CONCURRENCY, min(MAX_HEURISTIC_CONCURRENCY, math.ceil(item_count / ITEMS_PER_WORKER)))


def resolve_concurrency(
    item_count: int,
    configured_max: int,
    provider_max: int,
    cpu_count: Optional[int] = None
) -> int:
    """min(configured max, CPU count, provider tolerance, size heuristic), at least 1"""
    cpus = cpu_count or os.cpu_count() or 1
    return max(1, min(configured_max, cpus, provider_max, heuristic_concurrency(item_count)))


class BatchScheduler:
    """
    Runs batches against a single provider per run.

    Collaborators are injectable so runs can be driven with fake providers
    and instant sleeps.
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        validator: Optional[ConfigurationValidator] = None,
        retry_executor: Optional[RetryExecutor] = None,
        batch_settings: Optional[BatchSettings] = None,
        reporter: Optional[ProgressReporter] = None,
        sleep: Optional[Sleep] = None
    ):
        self.registry = registry or provider_registry
        self.validator = validator or ConfigurationValidator(self.registry)
        self._sleep = sleep or asyncio.sleep
        self.retry_executor = retry_executor or RetryExecutor.from_policy(RetryPolicy.from_settings(), sleep=sleep)
        self.batch_settings = batch_settings or BatchSettings.from_settings()
        self.reporter = reporter if reporter is not None else LoggingProgressReporter()
        self.peak_in_flight = 0

    async def run(
        self,
        items: Iterable[JobItem],
        config: ProviderConfig,
        provider: Optional[BaseTTSProvider] = None,
        concurrency: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        deadline_s: Optional[float] = None
    ) -> BatchRun:
        """
        Execute a batch to a terminal state

        Args:
            items: Ordered job items; results are keyed by their position
            config: Validated before anything is dispatched
            provider: Pre-built adapter (resolved from the registry when omitted)
            concurrency: Caller's preferred worker ceiling (overrides configured max)
            cancel_token: Shared flag polled before each dispatch
            deadline_s: Request cancellation after this many seconds

        Returns:
            The terminal BatchRun; item failures never raise

        Raises:
            ProviderNotImplementedError: Provider id has no adapter
            ConfigurationValidationError: Configuration is invalid
        """
        items = tuple(items)
        cancel_token = cancel_token or CancellationToken()

        owns_provider = provider is None
        if provider is None:
            provider_class = self.registry.resolve(config.provider_id)
        else:
            provider_class = type(provider)
            if provider.provider_type is not config.provider_id:
                raise ConfigurationValidationError(
                    config.provider_name,
                    [f"Adapter {provider_class.__name__} serves '{provider.provider_type.value}'"]
                )

        report = self.validator.validate(config.provider_id, config)
        for warning in report.warnings:
            logger.warning("%s config: %s", config.provider_name, warning)
        if not report.is_valid:
            raise ConfigurationValidationError(config.provider_name, report.errors, report.warnings)

        if provider is None:
            provider = self.registry.create(config)

        run = BatchRun(items=items, config=config)
        run.mode, run.concurrency_level = self._plan(len(items), provider_class, concurrency)
        run.transition_to(BatchState.RUNNING)
        logger.info(
            "Batch started: %s items via %s (%s, concurrency %s)",
            run.total, config.provider_name, run.mode.value, run.concurrency_level
        )

        deadline_handle = None
        if deadline_s is not None:
            deadline_handle = asyncio.get_running_loop().call_later(deadline_s, cancel_token.cancel)

        lock = asyncio.Lock()
        writer = OutputWriter(config.output_dir, overwrite=self.batch_settings.overwrite)
        try:
            if run.mode is ExecutionMode.PARALLEL:
                await self._run_parallel(run, provider, writer, lock, cancel_token)
            else:
                await self._run_sequential(run, provider, writer, lock, cancel_token)
        finally:
            if deadline_handle is not None:
                deadline_handle.cancel()
            if owns_provider:
                await provider.cleanup()

        self._finish(run, cancel_token)
        return run

    def _plan(self, item_count: int, provider_class, concurrency: Optional[int]):
        configured_max = concurrency or self.batch_settings.max_concurrency
        if item_count < self.batch_settings.parallel_threshold or provider_class.max_concurrency <= 1:
            return ExecutionMode.SEQUENTIAL, 1
        level = resolve_concurrency(item_count, configured_max, provider_class.max_concurrency)
        if level <= 1:
            return ExecutionMode.SEQUENTIAL, 1
        return ExecutionMode.PARALLEL, level

    async def _run_sequential(self, run: BatchRun, provider: BaseTTSProvider, writer: OutputWriter,
                              lock: asyncio.Lock, cancel_token: CancellationToken) -> None:
        delay_s = self.batch_settings.inter_item_delay_ms / 1000.0
        for index, item in enumerate(run.items):
            if index > 0:
                await self._sleep(delay_s)
            if cancel_token.is_cancelled:
                break
            result = await self._dispatch(run, index, item, provider, writer)
            await self._publish(run, result, lock)
        self.peak_in_flight = 1 if run.results else 0

    async def _run_parallel(self, run: BatchRun, provider: BaseTTSProvider, writer: OutputWriter,
                            lock: asyncio.Lock, cancel_token: CancellationToken) -> None:
        queue: asyncio.Queue = asyncio.Queue()
        for pair in enumerate(run.items):
            queue.put_nowait(pair)
        limiter = ConcurrencyLimiter(run.concurrency_level)

        async def worker() -> None:
            while not cancel_token.is_cancelled:
                try:
                    index, item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                result = await limiter.run(partial(self._dispatch, run, index, item, provider, writer))
                await self._publish(run, result, lock)

        workers = [
            asyncio.create_task(worker(), name=f"speechbatch-worker-{n}")
            for n in range(run.concurrency_level)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                task.cancel()
            self.peak_in_flight = limiter.peak_in_flight

    async def _dispatch(self, run: BatchRun, index: int, item: JobItem, provider: BaseTTSProvider,
                        writer: OutputWriter) -> JobResult:
        """Synthesize and write one item; every outcome becomes a JobResult"""
        await emit_progress(self.reporter, run.completed, run.total, run.succeeded, run.failed, item.label)

        label = f"item #{index} ({item.label})"
        options = dict(item.per_job_options)
        voice = provider.resolve_voice(options.pop("voice", None))
        start_time = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start_time) * 1000)

        attempts = 1
        try:
            outcome = await self.retry_executor.execute(
                partial(provider.synthesize, item.text, voice, options),
                label=label,
                provider=provider.provider_name
            )
            attempts = outcome.attempts
            if not outcome.success:
                return JobResult(
                    job_index=index, success=False, error=outcome.failure,
                    attempts=outcome.attempts, elapsed_ms=elapsed_ms()
                )

            file_name = build_output_name(
                item.target_file_base_name, provider.provider_name, voice, run.config.audio_format
            )
            path = await writer.write(file_name, outcome.value)
            return JobResult(
                job_index=index, success=True, output_path=path, byte_size=len(outcome.value),
                attempts=outcome.attempts, elapsed_ms=elapsed_ms()
            )
        except Exception as e:
            # Artifact write failures and anything raised outside the retried call
            failure = classify_error(e, provider.provider_name)
            logger.error("%s failed: %s", label, failure.message, exc_info=True)
            return JobResult(
                job_index=index, success=False, error=failure, attempts=attempts, elapsed_ms=elapsed_ms()
            )

    async def _publish(self, run: BatchRun, result: JobResult, lock: asyncio.Lock) -> None:
        async with lock:
            run.record(result)
            if result.success:
                logger.info("Item %s done: %s (%s bytes)", result.job_index, result.output_path, result.byte_size)
            await emit_progress(
                self.reporter, run.completed, run.total, run.succeeded, run.failed,
                run.items[result.job_index].label
            )

    @staticmethod
    def _finish(run: BatchRun, cancel_token: CancellationToken) -> None:
        skipped = [index for index in range(run.total) if index not in run.results]
        for index in skipped:
            run.record(JobResult(job_index=index, success=False, cancelled=True))

        if skipped and cancel_token.is_cancelled:
            state = BatchState.CANCELLED
        elif run.failed:
            state = BatchState.PARTIALLY_FAILED
        else:
            state = BatchState.COMPLETED
        run.transition_to(state)

        logger.info(
            "Batch finished: %s/%s succeeded, %s failed, %s cancelled (%s, %.2fs)",
            run.succeeded, run.total, run.failed, run.cancelled, state.value, run.duration_seconds or 0.0
        )
