import asyncio
from unittest.mock import patch

import pytest

from speechbatch.batch.progress import CallbackProgressReporter
from speechbatch.batch.scheduler import (
    BatchScheduler,
    CancellationToken,
    heuristic_concurrency,
    resolve_concurrency,
)
from speechbatch.core.config import BatchSettings, ProviderConfig
from speechbatch.core.exceptions import (
    ConfigurationValidationError,
    InvalidInputError,
    ProviderAuthenticationError,
    ProviderNotImplementedError,
    TransientProviderError,
)
from speechbatch.core.interfaces import BatchState, ErrorClassification, ExecutionMode, ProviderType
from speechbatch.core.schemas import JobItem
from speechbatch.providers.factory import ProviderRegistry
from speechbatch.providers.retry import RetryExecutor

from .conftest import FakeProvider


def make_items(count, prefix="line"):
    return [JobItem(text=f"{prefix} {n}", target_file_base_name=f"{prefix}_{n}") for n in range(count)]


class TestConcurrencyResolution:

    def test_heuristic_is_clamped(self):
        assert heuristic_concurrency(1) == 2
        assert heuristic_concurrency(35) == 4
        assert heuristic_concurrency(1000) == 8

    def test_resolve_takes_the_minimum(self):
        assert resolve_concurrency(50, configured_max=5, provider_max=8, cpu_count=16) == 5
        assert resolve_concurrency(50, configured_max=16, provider_max=2, cpu_count=16) == 2
        assert resolve_concurrency(50, configured_max=16, provider_max=8, cpu_count=3) == 3
        assert resolve_concurrency(15, configured_max=16, provider_max=8, cpu_count=16) == 2


class TestBatchSchedulerSequential:

    @pytest.mark.asyncio
    async def test_three_items_all_succeed(self, scheduler, openai_config, output_dir):
        provider = FakeProvider(openai_config)

        run = await scheduler.run(make_items(3), openai_config, provider=provider)

        assert run.state is BatchState.COMPLETED
        assert run.mode is ExecutionMode.SEQUENTIAL
        assert (run.succeeded, run.total) == (3, 3)
        assert run.summary()["ratio"] == "3/3"
        assert set(run.results) == {0, 1, 2}
        for result in run.ordered_results():
            assert result.success
            assert result.output_path.parent == output_dir
            assert result.output_path.read_bytes() == f"audio:line {result.job_index}".encode()
        assert run.ordered_results()[0].output_path.name == "line_0_openai_alloy.mp3"

    @pytest.mark.asyncio
    async def test_invalid_input_item_partially_fails(self, scheduler, openai_config):
        provider = FakeProvider(openai_config, script={"line 1": [InvalidInputError("unsupported characters")]})

        run = await scheduler.run(make_items(3), openai_config, provider=provider)

        assert run.state is BatchState.PARTIALLY_FAILED
        assert (run.succeeded, run.failed) == (2, 1)
        failed = run.results[1]
        assert not failed.success
        assert failed.classification is ErrorClassification.INVALID_INPUT
        assert failed.attempts == 1
        assert run.summary()["failures"][0]["classification"] == "invalid_input"

    @pytest.mark.asyncio
    async def test_empty_text_fails_without_network_call(self, scheduler, openai_config):
        provider = FakeProvider(openai_config)
        items = [JobItem(text="   ", target_file_base_name="blank"), JobItem(text="ok", target_file_base_name="ok")]

        run = await scheduler.run(items, openai_config, provider=provider)

        assert run.results[0].classification is ErrorClassification.INVALID_INPUT
        assert [call[0] for call in provider.calls] == ["ok"]

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, scheduler, openai_config, sleep_recorder):
        provider = FakeProvider(openai_config, script={
            "line 0": [TransientProviderError("503"), TransientProviderError("503"), b"late audio"],
        })

        run = await scheduler.run(make_items(1), openai_config, provider=provider)

        result = run.results[0]
        assert result.success
        assert result.attempts == 3
        assert result.output_path.read_bytes() == b"late audio"
        assert sleep_recorder.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_inter_item_delay(self, scheduler, openai_config, sleep_recorder):
        await scheduler.run(make_items(3), openai_config, provider=FakeProvider(openai_config))

        assert sleep_recorder.delays == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_per_item_voice_override(self, scheduler, openai_config):
        provider = FakeProvider(openai_config)
        items = [JobItem(text="hi", target_file_base_name="hi", per_job_options={"voice": "nova", "speed": "1.5"})]

        run = await scheduler.run(items, openai_config, provider=provider)

        assert provider.calls == [("hi", "nova", {"speed": "1.5"})]
        assert run.results[0].output_path.name == "hi_openai_nova.mp3"

    @pytest.mark.asyncio
    async def test_name_collisions_get_suffix(self, scheduler, openai_config):
        items = [JobItem(text=f"t{n}", target_file_base_name="same") for n in range(3)]

        run = await scheduler.run(items, openai_config, provider=FakeProvider(openai_config))

        names = sorted(r.output_path.name for r in run.ordered_results())
        assert names == ["same_openai_alloy.mp3", "same_openai_alloy_1.mp3", "same_openai_alloy_2.mp3"]

    @pytest.mark.asyncio
    async def test_progress_events(self, fake_registry, sleep_recorder, openai_config):
        events = []
        scheduler = BatchScheduler(
            registry=fake_registry,
            retry_executor=RetryExecutor(sleep=sleep_recorder),
            batch_settings=BatchSettings(),
            reporter=CallbackProgressReporter(lambda *args: events.append(args)),
            sleep=sleep_recorder,
        )

        await scheduler.run(make_items(2), openai_config, provider=FakeProvider(openai_config))

        # One event at dispatch and one per result
        assert events == [
            (0, 2, 0, 0, "line_0"),
            (1, 2, 1, 0, "line_0"),
            (1, 2, 1, 0, "line_1"),
            (2, 2, 2, 0, "line_1"),
        ]

    @pytest.mark.asyncio
    async def test_failing_reporter_does_not_break_run(self, fake_registry, sleep_recorder, openai_config):
        def explode(*args):
            raise RuntimeError("ui gone")

        scheduler = BatchScheduler(
            registry=fake_registry,
            retry_executor=RetryExecutor(sleep=sleep_recorder),
            reporter=CallbackProgressReporter(explode),
            sleep=sleep_recorder,
        )

        run = await scheduler.run(make_items(2), openai_config, provider=FakeProvider(openai_config))
        assert run.state is BatchState.COMPLETED

    @pytest.mark.asyncio
    async def test_write_failure_becomes_fatal_result(self, scheduler, openai_config):
        provider = FakeProvider(openai_config)
        with patch("speechbatch.batch.output_writer.OutputWriter.write", side_effect=PermissionError("denied")):
            run = await scheduler.run(make_items(2), openai_config, provider=provider)

        assert run.state is BatchState.PARTIALLY_FAILED
        assert all(r.classification is ErrorClassification.FATAL for r in run.ordered_results())

    @pytest.mark.asyncio
    async def test_write_failure_keeps_retry_attempts(self, scheduler, openai_config):
        provider = FakeProvider(openai_config, script={
            "line 0": [TransientProviderError("503"), b"late audio"],
        })
        with patch("speechbatch.batch.output_writer.OutputWriter.write", side_effect=PermissionError("denied")):
            run = await scheduler.run(make_items(1), openai_config, provider=provider)

        result = run.results[0]
        assert result.classification is ErrorClassification.FATAL
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_malformed_numeric_option_is_invalid_input(self, scheduler, openai_config):
        class SpeedAware(FakeProvider):
            async def _synthesize_implementation(self, text, voice, options):
                if "speed" in options:
                    self._float_option("speed", options["speed"])
                return await super()._synthesize_implementation(text, voice, options)

        items = [
            JobItem("fine", "ok", {"speed": "1.5"}),
            JobItem("broken", "bad", {"speed": "fast"}),
        ]
        run = await scheduler.run(items, openai_config, provider=SpeedAware(openai_config))

        assert run.state is BatchState.PARTIALLY_FAILED
        bad = run.results[1]
        assert bad.classification is ErrorClassification.INVALID_INPUT
        assert bad.attempts == 1
        assert "speed" in bad.error.message


class TestBatchSchedulerParallel:

    @pytest.mark.asyncio
    async def test_fifty_items_never_exceed_concurrency(self, scheduler, openai_config):
        provider = FakeProvider(openai_config, latency=0.005)

        with patch("speechbatch.batch.scheduler.os.cpu_count", return_value=16):
            run = await scheduler.run(make_items(50), openai_config, provider=provider, concurrency=5)

        assert run.mode is ExecutionMode.PARALLEL
        assert run.concurrency_level == 5
        assert provider.peak_in_flight <= 5
        assert scheduler.peak_in_flight <= 5
        assert run.state is BatchState.COMPLETED
        assert len(run.results) == 50
        assert sorted(run.results) == list(range(50))

    @pytest.mark.asyncio
    async def test_provider_tolerance_caps_concurrency(self, scheduler, openai_config):
        class Cautious(FakeProvider):
            max_concurrency = 2

        provider = Cautious(openai_config, latency=0.001)
        with patch("speechbatch.batch.scheduler.os.cpu_count", return_value=16):
            run = await scheduler.run(make_items(40), openai_config, provider=provider, concurrency=8)

        assert run.concurrency_level == 2
        assert provider.peak_in_flight <= 2

    @pytest.mark.asyncio
    async def test_single_lane_provider_runs_sequentially(self, scheduler, openai_config):
        class SingleLane(FakeProvider):
            max_concurrency = 1

        run = await scheduler.run(make_items(20), openai_config, provider=SingleLane(openai_config))
        assert run.mode is ExecutionMode.SEQUENTIAL

    @pytest.mark.asyncio
    async def test_mixed_failures_in_parallel(self, scheduler, openai_config):
        provider = FakeProvider(openai_config, script={
            "line 3": [ProviderAuthenticationError("bad key")],
            "line 7": [InvalidInputError("bad text")],
        })
        with patch("speechbatch.batch.scheduler.os.cpu_count", return_value=4):
            run = await scheduler.run(make_items(12), openai_config, provider=provider)

        assert run.state is BatchState.PARTIALLY_FAILED
        assert (run.succeeded, run.failed, run.total) == (10, 2, 12)
        assert run.results[3].classification is ErrorClassification.AUTHENTICATION
        assert run.results[7].classification is ErrorClassification.INVALID_INPUT


class TestBatchSchedulerCancellation:

    @pytest.mark.asyncio
    async def test_cancel_before_start_skips_everything(self, scheduler, openai_config):
        token = CancellationToken()
        token.cancel()
        provider = FakeProvider(openai_config)

        run = await scheduler.run(make_items(3), openai_config, provider=provider, cancel_token=token)

        assert run.state is BatchState.CANCELLED
        assert provider.calls == []
        assert len(run.results) == 3
        assert all(r.cancelled for r in run.ordered_results())
        assert run.failed == 0

    @pytest.mark.asyncio
    async def test_cancel_mid_run_keeps_finished_results(self, fake_registry, openai_config):
        token = CancellationToken()

        def cancel_after_first(completed, total, succeeded, failed, label):
            if completed == 1:
                token.cancel()

        scheduler = BatchScheduler(
            registry=fake_registry,
            retry_executor=RetryExecutor(sleep=asyncio.sleep),
            batch_settings=BatchSettings(inter_item_delay_ms=100),
            reporter=CallbackProgressReporter(cancel_after_first),
        )

        run = await scheduler.run(
            make_items(4), openai_config, provider=FakeProvider(openai_config), cancel_token=token
        )

        assert run.state is BatchState.CANCELLED
        assert run.results[0].success
        assert [r.cancelled for r in run.ordered_results()] == [False, True, True, True]
        assert run.summary()["ratio"] == "1/4"

    @pytest.mark.asyncio
    async def test_parallel_cancel_leaves_in_flight_items_to_finish(self, scheduler, openai_config):
        token = CancellationToken()
        provider = FakeProvider(openai_config, latency=0.01)

        async def cancel_soon():
            await asyncio.sleep(0.015)
            token.cancel()

        with patch("speechbatch.batch.scheduler.os.cpu_count", return_value=4):
            canceller = asyncio.create_task(cancel_soon())
            run = await scheduler.run(make_items(40), openai_config, provider=provider, cancel_token=token)
            await canceller

        assert run.state is BatchState.CANCELLED
        assert len(run.results) == 40
        dispatched = [r for r in run.ordered_results() if not r.cancelled]
        assert dispatched and all(r.success for r in dispatched)
        assert len(provider.calls) == len(dispatched)

    @pytest.mark.asyncio
    async def test_deadline_triggers_cancellation(self, fake_registry, openai_config):
        scheduler = BatchScheduler(
            registry=fake_registry,
            retry_executor=RetryExecutor(sleep=asyncio.sleep),
            batch_settings=BatchSettings(inter_item_delay_ms=100),
        )

        run = await scheduler.run(
            make_items(5), openai_config, provider=FakeProvider(openai_config), deadline_s=0.05
        )

        assert run.state is BatchState.CANCELLED
        assert 1 <= run.succeeded < 5
        assert len(run.results) == 5


class TestBatchSchedulerStartup:

    @pytest.mark.asyncio
    async def test_invalid_config_raises_before_dispatch(self, scheduler, output_dir):
        config = ProviderConfig(provider_id=ProviderType.OPENAI, output_dir=output_dir)
        provider = FakeProvider(config)

        with pytest.raises(ConfigurationValidationError) as exc_info:
            await scheduler.run(make_items(2), config, provider=provider)

        assert any("api_key" in e for e in exc_info.value.errors)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_unimplemented_provider_fails_fast(self, scheduler, output_dir):
        config = ProviderConfig(provider_id=ProviderType.AMAZON_POLLY, output_dir=output_dir)

        with pytest.raises(ProviderNotImplementedError) as exc_info:
            await scheduler.run(make_items(2), config)

        assert exc_info.value.classification is ErrorClassification.NOT_IMPLEMENTED
        assert not output_dir.exists()

    @pytest.mark.asyncio
    async def test_provider_resolved_from_registry_and_cleaned_up(self, sleep_recorder, openai_config):
        created = []

        class Tracking(FakeProvider):
            def __init__(self, config, **kwargs):
                super().__init__(config, **kwargs)
                created.append(self)

        registry = ProviderRegistry({ProviderType.OPENAI: Tracking})
        scheduler = BatchScheduler(
            registry=registry, retry_executor=RetryExecutor(sleep=sleep_recorder), sleep=sleep_recorder
        )

        run = await scheduler.run(make_items(2), openai_config)

        assert run.state is BatchState.COMPLETED
        assert len(created) == 1
        assert created[0].cleanup_calls == 1

    @pytest.mark.asyncio
    async def test_caller_provider_is_not_cleaned_up(self, scheduler, openai_config):
        provider = FakeProvider(openai_config)
        await scheduler.run(make_items(1), openai_config, provider=provider)
        assert provider.cleanup_calls == 0

    @pytest.mark.asyncio
    async def test_empty_batch_completes(self, scheduler, openai_config):
        run = await scheduler.run([], openai_config, provider=FakeProvider(openai_config))
        assert run.state is BatchState.COMPLETED
        assert run.summary()["ratio"] == "0/0"
