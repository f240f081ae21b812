"""
Shared fixtures: a scriptable in-memory provider, fake aiohttp sessions and
an instant sleep that records requested delays.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from speechbatch.batch.progress import NullProgressReporter
from speechbatch.batch.scheduler import BatchScheduler
from speechbatch.core.config import BatchSettings, ProviderConfig
from speechbatch.core.interfaces import AudioFormat, ProviderType
from speechbatch.providers.factory import ProviderRegistry
from speechbatch.providers.retry import RetryExecutor
from speechbatch.providers.tts.base_tts import BaseTTSProvider
from speechbatch.utils.validators import ConfigurationValidator

OPENAI_TEST_KEY = "sk-test0123456789abcdefghijkl"


class SleepRecorder:
    """Drop-in for asyncio.sleep that returns immediately and remembers delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FakeProvider(BaseTTSProvider):
    """
    In-memory provider.

    `script` maps an item text to a list of steps consumed one per call:
    an exception instance is raised, bytes are returned. Texts without a
    script synthesize to b"audio:<text>".
    """

    provider_type = ProviderType.OPENAI
    max_text_length = 200
    max_concurrency = 8
    default_voice = "alloy"
    FORMAT_CODES = {AudioFormat.MP3: "mp3", AudioFormat.WAV: "wav"}

    def __init__(self, config, script: Optional[Dict[str, list]] = None, latency: float = 0.0):
        super().__init__(config)
        self.script = {text: list(steps) for text, steps in (script or {}).items()}
        self.latency = latency
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.cleanup_calls = 0

    async def _synthesize_implementation(self, text: str, voice: str, options: Dict[str, Any]) -> bytes:
        self.calls.append((text, voice, dict(options)))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            steps = self.script.get(text)
            if steps:
                step = steps.pop(0)
                if isinstance(step, BaseException):
                    raise step
                return step
            return f"audio:{text}".encode("utf-8")
        finally:
            self.in_flight -= 1

    async def cleanup(self) -> None:
        self.cleanup_calls += 1
        await super().cleanup()


class FakeResponse:
    """Async context manager standing in for aiohttp.ClientResponse"""

    def __init__(self, status: int = 200, body: Any = b"", headers: Optional[Dict[str, str]] = None):
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        elif isinstance(body, str):
            body = body.encode("utf-8")
        self.status = status
        self._body = body
        self.headers = headers or {}

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeSession:
    """Records requests and replays queued FakeResponses (or raises queued exceptions)"""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.requests: List[Dict[str, Any]] = []
        self.closed = False
        self.leased = 0

    def request(self, method: str, url: str, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self):
        self.closed = True


def make_pool(session: FakeSession) -> MagicMock:
    """SessionPool double handing out one FakeSession"""
    pool = MagicMock()

    async def get_session():
        session.leased += 1
        return session

    async def release_session(released):
        assert released is session
        session.leased -= 1

    async def close():
        await session.close()

    pool.get_session = get_session
    pool.release_session = release_session
    pool.close = close
    return pool


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "out"


@pytest.fixture
def openai_config(output_dir) -> ProviderConfig:
    return ProviderConfig(
        provider_id=ProviderType.OPENAI,
        credentials={"api_key": OPENAI_TEST_KEY},
        voice="alloy",
        output_dir=output_dir,
    )


@pytest.fixture
def fake_registry() -> ProviderRegistry:
    return ProviderRegistry({ProviderType.OPENAI: FakeProvider})


@pytest.fixture
def scheduler(fake_registry, sleep_recorder) -> BatchScheduler:
    return BatchScheduler(
        registry=fake_registry,
        validator=ConfigurationValidator(fake_registry),
        retry_executor=RetryExecutor(max_attempts=3, base_delay_ms=1000, cap_ms=30_000, sleep=sleep_recorder),
        batch_settings=BatchSettings(max_concurrency=4, parallel_threshold=10, inter_item_delay_ms=100),
        reporter=NullProgressReporter(),
        sleep=sleep_recorder,
    )
