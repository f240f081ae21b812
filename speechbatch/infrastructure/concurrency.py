"""
Bounded concurrency for in-flight provider calls.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:
    """Semaphore wrapper that also tracks current and peak in-flight operations"""

    def __init__(self, max_concurrency: int = 5):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_flight = 0
        self._peak_in_flight = 0

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            try:
                return await operation()
            finally:
                self._in_flight -= 1

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def available_slots(self) -> int:
        return self._max_concurrency - self._in_flight

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        return self._peak_in_flight
