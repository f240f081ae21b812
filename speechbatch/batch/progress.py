"""
Progress sinks for batch runs.

Anything with an `on_progress(completed, total, succeeded, failed, label)`
method satisfies the ProgressReporter protocol; the method may be a plain
function or a coroutine.
"""

import inspect
import logging
from typing import Any, Callable, Optional

from ..core.interfaces import ProgressReporter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int, int, str], Any]


class LoggingProgressReporter:
    """Logs one INFO line per progress event"""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._logger = log or logger

    def on_progress(self, completed: int, total: int, succeeded: int, failed: int,
                    current_item_label: str) -> None:
        percent = (completed / total * 100) if total else 100.0
        self._logger.info(
            "Progress %s/%s (%.0f%%) - ok: %s, failed: %s - %s",
            completed, total, percent, succeeded, failed, current_item_label
        )


class CallbackProgressReporter:
    """Adapts a plain callable (sync or async) to the reporter protocol"""

    def __init__(self, callback: ProgressCallback):
        self._callback = callback

    def on_progress(self, completed: int, total: int, succeeded: int, failed: int,
                    current_item_label: str) -> Any:
        return self._callback(completed, total, succeeded, failed, current_item_label)


class NullProgressReporter:
    def on_progress(self, completed: int, total: int, succeeded: int, failed: int,
                    current_item_label: str) -> None:
        return None


async def emit_progress(
    reporter: Optional[ProgressReporter],
    completed: int,
    total: int,
    succeeded: int,
    failed: int,
    current_item_label: str
) -> None:
    """
    Deliver one progress event.

    A failing reporter is logged and ignored; progress display must never
    change the outcome of a synthesis item.
    """
    if reporter is None:
        return
    try:
        result = reporter.on_progress(completed, total, succeeded, failed, current_item_label)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error("Progress reporter %r failed: %s", reporter, e, exc_info=True)
