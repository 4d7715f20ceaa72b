import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)

_NOTHING = object()


class DebounceGate:
    """
    Coalesces a fast-changing input into settled values.

    Every push restarts the quiet-period timer and replaces the pending value.
    Only the value still pending when the timer fires reaches ``on_settled``.
    Coroutine callbacks run as their own tasks, so the gate keeps accepting
    input while earlier settled values are still being processed.
    """

    def __init__(self, delay_ms: int, on_settled: Callable[[Any], Any]):
        self.delay = max(delay_ms, 0) / 1000
        self.on_settled = on_settled
        self._pending: Any = _NOTHING
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    def push(self, value) -> None:
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._pending = value
        self._timer = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending value without emitting it."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = _NOTHING

    def _fire(self) -> None:
        self._timer = None
        if self._pending is _NOTHING:
            return
        value, self._pending = self._pending, _NOTHING

        result = self.on_settled(value)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Settled-value handler failed: %s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait until every handler started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        self.cancel()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
