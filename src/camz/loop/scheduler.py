"""Animation-frame scheduling on top of asyncio."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class FrameScheduler(Protocol):
    """Schedules a callback for the next display frame."""

    def request_frame(self, callback: Callable[[], Awaitable[None]]) -> int:
        """Run ``callback`` on the next frame and return a handle for cancelling it."""
        ...

    def cancel_frame(self, handle: int) -> None:
        """Cancel a pending frame. Unknown or already-fired handles are ignored."""
        ...


class AsyncioFrameScheduler:
    """Fires callbacks every ``interval`` seconds on the running event loop.

    Each fired callback runs as its own task; the scheduler holds a strong
    reference to it until it finishes.
    """

    def __init__(self, interval: float = 1 / 60) -> None:
        self._interval = interval
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def request_frame(self, callback: Callable[[], Awaitable[None]]) -> int:
        loop = asyncio.get_running_loop()
        handle = next(self._ids)
        self._pending[handle] = loop.call_later(self._interval, self._fire, handle, callback)
        return handle

    def cancel_frame(self, handle: int) -> None:
        timer = self._pending.pop(handle, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        """Cancel every pending frame and every callback still running."""
        for timer in self._pending.values():
            timer.cancel()
        self._pending.clear()
        for task in list(self._tasks):
            task.cancel()

    def _fire(self, handle: int, callback: Callable[[], Awaitable[None]]) -> None:
        if self._pending.pop(handle, None) is None:
            return
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Frame callback failed", exc_info=exc)
