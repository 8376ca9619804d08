"""Shared fakes for driving the classification loop one frame at a time."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

import numpy as np
import pytest

from camz.ml.image_classifier import ClassificationResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from numpy.typing import NDArray


class ManualFrameScheduler:
    """Frame scheduler that only fires when the test calls ``tick()``."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.pending: dict[int, Callable[[], Awaitable[None]]] = {}
        self.requested = 0
        self.cancelled: list[int] = []

    def request_frame(self, callback: Callable[[], Awaitable[None]]) -> int:
        handle = next(self._ids)
        self.pending[handle] = callback
        self.requested += 1
        return handle

    def cancel_frame(self, handle: int) -> None:
        if self.pending.pop(handle, None) is not None:
            self.cancelled.append(handle)

    def cancel_all(self) -> None:
        self.pending.clear()

    async def tick(self) -> int:
        """Fire every callback pending at call time; return how many ran."""
        due = list(self.pending.items())
        self.pending.clear()
        for _, callback in due:
            await callback()
        return len(due)


class FakeFrameSource:
    """Yields the given frames in order, then None forever."""

    def __init__(self, frames: Sequence[NDArray[np.uint8] | None] = ()) -> None:
        self._frames = list(frames)
        self.served = 0
        self.fps = 0.0

    async def next_frame(self) -> NDArray[np.uint8] | None:
        if not self._frames:
            return None
        self.served += 1
        return self._frames.pop(0)

    # TensorCamera surface used by AppRuntime
    def open(self) -> bool:
        return True

    def release(self) -> None:
        self._frames.clear()

    def latest_preview_jpeg(self) -> bytes | None:
        return None


class ScriptedClassifier:
    """Async classifier that replays a script of results or exceptions."""

    def __init__(self, script: Sequence[list[ClassificationResult] | Exception]) -> None:
        self._script = list(script)
        self.calls = 0
        self.outstanding = 0
        self.max_outstanding = 0
        self.seen: list[NDArray[np.uint8]] = []

    async def classify(self, image: NDArray[np.uint8], top_k: int = 1) -> list[ClassificationResult]:
        self.calls += 1
        self.outstanding += 1
        self.max_outstanding = max(self.max_outstanding, self.outstanding)
        self.seen.append(image)
        try:
            step = self._script.pop(0) if self._script else []
            if isinstance(step, Exception):
                raise step
            return step[:top_k]
        finally:
            self.outstanding -= 1


def frame(value: int = 0) -> NDArray[np.uint8]:
    return np.full((200, 152, 3), value, dtype=np.uint8)


def prediction(label: str, confidence: float) -> list[ClassificationResult]:
    return [ClassificationResult(label=label, confidence=confidence)]


@pytest.fixture()
def scheduler() -> ManualFrameScheduler:
    return ManualFrameScheduler()
