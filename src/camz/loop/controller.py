"""Classification loop controller.

Pulls one frame per animation frame, classifies it (top-1 by default), and
freezes on the first prediction whose confidence is strictly above the
threshold. Scanning resumes only through ``reset()``.

The next frame is requested only after the current classifier call has
resolved, so at most one call is ever in flight and frames are classified
in the order the camera yields them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from camz.errors import LoopStateError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    import numpy as np
    from numpy.typing import NDArray

    from camz.camera.tensor_camera import FrameSource
    from camz.loop.scheduler import FrameScheduler
    from camz.ml.image_classifier import ClassificationResult

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD: float = 0.2


class LoopState(StrEnum):
    SCANNING = "scanning"
    RESULT_SHOWN = "result_shown"


class AsyncClassifier(Protocol):
    """Classifier contract consumed by the loop."""

    async def classify(self, image: NDArray[np.uint8], top_k: int = 1) -> Sequence[ClassificationResult]:
        """Return up to ``top_k`` predictions, highest confidence first."""
        ...


@dataclass(frozen=True)
class LoopSnapshot:
    """Point-in-time view of the loop, handed to change listeners."""

    state: LoopState
    label: str | None
    confidence: float | None
    running: bool
    iterations: int


class ClassificationLoopController:
    """State machine that drives frame classification until a confident label shows up."""

    def __init__(
        self,
        scheduler: FrameScheduler,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        top_k: int = 1,
        on_change: Callable[[LoopSnapshot], None] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._threshold = threshold
        self._top_k = top_k
        self._on_change = on_change

        self._state = LoopState.SCANNING
        self._label: str | None = None
        self._confidence: float | None = None

        self._frame_source: FrameSource | None = None
        self._classifier: AsyncClassifier | None = None
        self._handle: int | None = None
        self._active = False
        # Bumped on every start so iterations from an earlier run cannot reschedule.
        self._generation = 0
        self._in_flight = False
        self._iterations = 0

    # -- Public API ---------------------------------------------------------

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def label(self) -> str | None:
        return self._label

    @property
    def confidence(self) -> float | None:
        return self._confidence

    @property
    def running(self) -> bool:
        return self._active

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def iterations(self) -> int:
        return self._iterations

    def snapshot(self) -> LoopSnapshot:
        return LoopSnapshot(
            state=self._state,
            label=self._label,
            confidence=self._confidence,
            running=self._active,
            iterations=self._iterations,
        )

    def start(self, frame_source: FrameSource, classifier: AsyncClassifier) -> bool:
        """Begin scanning. Returns False when already running or a result is shown."""
        self._frame_source = frame_source
        self._classifier = classifier
        if self._active or self._state is not LoopState.SCANNING:
            return False

        self._active = True
        self._generation += 1
        # An iteration from the previous run is still awaiting its classifier;
        # it schedules the first frame of this run once it resolves.
        if not self._in_flight:
            self._schedule()
        logger.info("Classification loop started")
        return True

    def stop(self) -> None:
        """Cancel any pending frame. Safe to call in any state, any number of times."""
        self._active = False
        self._cancel_pending()

    def reset(self) -> None:
        """Clear the shown result and resume scanning.

        Raises:
            LoopStateError: If no result is currently shown.
        """
        if self._state is not LoopState.RESULT_SHOWN:
            raise LoopStateError(f"reset() requires {LoopState.RESULT_SHOWN}, loop is {self._state}")

        self._state = LoopState.SCANNING
        self._label = None
        self._confidence = None
        logger.info("Result cleared, scanning again")
        self._notify()

        if self._frame_source is not None and self._classifier is not None:
            self.start(self._frame_source, self._classifier)

    # -- Internal -----------------------------------------------------------

    def _schedule(self) -> None:
        generation = self._generation

        async def tick() -> None:
            await self._iterate(generation)

        self._handle = self._scheduler.request_frame(tick)

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._scheduler.cancel_frame(self._handle)
            self._handle = None

    def _is_current(self, generation: int) -> bool:
        return self._active and generation == self._generation

    async def _iterate(self, generation: int) -> None:
        self._handle = None
        if not self._is_current(generation):
            return

        frame_source, classifier = self._frame_source, self._classifier
        if frame_source is None or classifier is None:
            raise LoopStateError("Loop iterated before start() supplied a frame source and classifier")

        self._iterations += 1
        self._in_flight = True
        try:
            prediction = await self._predict(frame_source, classifier)
        finally:
            self._in_flight = False

        if not self._is_current(generation):
            if self._active and self._handle is None:
                self._schedule()
            return
        if prediction is not None and prediction.confidence > self._threshold:
            self._accept(prediction)
            return
        self._schedule()

    async def _predict(self, frame_source: FrameSource, classifier: AsyncClassifier) -> ClassificationResult | None:
        try:
            frame = await frame_source.next_frame()
        except Exception:
            logger.exception("Frame capture failed; skipping frame")
            return None
        if frame is None:
            return None

        try:
            predictions = await classifier.classify(frame, self._top_k)
        except Exception:
            logger.exception("Classification failed; skipping frame")
            return None

        logger.debug("prediction: %s", predictions)
        if not predictions:
            return None
        return predictions[0]

    def _accept(self, prediction: ClassificationResult) -> None:
        self._cancel_pending()
        self._active = False
        self._state = LoopState.RESULT_SHOWN
        self._label = prediction.label
        self._confidence = prediction.confidence
        logger.info("Prediction accepted: %s (%.2f)", prediction.label, prediction.confidence)
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())
