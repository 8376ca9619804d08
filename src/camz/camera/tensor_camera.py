"""OpenCV camera that yields frames as classifier-ready tensors."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
import time
from typing import TYPE_CHECKING, Any, Protocol

import cv2

if TYPE_CHECKING:
    from collections.abc import Iterable

    import numpy as np
    from numpy.typing import NDArray

    from camz.config import Settings

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """Anything that hands out the next camera frame as a tensor."""

    async def next_frame(self) -> NDArray[np.uint8] | None:
        """Return the next HxWx3 RGB frame, or None when none is available."""
        ...


class TensorCamera:
    """Captures at the texture resolution and resizes each frame to the tensor resolution."""

    def __init__(
        self,
        camera_index: int = 0,
        texture_size: tuple[int, int] = (1600, 1200),
        tensor_size: tuple[int, int] = (152, 200),
        tensor_depth: int = 3,
        autorender: bool = True,
        fallback_indices: Iterable[int] = (1, 2, 3),
        fps_smoothing: float = 0.9,
        backend: int | None = None,
    ) -> None:
        self._camera_index = camera_index
        self._fallback_indices = list(fallback_indices)
        self._texture_width, self._texture_height = texture_size
        self._tensor_width, self._tensor_height = tensor_size
        self._tensor_depth = tensor_depth
        self._autorender = autorender
        self._fps_smoothing = max(0.0, min(fps_smoothing, 0.99))
        self._backend = backend
        if self._backend is None and sys.platform == "darwin":
            self._backend = cv2.CAP_AVFOUNDATION

        self._cap: Any = None
        self._lock = threading.Lock()
        self._preview: NDArray[np.uint8] | None = None
        self._last_ts = time.monotonic()
        self._fps = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> TensorCamera:
        return cls(
            camera_index=settings.camera_index,
            texture_size=(settings.camera_texture_width, settings.camera_texture_height),
            tensor_size=(settings.tensor_width, settings.tensor_height),
            tensor_depth=settings.tensor_depth,
            autorender=settings.camera_autorender,
            fallback_indices=settings.camera_fallback_indices,
        )

    @property
    def fps(self) -> float:
        return self._fps

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> bool:
        """Open the first device index that works. Returns False when none does."""
        with self._lock:
            if self.is_open:
                return True
            indices = [self._camera_index] + [idx for idx in self._fallback_indices if idx != self._camera_index]
            for idx in indices:
                cap = self._create_capture(idx)
                if cap is None:
                    continue
                if cap.isOpened():
                    cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._texture_width)
                    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._texture_height)
                    self._cap = cap
                    logger.info("Camera opened at index %s", idx)
                    return True
                cap.release()
        logger.error("No camera found. Try a different index or check permissions.")
        return False

    async def next_frame(self) -> NDArray[np.uint8] | None:
        return await asyncio.to_thread(self.read_tensor)

    def read_tensor(self) -> NDArray[np.uint8] | None:
        """Grab one frame and convert it to an RGB tensor of the configured size."""
        with self._lock:
            if self._cap is None or not self._cap.isOpened():
                return None
            ok, frame = self._cap.read()
        if not ok or frame is None:
            return None

        if self._autorender:
            self._preview = frame
        self._update_fps()

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        tensor = cv2.resize(rgb, (self._tensor_width, self._tensor_height), interpolation=cv2.INTER_AREA)
        return tensor[:, :, : self._tensor_depth]

    def latest_preview_jpeg(self, quality: int = 85) -> bytes | None:
        """Encode the most recent raw frame for the live preview."""
        frame = self._preview
        if frame is None:
            return None
        ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            return None
        return bytes(buf)

    def release(self) -> None:
        with self._lock:
            if self._cap is not None and self._cap.isOpened():
                self._cap.release()
            self._cap = None
        self._preview = None

    def _create_capture(self, index: int) -> Any:
        try:
            if self._backend is not None:
                return cv2.VideoCapture(index, self._backend)
            return cv2.VideoCapture(index)
        except cv2.error as exc:
            logger.warning("Failed to open camera index %s: %s", index, exc)
            return None

    def _update_fps(self) -> None:
        now = time.monotonic()
        dt = now - self._last_ts
        if dt > 0:
            inst = 1.0 / dt
            if self._fps == 0.0:
                self._fps = inst
            else:
                self._fps = (self._fps * self._fps_smoothing) + (inst * (1.0 - self._fps_smoothing))
        self._last_ts = now
