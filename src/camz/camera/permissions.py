"""Camera permission checks."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

import cv2

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class PermissionProvider(Protocol):
    """Protocol for whatever grants access to the camera."""

    async def request_permission(self) -> bool:
        """Ask for camera access and return whether it was granted."""
        ...


class OpenCVCameraPermission:
    """Treats a camera as granted when the OS lets us open one of its device indices.

    On desktop platforms the operating system prompts (or refuses) the first
    time a process opens a capture device, so a successful open is the
    permission grant.
    """

    def __init__(self, camera_index: int, fallback_indices: Iterable[int] = ()) -> None:
        self._indices = [camera_index] + [idx for idx in fallback_indices if idx != camera_index]

    async def request_permission(self) -> bool:
        granted = await asyncio.to_thread(self._open_any)
        logger.info("permissions status: %s", "granted" if granted else "denied")
        return granted

    def _open_any(self) -> bool:
        for idx in self._indices:
            try:
                cap = cv2.VideoCapture(idx)
            except cv2.error as exc:
                logger.warning("Failed to open camera index %s: %s", idx, exc)
                continue
            try:
                if cap.isOpened():
                    return True
            finally:
                cap.release()
        return False
