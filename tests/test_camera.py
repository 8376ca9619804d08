"""Tests for the OpenCV camera and the permission check."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest

from camz.camera.permissions import OpenCVCameraPermission
from camz.camera.tensor_camera import TensorCamera
from camz.config import Settings


def _capture(opened: bool = True, frame: np.ndarray | None = None) -> MagicMock:
    cap = MagicMock()
    cap.isOpened.return_value = opened
    cap.read.return_value = (frame is not None, frame)
    return cap


def _bgr_frame() -> np.ndarray:
    frame = np.zeros((1200, 1600, 3), dtype=np.uint8)
    frame[:, :, 0] = 255  # blue in BGR
    return frame


class TestTensorCamera:
    def test_open_configures_texture_size(self) -> None:
        cap = _capture()
        with patch("camz.camera.tensor_camera.cv2.VideoCapture", return_value=cap):
            camera = TensorCamera(texture_size=(1600, 1200))
            assert camera.open() is True

        assert camera.is_open
        assert cap.set.call_count == 2

    def test_open_falls_back_to_next_index(self) -> None:
        closed, opened = _capture(opened=False), _capture()
        with patch("camz.camera.tensor_camera.cv2.VideoCapture", side_effect=[closed, opened]):
            camera = TensorCamera(camera_index=0, fallback_indices=(1,))
            assert camera.open() is True
        closed.release.assert_called_once()

    def test_open_fails_without_devices(self) -> None:
        with patch("camz.camera.tensor_camera.cv2.VideoCapture", return_value=_capture(opened=False)):
            camera = TensorCamera(fallback_indices=())
            assert camera.open() is False
        assert camera.read_tensor() is None

    def test_read_tensor_resizes_and_converts(self) -> None:
        cap = _capture(frame=_bgr_frame())
        with patch("camz.camera.tensor_camera.cv2.VideoCapture", return_value=cap):
            camera = TensorCamera(tensor_size=(152, 200))
            camera.open()

        tensor = camera.read_tensor()

        assert tensor is not None
        assert tensor.shape == (200, 152, 3)
        assert tensor.dtype == np.uint8
        # blue ends up in the last channel once converted to RGB
        assert tensor[0, 0, 2] == 255
        assert tensor[0, 0, 0] == 0

    async def test_next_frame_none_on_read_failure(self) -> None:
        with patch("camz.camera.tensor_camera.cv2.VideoCapture", return_value=_capture(frame=None)):
            camera = TensorCamera()
            camera.open()
        assert await camera.next_frame() is None

    def test_preview_only_with_autorender(self) -> None:
        with patch("camz.camera.tensor_camera.cv2.VideoCapture", return_value=_capture(frame=_bgr_frame())):
            rendering = TensorCamera(autorender=True)
            rendering.open()
            silent = TensorCamera(autorender=False)
            silent.open()

        rendering.read_tensor()
        silent.read_tensor()

        jpeg = rendering.latest_preview_jpeg()
        assert jpeg is not None
        assert jpeg[:2] == b"\xff\xd8"
        assert silent.latest_preview_jpeg() is None

    def test_release_is_idempotent(self) -> None:
        cap = _capture()
        with patch("camz.camera.tensor_camera.cv2.VideoCapture", return_value=cap):
            camera = TensorCamera()
            camera.open()
        camera.release()
        camera.release()
        cap.release.assert_called_once()
        assert not camera.is_open

    def test_fps_tracks_read_rate(self) -> None:
        with (
            patch("camz.camera.tensor_camera.cv2.VideoCapture", return_value=_capture(frame=_bgr_frame())),
            patch("camz.camera.tensor_camera.time.monotonic", side_effect=[0.0, 0.1, 0.3]),
        ):
            camera = TensorCamera(fps_smoothing=0.9)
            camera.open()
            assert camera.fps == 0.0

            camera.read_tensor()
            assert camera.fps == pytest.approx(10.0)

            camera.read_tensor()
            assert camera.fps == pytest.approx(9.5)

    def test_from_settings(self) -> None:
        settings = Settings(tensor_width=64, tensor_height=48, camera_autorender=False)
        camera = TensorCamera.from_settings(settings)
        assert camera._tensor_width == 64
        assert camera._tensor_height == 48
        assert camera._autorender is False


class TestOpenCVCameraPermission:
    async def test_granted_when_device_opens(self) -> None:
        cap = _capture()
        with patch("camz.camera.permissions.cv2.VideoCapture", return_value=cap):
            assert await OpenCVCameraPermission(0).request_permission() is True
        cap.release.assert_called_once()

    async def test_denied_when_nothing_opens(self) -> None:
        with patch("camz.camera.permissions.cv2.VideoCapture", return_value=_capture(opened=False)) as ctor:
            assert await OpenCVCameraPermission(0, (1, 2)).request_permission() is False
        assert ctor.call_count == 3

    async def test_open_error_moves_to_next_index(self) -> None:
        opened = _capture()
        with patch(
            "camz.camera.permissions.cv2.VideoCapture", side_effect=[cv2.error("device busy"), opened]
        ) as ctor:
            assert await OpenCVCameraPermission(0, (1,)).request_permission() is True
        assert ctor.call_count == 2
        opened.release.assert_called_once()
