"""Application runtime: owns every long-lived component and their startup/teardown order."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from camz.camera.permissions import OpenCVCameraPermission
from camz.camera.tensor_camera import TensorCamera
from camz.errors import ModelLoadError, PermissionDeniedError
from camz.loader import LoaderStatus, ModelLoader
from camz.loop.controller import ClassificationLoopController, LoopState
from camz.loop.scheduler import AsyncioFrameScheduler
from camz.ml.inference import InferencePool, PooledClassifier
from camz.ml.model_manager import OnnxModelManager

if TYPE_CHECKING:
    from camz.camera.permissions import PermissionProvider
    from camz.config import Settings
    from camz.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

APP_TITLE = "CamZ"
LOADING_TEXT = "Model is still Loading!"
CAMERA_CAPTION = "Point to any object and get its label"
RESUME_ACTION = "Check new predictions"


class ViewKind(StrEnum):
    LOADING = "loading"
    UNAVAILABLE = "unavailable"
    CAMERA = "camera"
    RESULT = "result"


@dataclass(frozen=True)
class ViewState:
    """What the screen should show right now."""

    kind: ViewKind
    message: str
    label: str | None = None
    confidence: float | None = None
    action: str | None = None


class AppRuntime:
    """Explicitly owned application context.

    ``initialize()`` completes the model load before the first loop
    iteration is scheduled; ``shutdown()`` stops the loop before releasing
    the camera and the inference resources.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        camera: TensorCamera | None = None,
        permission: PermissionProvider | None = None,
        manager: ModelManager | None = None,
        scheduler: AsyncioFrameScheduler | None = None,
    ) -> None:
        self.settings = settings
        self.pool = InferencePool(settings)
        self.manager = manager if manager is not None else OnnxModelManager(settings)
        self.camera = camera if camera is not None else TensorCamera.from_settings(settings)
        self.permission = (
            permission
            if permission is not None
            else OpenCVCameraPermission(settings.camera_index, settings.camera_fallback_indices)
        )
        self.loader = ModelLoader(self.permission, self.manager, settings)
        self.scheduler = scheduler if scheduler is not None else AsyncioFrameScheduler(settings.frame_interval)
        self.controller = ClassificationLoopController(
            self.scheduler,
            threshold=settings.confidence_threshold,
            top_k=settings.top_k,
        )
        self._closed = False

    async def initialize(self) -> None:
        """Load the model, open the camera and start scanning.

        Startup failures are terminal: they are logged, reflected in
        ``view()``, and not raised.
        """
        try:
            classifier = await self.loader.initialize()
        except (PermissionDeniedError, ModelLoadError) as exc:
            logger.warning("Camera view unavailable: %s", exc)
            return

        if self._closed:
            return
        if not await asyncio.to_thread(self.camera.open):
            logger.warning("Camera did not open; the loop will idle until frames arrive")
        self.controller.start(self.camera, PooledClassifier(classifier, self.pool))

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True

        self.controller.stop()
        self.scheduler.cancel_all()
        await asyncio.to_thread(self.camera.release)
        self.pool.shutdown()
        self.manager.shutdown()
        logger.info("Runtime shut down")

    def view(self) -> ViewState:
        status = self.loader.status
        if status in (LoaderStatus.PERMISSION_DENIED, LoaderStatus.FAILED):
            return ViewState(kind=ViewKind.UNAVAILABLE, message=self.loader.error or "Unavailable")
        if status is not LoaderStatus.READY:
            return ViewState(kind=ViewKind.LOADING, message=LOADING_TEXT)
        if self.controller.state is LoopState.RESULT_SHOWN:
            return ViewState(
                kind=ViewKind.RESULT,
                message=self.controller.label or "",
                label=self.controller.label,
                confidence=self.controller.confidence,
                action=RESUME_ACTION,
            )
        return ViewState(kind=ViewKind.CAMERA, message=CAMERA_CAPTION)
