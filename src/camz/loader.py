"""Model loader: camera permission first, then the pretrained classifier."""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from camz.errors import ModelLoadError, PermissionDeniedError

if TYPE_CHECKING:
    from camz.camera.permissions import PermissionProvider
    from camz.config import Settings
    from camz.ml.image_classifier import ImageClassifier
    from camz.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class LoaderStatus(StrEnum):
    PENDING = "pending"
    LOADING = "loading"
    READY = "ready"
    PERMISSION_DENIED = "permission_denied"
    FAILED = "failed"


class ModelLoader:
    """Runs once at startup and hands out the process-wide classifier."""

    def __init__(self, permission: PermissionProvider, manager: ModelManager, settings: Settings) -> None:
        self._permission = permission
        self._manager = manager
        self._model_name = settings.classifier_model

        self._status = LoaderStatus.PENDING
        self._has_permission: bool | None = None
        self._classifier: ImageClassifier | None = None
        self._error: str | None = None

    @property
    def status(self) -> LoaderStatus:
        return self._status

    @property
    def has_permission(self) -> bool | None:
        return self._has_permission

    @property
    def classifier(self) -> ImageClassifier | None:
        return self._classifier

    @property
    def error(self) -> str | None:
        return self._error

    async def initialize(self) -> ImageClassifier:
        """Request camera permission and load the classifier.

        Raises:
            PermissionDeniedError: If camera access was refused.
            ModelLoadError: If the runtime or the model failed to load.
        """
        if self._classifier is not None:
            return self._classifier

        self._status = LoaderStatus.LOADING
        try:
            self._has_permission = await self._permission.request_permission()
        except Exception as exc:
            self._has_permission = False
            self._fail(LoaderStatus.PERMISSION_DENIED, f"Camera permission request failed: {exc}")
            raise PermissionDeniedError(self._error) from exc
        if not self._has_permission:
            self._fail(LoaderStatus.PERMISSION_DENIED, "Camera permission denied")
            raise PermissionDeniedError(self._error)

        logger.info("Loading classifier %s", self._model_name)
        try:
            classifier = await asyncio.to_thread(self._manager.load_classifier, self._model_name)
        except Exception as exc:
            self._fail(LoaderStatus.FAILED, f"Failed to load {self._model_name}: {exc}")
            raise ModelLoadError(self._error) from exc

        self._classifier = classifier
        self._status = LoaderStatus.READY
        logger.info("Classifier %s ready", classifier.model_name)
        return classifier

    def _fail(self, status: LoaderStatus, message: str) -> None:
        self._status = status
        self._error = message
        logger.error(message)
