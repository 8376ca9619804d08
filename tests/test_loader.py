"""Tests for the model loader."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from camz.config import Settings
from camz.errors import ModelLoadError, PermissionDeniedError
from camz.loader import LoaderStatus, ModelLoader


class StaticPermission:
    def __init__(self, granted: bool) -> None:
        self.granted = granted
        self.requests = 0

    async def request_permission(self) -> bool:
        self.requests += 1
        return self.granted


def _manager(classifier: object | None = None, error: Exception | None = None) -> MagicMock:
    manager = MagicMock()
    if error is not None:
        manager.load_classifier.side_effect = error
    else:
        manager.load_classifier.return_value = classifier or MagicMock(model_name="mobilenet_v1_100_224")
    return manager


class TestModelLoader:
    async def test_initialize_returns_classifier(self) -> None:
        classifier = MagicMock(model_name="mobilenet_v1_100_224")
        manager = _manager(classifier)
        loader = ModelLoader(StaticPermission(True), manager, Settings())

        assert loader.status is LoaderStatus.PENDING
        handle = await loader.initialize()

        assert handle is classifier
        assert loader.status is LoaderStatus.READY
        assert loader.has_permission is True
        assert loader.classifier is classifier
        manager.load_classifier.assert_called_once_with("mobilenet_v1_100_224")

    async def test_initialize_runs_once(self) -> None:
        permission = StaticPermission(True)
        manager = _manager()
        loader = ModelLoader(permission, manager, Settings())

        first = await loader.initialize()
        second = await loader.initialize()

        assert first is second
        assert permission.requests == 1
        manager.load_classifier.assert_called_once()

    async def test_permission_denied_skips_model_load(self) -> None:
        manager = _manager()
        loader = ModelLoader(StaticPermission(False), manager, Settings())

        with pytest.raises(PermissionDeniedError):
            await loader.initialize()

        assert loader.status is LoaderStatus.PERMISSION_DENIED
        assert loader.has_permission is False
        assert loader.error == "Camera permission denied"
        manager.load_classifier.assert_not_called()

    async def test_model_failure_is_chained(self) -> None:
        cause = OSError("weights missing")
        loader = ModelLoader(StaticPermission(True), _manager(error=cause), Settings())

        with pytest.raises(ModelLoadError, match="weights missing") as excinfo:
            await loader.initialize()

        assert excinfo.value.__cause__ is cause
        assert loader.status is LoaderStatus.FAILED
        assert loader.classifier is None

    async def test_uses_configured_model(self) -> None:
        manager = _manager()
        loader = ModelLoader(StaticPermission(True), manager, Settings(classifier_model="mobilenet_v2_100_224"))
        await loader.initialize()
        manager.load_classifier.assert_called_once_with("mobilenet_v2_100_224")

    async def test_permission_request_error_is_terminal(self) -> None:
        class BrokenPermission:
            async def request_permission(self) -> bool:
                raise RuntimeError("camera backend crashed")

        manager = _manager()
        loader = ModelLoader(BrokenPermission(), manager, Settings())

        with pytest.raises(PermissionDeniedError, match="camera backend crashed") as excinfo:
            await loader.initialize()

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert loader.status is LoaderStatus.PERMISSION_DENIED
        assert loader.has_permission is False
        manager.load_classifier.assert_not_called()
