"""Exception types raised across CamZ."""

from __future__ import annotations


class CamzError(RuntimeError):
    """Base class for CamZ errors."""


class PermissionDeniedError(CamzError):
    """Camera permission was refused; the camera view cannot be used."""


class ModelLoadError(CamzError):
    """The inference runtime or the classifier weights failed to load."""


class ClassificationError(CamzError):
    """A single classification call failed."""


class LoopStateError(CamzError):
    """A loop operation was invoked from a state that does not allow it."""
