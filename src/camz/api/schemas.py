"""Pydantic response schemas for the CamZ API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ViewResponse(BaseModel):
    """Current screen state."""

    title: str
    state: str = Field(description="One of 'loading', 'unavailable', 'camera' or 'result'")
    message: str = Field(description="Loading text, caption, error reason or the predicted label")
    label: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    action: str | None = Field(default=None, description="Label of the button that resumes scanning")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    loop_state: str
    loop_running: bool
    concurrent_requests: int
    queue_depth: int
    camera_fps: float = Field(ge=0.0, description="Smoothed camera read rate")


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    version: int
    alpha: float
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
