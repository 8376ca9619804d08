"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from camz.api.middleware import verify_api_key
from camz.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    ViewResponse,
)
from camz.errors import LoopStateError
from camz.ml.model_manager import MODEL_REGISTRY
from camz.runtime import APP_TITLE

if TYPE_CHECKING:
    from camz.runtime import AppRuntime, ViewState

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_runtime(request: Request) -> AppRuntime:
    runtime: AppRuntime = request.app.state.runtime
    return runtime


def _to_response(view: ViewState) -> ViewResponse:
    return ViewResponse(
        title=APP_TITLE,
        state=view.kind.value,
        message=view.message,
        label=view.label,
        confidence=view.confidence,
        action=view.action,
    )


@router.get(
    "/view",
    response_model=ViewResponse,
    summary="Current screen state",
)
async def get_view(request: Request) -> ViewResponse:
    """Return whether the app is loading, unavailable, scanning or showing a result."""
    return _to_response(_get_runtime(request).view())


@router.post(
    "/predictions/reset",
    response_model=ViewResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Check new predictions",
)
async def reset_prediction(request: Request) -> ViewResponse:
    """Dismiss the shown label and resume scanning."""
    runtime = _get_runtime(request)
    try:
        runtime.controller.reset()
    except LoopStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _to_response(runtime.view())


@router.get(
    "/preview.jpg",
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Latest camera frame",
)
async def preview(request: Request) -> Response:
    """Return the most recent camera frame as a JPEG."""
    jpeg = _get_runtime(request).camera.latest_preview_jpeg()
    if jpeg is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No camera frame available")
    return Response(content=jpeg, media_type="image/jpeg")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    runtime = _get_runtime(request)
    return HealthResponse(
        status="ok",
        gpu=runtime.settings.device == "cuda",
        models_loaded=runtime.manager.get_loaded_models(),
        loop_state=runtime.controller.state.value,
        loop_running=runtime.controller.running,
        concurrent_requests=runtime.pool.active_count,
        queue_depth=runtime.pool.queue_depth,
        camera_fps=runtime.camera.fps,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return available classifiers and which one is configured."""
    active = _get_runtime(request).settings.classifier_model
    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                version=spec.version,
                alpha=spec.alpha,
                status="active" if spec.name == active else "available",
                license=spec.license,
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
