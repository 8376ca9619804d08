"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from camz.api.routes import router
from camz.config import get_settings
from camz.runtime import APP_TITLE, AppRuntime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the model in the background, tear down on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting CamZ (device=%s, model=%s, camera=%s, threshold=%s)",
        settings.device,
        settings.classifier_model,
        settings.camera_index,
        settings.confidence_threshold,
    )

    runtime = AppRuntime(settings)
    app.state.runtime = runtime
    # The view reports "loading" until this finishes.
    startup = asyncio.create_task(runtime.initialize(), name="camz-startup")

    yield

    logger.info("Shutting down CamZ")
    startup.cancel()
    await asyncio.gather(startup, return_exceptions=True)
    await runtime.shutdown()
    logger.info("CamZ shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=APP_TITLE,
        description="Point the camera at any object and get its label",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app on the configured host and port."""
    settings = get_settings()
    uvicorn.run("camz.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
