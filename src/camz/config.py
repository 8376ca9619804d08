"""Environment-based configuration for CamZ."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from CAMZ_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CAMZ_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8083
    log_level: str = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    classifier_model: str = "mobilenet_v1_100_224"
    models_dir: str = "models"
    # None = weights and label files must already sit in models_dir
    models_repo_id: str | None = None

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency
    max_concurrent: int = Field(default=1, ge=1)

    # Camera capture
    camera_index: int = Field(default=0, ge=0)
    camera_fallback_indices: tuple[int, ...] = (1, 2, 3)
    camera_texture_width: int = Field(default=1600, ge=1)
    camera_texture_height: int = Field(default=1200, ge=1)
    camera_autorender: bool = True

    # Frame tensor handed to the classifier
    tensor_width: int = Field(default=152, ge=1)
    tensor_height: int = Field(default=200, ge=1)
    tensor_depth: Literal[3] = 3

    # Classification loop
    confidence_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    top_k: int = Field(default=1, ge=1)
    frame_interval: float = Field(default=1 / 60, ge=0.0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
