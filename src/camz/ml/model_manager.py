"""Model manager: locate, load and cache the pretrained classifier.

Weights and label files are read from ``models_dir`` by the filenames in
``MODEL_REGISTRY``. No public repository ships them under those names, so
by default they must be placed there by hand (for example a MobileNet v1
exported with tf2onnx, plus its 1001-line ImageNet label file). Setting
``CAMZ_MODELS_REPO_ID`` to a HuggingFace repo that holds the same files
enables downloading missing ones. The ONNX InferenceSession is created once
and the resulting classifier is kept alive for the rest of the process.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from camz.ml.image_classifier import OnnxImageClassifier

if TYPE_CHECKING:
    from camz.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for classifier lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> tuple[Path, Path]:
        """Ensure weights and labels are present and return both paths."""
        ...

    def load_classifier(self, model_name: str) -> OnnxImageClassifier:
        """Return the cached classifier, creating it on first use."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Drop all loaded classifiers."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------

_TF_MEAN = (0.5, 0.5, 0.5)
_TF_STD = (0.5, 0.5, 0.5)
_IMAGENET_MEAN = (0.485, 0.456, 0.406)
_IMAGENET_STD = (0.229, 0.224, 0.225)


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX classifier."""

    name: str
    filename: str
    labels_filename: str
    version: int
    alpha: float
    input_size: int
    mean: tuple[float, float, float]
    std: tuple[float, float, float]
    channels_last: bool
    outputs_logits: bool
    background_class: bool
    license: str


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "mobilenet_v1_100_224": ModelSpec(
        name="mobilenet_v1_100_224",
        filename="mobilenet_v1_1.0_224.onnx",
        labels_filename="imagenet_labels_1001.txt",
        version=1,
        alpha=1.0,
        input_size=224,
        mean=_TF_MEAN,
        std=_TF_STD,
        channels_last=True,
        outputs_logits=False,
        background_class=True,
        license="Apache-2.0",
    ),
    "mobilenet_v2_100_224": ModelSpec(
        name="mobilenet_v2_100_224",
        filename="mobilenet_v2_1.0_224.onnx",
        labels_filename="imagenet_labels_1001.txt",
        version=2,
        alpha=1.0,
        input_size=224,
        mean=_TF_MEAN,
        std=_TF_STD,
        channels_last=True,
        outputs_logits=False,
        background_class=True,
        license="Apache-2.0",
    ),
    "mobilenet_v2_torchvision": ModelSpec(
        name="mobilenet_v2_torchvision",
        filename="mobilenetv2-12.onnx",
        labels_filename="imagenet_labels_1000.txt",
        version=2,
        alpha=1.0,
        input_size=224,
        mean=_IMAGENET_MEAN,
        std=_IMAGENET_STD,
        channels_last=False,
        outputs_logits=True,
        background_class=False,
        license="Apache-2.0",
    ),
}


def read_labels(path: Path) -> list[str]:
    """Read one class label per line, skipping blank lines."""
    with path.open(encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip()]


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads weights, builds ONNX sessions and caches the classifiers."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._classifiers: dict[str, OnnxImageClassifier] = {}
        self._model_paths: dict[str, tuple[Path, Path]] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, model_name: str) -> tuple[Path, Path]:
        """Download weights and labels from HuggingFace if not already present locally."""
        spec = self._get_spec(model_name)

        if model_name in self._model_paths:
            weights, labels = self._model_paths[model_name]
            if weights.exists() and labels.exists():
                return weights, labels

        weights = self._download(spec.filename)
        labels = self._download(spec.labels_filename)
        self._model_paths[model_name] = (weights, labels)
        logger.info("Downloaded %s to %s", model_name, weights)
        return weights, labels

    def load_classifier(self, model_name: str) -> OnnxImageClassifier:
        """Return the cached classifier, creating its session if needed."""
        with self._lock:
            cached = self._classifiers.get(model_name)
            if cached is not None:
                return cached

        spec = self._get_spec(model_name)
        weights, labels_path = self.ensure_downloaded(model_name)
        session = InferenceSession(
            str(weights),
            sess_options=self._session_options,
            providers=self._providers,
        )
        classifier = OnnxImageClassifier(spec, session, read_labels(labels_path))

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._classifiers.get(model_name)
            if existing is not None:
                return existing
            self._classifiers[model_name] = classifier
            logger.info("Loaded classifier %s (%d labels)", model_name, len(classifier.labels))
            return classifier

    def get_loaded_models(self) -> list[str]:
        """Return names of models with live classifiers."""
        with self._lock:
            return list(self._classifiers.keys())

    def shutdown(self) -> None:
        """Drop all loaded classifiers."""
        with self._lock:
            self._classifiers.clear()
            logger.info("All classifiers released")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(model_name: str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown model: {model_name}") from None

    def _download(self, filename: str) -> Path:
        local = self._models_dir / filename
        if local.exists():
            return local
        if self._settings.models_repo_id is None:
            raise FileNotFoundError(
                f"{local} not found; place it in {self._models_dir} or set CAMZ_MODELS_REPO_ID to download it"
            )
        logger.info("Downloading %s from %s", filename, self._settings.models_repo_id)
        return Path(
            hf_hub_download(
                repo_id=self._settings.models_repo_id,
                filename=filename,
                local_dir=str(self._models_dir),
            )
        )

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
