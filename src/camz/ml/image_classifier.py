"""Image classification: prediction type, classifier protocol and ONNX backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from camz.errors import ClassificationError
from camz.ml.preprocessing import prepare_input, softmax

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from camz.ml.model_manager import ModelSpec


@dataclass(frozen=True)
class ClassificationResult:
    """A single classification prediction."""

    label: str
    confidence: float


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def classify(self, image: NDArray[np.uint8], top_k: int = 1) -> list[ClassificationResult]:
        """Classify an image and return ranked labels.

        Args:
            image: HxWx3 RGB uint8 array.
            top_k: Number of highest-confidence classes to return.

        Returns:
            List of classification results sorted by confidence (descending).
        """
        ...


class OnnxImageClassifier:
    """ImageNet-style classifier backed by an ONNX Runtime session."""

    def __init__(self, spec: ModelSpec, session: InferenceSession, labels: Sequence[str]) -> None:
        self._spec = spec
        self._session = session
        # TF-slim checkpoints reserve index 0 for "background" in both scores and labels
        self._labels = list(labels)[1:] if spec.background_class else list(labels)
        self._input_name = session.get_inputs()[0].name

    @property
    def model_name(self) -> str:
        return self._spec.name

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    def classify(self, image: NDArray[np.uint8], top_k: int = 1) -> list[ClassificationResult]:
        if top_k <= 0:
            return []

        batch = prepare_input(
            image,
            self._spec.input_size,
            self._spec.mean,
            self._spec.std,
            channels_last=self._spec.channels_last,
        )
        try:
            outputs = self._session.run(None, {self._input_name: batch})
        except Exception as exc:
            raise ClassificationError(f"{self._spec.name} inference failed: {exc}") from exc

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if self._spec.outputs_logits:
            scores = softmax(scores)
        if self._spec.background_class:
            scores = scores[1:]

        if scores.shape[0] != len(self._labels):
            raise ClassificationError(
                f"{self._spec.name} produced {scores.shape[0]} scores for {len(self._labels)} labels"
            )

        k = min(top_k, scores.shape[0])
        # argpartition then sort only the k winners
        top = np.argpartition(-scores, k - 1)[:k]
        top = top[np.argsort(-scores[top], kind="stable")]
        return [ClassificationResult(label=self._labels[i], confidence=float(scores[i])) for i in top]
