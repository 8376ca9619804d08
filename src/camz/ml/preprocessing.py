"""Image preprocessing for the classifier.

Turns an HxWx3 RGB uint8 frame tensor into the float32 batch a MobileNet
style ONNX model expects, and converts raw model scores to probabilities.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


def prepare_input(
    image: NDArray[np.uint8],
    input_size: int,
    mean: tuple[float, float, float],
    std: tuple[float, float, float],
    *,
    channels_last: bool,
) -> NDArray[np.float32]:
    """Resize and normalize an image into a batch of one.

    Args:
        image: HxWx3 RGB uint8 array (an alpha channel is dropped).
        input_size: Square side length the model was trained on.
        mean: Per-channel mean, applied after scaling to [0, 1].
        std: Per-channel standard deviation.
        channels_last: Emit NHWC when True, NCHW otherwise.

    Returns:
        float32 array of shape (1, S, S, 3) or (1, 3, S, S).

    Raises:
        ValueError: If the image is not a 3 or 4 channel HxWxC array.
    """
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise ValueError(f"Expected an HxWx3 image, got shape {image.shape}")
    if image.shape[2] == 4:
        image = np.ascontiguousarray(image[:, :, :3])

    resized = cv2.resize(image, (input_size, input_size), interpolation=cv2.INTER_LINEAR)
    scaled = resized.astype(np.float32) / 255.0
    normalized = (scaled - np.asarray(mean, dtype=np.float32)) / np.asarray(std, dtype=np.float32)

    if not channels_last:
        normalized = np.transpose(normalized, (2, 0, 1))
    return np.ascontiguousarray(normalized[np.newaxis, ...], dtype=np.float32)


def softmax(logits: NDArray[np.float32]) -> NDArray[np.float32]:
    """Numerically stable softmax over the last axis."""
    shifted = logits - np.max(logits, axis=-1, keepdims=True)
    exp = np.exp(shifted)
    return (exp / np.sum(exp, axis=-1, keepdims=True)).astype(np.float32)
