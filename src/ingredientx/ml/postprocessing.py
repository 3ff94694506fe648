"""Classifier output decoding and the confidence gate.

Raw scores are dequantized to real values, turned into a probability
distribution with a numerically stable softmax, and reduced to the single most
likely class.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from ingredientx.ml.errors import ShapeMismatchError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD: float = 0.10


@dataclass(frozen=True)
class QuantizationParams:
    """Per-tensor affine quantization: ``real = scale * (q - zero_point)``."""

    scale: float
    zero_point: int = 0


@dataclass(frozen=True)
class DecodedOutput:
    """Probability distribution plus the winning class."""

    probabilities: NDArray[np.float64]
    index: int
    confidence: float


def dequantize(scores: ArrayLike, quantization: QuantizationParams | None = None) -> NDArray[np.float64]:
    """Map raw classifier scores to real-valued pre-softmax scores.

    Integer scores use the given quantization parameters, or ``q / 255`` when
    none are configured. Floating-point scores pass through unchanged.
    """
    raw = np.asarray(scores)
    if not np.issubdtype(raw.dtype, np.integer):
        return raw.astype(np.float64)
    if quantization is None:
        return raw.astype(np.float64) / 255.0
    return quantization.scale * (raw.astype(np.float64) - quantization.zero_point)


def softmax(values: ArrayLike) -> NDArray[np.float64]:
    """Numerically stable softmax over a 1-D vector."""
    x = np.asarray(values, dtype=np.float64)
    if x.size == 0:
        raise ValueError("softmax of an empty vector")
    exps = np.exp(x - np.max(x))
    return exps / np.sum(exps)


def argmax(values: ArrayLike) -> int:
    """Index of the largest value; ties resolve to the lowest index."""
    # np.argmax returns the first occurrence of the maximum.
    return int(np.argmax(np.asarray(values)))


def passes_confidence_gate(probability: float, threshold: float = DEFAULT_CONFIDENCE_THRESHOLD) -> bool:
    """Return True if ``probability`` is confident enough to report.

    The boundary is inclusive: a probability exactly at the threshold passes.
    """
    return not probability < threshold


class OutputDecoder:
    """Turns a raw score vector into a :class:`DecodedOutput`."""

    def __init__(self, label_count: int, quantization: QuantizationParams | None = None) -> None:
        self._label_count = label_count
        self._quantization = quantization

    @property
    def label_count(self) -> int:
        return self._label_count

    def decode(self, scores: ArrayLike) -> DecodedOutput:
        """Decode raw scores.

        Raises:
            ShapeMismatchError: If the scores do not line up with the labels.
        """
        raw = np.asarray(scores).reshape(-1)
        if raw.size != self._label_count:
            raise ShapeMismatchError(f"Classifier returned {raw.size} scores for {self._label_count} labels")

        probabilities = softmax(dequantize(raw, self._quantization))
        probabilities.setflags(write=False)
        index = argmax(probabilities)
        if index >= self._label_count:
            raise ShapeMismatchError(f"Invalid class index {index} (max: {self._label_count - 1})")

        return DecodedOutput(
            probabilities=probabilities,
            index=index,
            confidence=float(probabilities[index]),
        )
