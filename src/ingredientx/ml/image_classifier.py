"""Image classifier boundary.

The trained model is a black box: a uint8 ``(1, S, S, 3)`` tensor goes in, one
score per label comes out. Any backend that satisfies :class:`ImageClassifier`
can drive the pipeline; :class:`OnnxImageClassifier` wraps ONNX Runtime.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Protocol

import numpy as np

from ingredientx.ml.errors import InferenceError, ModelConfigError

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

logger = logging.getLogger(__name__)

Dim = int | None

_ORT_TYPE = re.compile(r"^tensor\((\w+)\)$")


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    @property
    def input_shape(self) -> tuple[Dim, ...]:
        """Declared input shape; ``None`` marks a dynamic dimension."""
        ...

    @property
    def input_dtype(self) -> str:
        """Declared input element type as a numpy dtype name (e.g. ``uint8``)."""
        ...

    @property
    def output_length(self) -> int | None:
        """Number of scores per image, or ``None`` if the model does not declare it."""
        ...

    def run(self, tensor: NDArray[np.uint8]) -> NDArray[np.generic]:
        """Run the classifier on a prepared tensor.

        Args:
            tensor: (1, S, S, 3) uint8 array.

        Returns:
            1-D array with one raw score per label.

        Raises:
            InferenceError: If the engine fails.
        """
        ...


def _normalize_dims(shape: list[object]) -> tuple[Dim, ...]:
    return tuple(dim if isinstance(dim, int) and dim > 0 else None for dim in shape)


def _numpy_type_name(ort_type: str) -> str:
    match = _ORT_TYPE.match(ort_type)
    if match is None:
        return ort_type
    name = match.group(1)
    return "float32" if name == "float" else "float64" if name == "double" else name


class OnnxImageClassifier:
    """Runs a single-input, single-output ONNX classifier."""

    def __init__(self, session: InferenceSession, model_name: str) -> None:
        self._session = session
        self._model_name = model_name

        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if len(inputs) != 1 or len(outputs) < 1:
            raise ModelConfigError(
                f"Model '{model_name}' must have one input and at least one output "
                f"(got {len(inputs)} inputs, {len(outputs)} outputs)"
            )
        self._input_name: str = inputs[0].name
        self._input_shape = _normalize_dims(list(inputs[0].shape))
        self._input_dtype = _numpy_type_name(inputs[0].type)

        output_dims = _normalize_dims(list(outputs[0].shape))
        # Leading batch axis is optional; the last axis carries the classes.
        self._output_length = output_dims[-1] if output_dims else None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def input_shape(self) -> tuple[Dim, ...]:
        return self._input_shape

    @property
    def input_dtype(self) -> str:
        return self._input_dtype

    @property
    def output_length(self) -> int | None:
        return self._output_length

    def run(self, tensor: NDArray[np.uint8]) -> NDArray[np.generic]:
        try:
            outputs = self._session.run(None, {self._input_name: tensor})
        except Exception as exc:  # noqa: BLE001 - engine errors have no common base class
            raise InferenceError(f"Inference failed for '{self._model_name}': {exc}") from exc

        if not outputs:
            raise InferenceError(f"Model '{self._model_name}' returned no outputs")
        return np.asarray(outputs[0]).reshape(-1)


def validate_model_config(classifier: ImageClassifier, input_size: int, label_count: int) -> None:
    """Check the model signature against the preprocessing and label configuration.

    Called once at startup.

    Raises:
        ModelConfigError: On any disagreement.
    """
    if label_count == 0:
        raise ModelConfigError("Label list is empty")

    shape = classifier.input_shape
    expected = (1, input_size, input_size, 3)
    if len(shape) != len(expected) or any(
        dim is not None and dim != want for dim, want in zip(shape, expected, strict=True)
    ):
        raise ModelConfigError(
            f"Model '{classifier.model_name}' input shape {shape} does not match {expected}"
        )
    if any(dim is None for dim in shape[1:]):
        raise ModelConfigError(
            f"Model '{classifier.model_name}' declares dynamic spatial dimensions {shape}"
        )

    if classifier.input_dtype != "uint8":
        raise ModelConfigError(
            f"Model '{classifier.model_name}' expects {classifier.input_dtype} input, not uint8"
        )

    output_length = classifier.output_length
    if output_length is None:
        logger.warning(
            "Model '%s' does not declare its output length; checking per request against %d labels",
            classifier.model_name,
            label_count,
        )
    elif output_length != label_count:
        raise ModelConfigError(
            f"Model '{classifier.model_name}' outputs {output_length} scores but {label_count} labels are loaded"
        )
