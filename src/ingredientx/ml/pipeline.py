"""Classification pipeline: image bytes in, ingredient and recipes out.

Each call walks ``idle -> preprocessing -> inferring -> decided``, or ends in
``failed`` when a component raises. Calls share only read-only state (model,
labels, recipes), so one failed run never affects the next.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING

from ingredientx.ml.errors import DecodeError, InferenceError, ShapeMismatchError
from ingredientx.ml.image_classifier import validate_model_config
from ingredientx.ml.labels import load_labels
from ingredientx.ml.model_manager import ModelManager, OnnxModelManager
from ingredientx.ml.outcomes import (
    ClassificationResult,
    ErrorKind,
    Failed,
    LowConfidence,
    Matched,
    PipelineOutcome,
    PipelineState,
)
from ingredientx.ml.postprocessing import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    OutputDecoder,
    QuantizationParams,
    passes_confidence_gate,
)
from ingredientx.ml.preprocessing import PillowImagePreprocessor
from ingredientx.ml.recipes import StaticRecipeLookup

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    from numpy.typing import NDArray

    from ingredientx.config import Settings
    from ingredientx.ml.image_classifier import ImageClassifier
    from ingredientx.ml.labels import LabelEntry
    from ingredientx.ml.preprocessing import ImagePreprocessor
    from ingredientx.ml.recipes import RecipeLookup

logger = logging.getLogger(__name__)

StateCallback = Callable[[PipelineState], None]


class ClassificationPipeline:
    """Runs one image through preprocessing, inference, and the decision logic."""

    def __init__(
        self,
        preprocessor: ImagePreprocessor,
        classifier: ImageClassifier,
        labels: Sequence[LabelEntry],
        recipes: RecipeLookup,
        *,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        quantization: QuantizationParams | None = None,
        inference_timeout: float | None = None,
    ) -> None:
        self._preprocessor = preprocessor
        self._classifier = classifier
        self._labels = tuple(labels)
        self._recipes = recipes
        self._confidence_threshold = confidence_threshold
        self._decoder = OutputDecoder(len(self._labels), quantization)
        self._inference_timeout = inference_timeout
        self._timeout_executor: ThreadPoolExecutor | None = None
        if inference_timeout is not None:
            self._timeout_executor = ThreadPoolExecutor(thread_name_prefix="classifier-timeout")

    @property
    def classifier(self) -> ImageClassifier:
        return self._classifier

    @property
    def labels(self) -> tuple[LabelEntry, ...]:
        return self._labels

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    def classify(self, image_bytes: bytes, on_state: StateCallback | None = None) -> PipelineOutcome:
        """Classify one image.

        Component errors end the run as :class:`Failed`; any other exception
        moves the run to ``failed`` and propagates. A confident prediction is
        :class:`Matched` and anything below the threshold is :class:`LowConfidence`.
        """

        def transition(state: PipelineState) -> None:
            logger.debug("Pipeline state -> %s", state)
            if on_state is not None:
                on_state(state)

        transition(PipelineState.IDLE)
        started = time.perf_counter()
        try:
            transition(PipelineState.PREPROCESSING)
            tensor = self._preprocessor.prepare(image_bytes)

            transition(PipelineState.INFERRING)
            scores = self._invoke_classifier(tensor)
            decoded = self._decoder.decode(scores)
        except DecodeError as exc:
            logger.info("Image rejected: %s", exc)
            transition(PipelineState.FAILED)
            return Failed(ErrorKind.DECODE_ERROR, str(exc))
        except InferenceError as exc:
            logger.warning("Inference failed: %s", exc)
            transition(PipelineState.FAILED)
            return Failed(ErrorKind.INFERENCE_ERROR, str(exc))
        except ShapeMismatchError as exc:
            logger.error("Classifier output inconsistent with labels: %s", exc)
            transition(PipelineState.FAILED)
            return Failed(ErrorKind.SHAPE_MISMATCH, str(exc))
        except Exception:
            # Unexpected errors still propagate, but the run must not stay mid-flight.
            transition(PipelineState.FAILED)
            raise

        label = self._labels[decoded.index]
        ingredient = label.canonical
        elapsed_ms = (time.perf_counter() - started) * 1000

        if not passes_confidence_gate(decoded.confidence, self._confidence_threshold):
            logger.info(
                "Low confidence: %s at %.1f%% (%.0fms)", ingredient, decoded.confidence * 100, elapsed_ms
            )
            transition(PipelineState.DECIDED)
            return LowConfidence(label=ingredient, confidence=decoded.confidence)

        recipes = tuple(self._recipes.lookup(ingredient))
        logger.info(
            "Classified '%s' as %s at %.1f%%, %d recipes (%.0fms)",
            label.raw,
            ingredient,
            decoded.confidence * 100,
            len(recipes),
            elapsed_ms,
        )
        transition(PipelineState.DECIDED)
        return Matched(
            result=ClassificationResult(ingredient=ingredient, confidence=decoded.confidence, matched=True),
            recipes=recipes,
        )

    def shutdown(self) -> None:
        if self._timeout_executor is not None:
            self._timeout_executor.shutdown(wait=False, cancel_futures=True)

    def _invoke_classifier(self, tensor: NDArray[np.uint8]) -> NDArray[np.generic]:
        if self._timeout_executor is None:
            return self._classifier.run(tensor)

        future = self._timeout_executor.submit(self._classifier.run, tensor)
        try:
            return future.result(timeout=self._inference_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise InferenceError(f"Classifier did not respond within {self._inference_timeout}s") from None


def build_pipeline(settings: Settings, model_manager: ModelManager | None = None) -> ClassificationPipeline:
    """Load labels, model, and recipes, and validate them against each other.

    Raises:
        ModelConfigError: If any artifact is missing or inconsistent.
    """
    labels = load_labels(settings.labels_path)
    manager = model_manager or OnnxModelManager(settings)
    classifier = manager.load_classifier()
    validate_model_config(classifier, settings.input_size, len(labels))

    if settings.recipes_path is not None:
        recipes = StaticRecipeLookup.from_json(settings.recipes_path)
    else:
        logger.warning("No recipe file configured; matches will carry no recipes")
        recipes = StaticRecipeLookup()

    quantization = None
    if settings.output_scale is not None:
        quantization = QuantizationParams(scale=settings.output_scale, zero_point=settings.output_zero_point)

    return ClassificationPipeline(
        PillowImagePreprocessor.from_settings(settings),
        classifier,
        labels,
        recipes,
        confidence_threshold=settings.confidence_threshold,
        quantization=quantization,
        inference_timeout=settings.inference_timeout,
    )
