"""Model manager: load and hold the ONNX classifier session.

The model is read from a local file once and shared, read-only, by every
classification for the lifetime of the process.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from ingredientx.ml.errors import ModelConfigError
from ingredientx.ml.image_classifier import ImageClassifier, OnnxImageClassifier

if TYPE_CHECKING:
    from ingredientx.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def load_classifier(self) -> ImageClassifier:
        """Return the loaded classifier, loading it on first use."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Release the loaded session."""
        ...


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Creates the ONNX InferenceSession for the configured model file."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._model_path = Path(settings.model_path)

        self._lock = threading.Lock()
        self._classifier: OnnxImageClassifier | None = None

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @property
    def model_name(self) -> str:
        return self._model_path.stem

    def load_classifier(self) -> OnnxImageClassifier:
        """Return the cached classifier, creating its session if needed.

        Raises:
            ModelConfigError: If the model file is missing or cannot be loaded.
        """
        with self._lock:
            if self._classifier is not None:
                return self._classifier

        if not self._model_path.is_file():
            raise ModelConfigError(f"Model file not found: {self._model_path}")

        try:
            session = InferenceSession(
                str(self._model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:  # noqa: BLE001 - engine errors have no common base class
            raise ModelConfigError(f"Cannot load model {self._model_path}: {exc}") from exc

        classifier = OnnxImageClassifier(session, self.model_name)

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            if self._classifier is not None:
                return self._classifier
            self._classifier = classifier
            logger.info(
                "Loaded session for %s (input=%s %s, outputs=%s)",
                self.model_name,
                classifier.input_shape,
                classifier.input_dtype,
                classifier.output_length,
            )
            return classifier

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return [] if self._classifier is None else [self._classifier.model_name]

    def shutdown(self) -> None:
        """Drop the cached session."""
        with self._lock:
            self._classifier = None
            logger.info("Model session cleared")

    # -- Internal -----------------------------------------------------------

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
