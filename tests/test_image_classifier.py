"""Tests for the ONNX classifier adapter and load-time model validation."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest

from ingredientx.ml.errors import InferenceError, ModelConfigError
from ingredientx.ml.image_classifier import OnnxImageClassifier, validate_model_config

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_session(
    input_shape: list[object] | None = None,
    input_type: str = "tensor(uint8)",
    output_shape: list[object] | None = None,
) -> MagicMock:
    session = MagicMock()
    session.get_inputs.return_value = [
        SimpleNamespace(name="input", shape=input_shape or [1, 224, 224, 3], type=input_type)
    ]
    session.get_outputs.return_value = [
        SimpleNamespace(name="output", shape=output_shape or [1, 2], type="tensor(uint8)")
    ]
    return session


# ---------------------------------------------------------------------------
# OnnxImageClassifier
# ---------------------------------------------------------------------------


class TestOnnxImageClassifier:
    def test_reads_signature(self) -> None:
        classifier = OnnxImageClassifier(_make_session(), "fridge")
        assert classifier.model_name == "fridge"
        assert classifier.input_shape == (1, 224, 224, 3)
        assert classifier.input_dtype == "uint8"
        assert classifier.output_length == 2

    def test_symbolic_dims_become_none(self) -> None:
        session = _make_session(input_shape=["batch", 224, 224, 3], output_shape=["batch", "classes"])
        classifier = OnnxImageClassifier(session, "m")
        assert classifier.input_shape == (None, 224, 224, 3)
        assert classifier.output_length is None

    def test_float_type_name(self) -> None:
        classifier = OnnxImageClassifier(_make_session(input_type="tensor(float)"), "m")
        assert classifier.input_dtype == "float32"

    def test_run_feeds_input_and_flattens_output(self) -> None:
        session = _make_session()
        session.run.return_value = [np.array([[200, 50]], dtype=np.uint8)]
        classifier = OnnxImageClassifier(session, "m")
        tensor = np.zeros((1, 224, 224, 3), dtype=np.uint8)

        scores = classifier.run(tensor)

        session.run.assert_called_once_with(None, {"input": tensor})
        assert scores.tolist() == [200, 50]
        assert scores.dtype == np.uint8

    def test_engine_failure_becomes_inference_error(self) -> None:
        session = _make_session()
        session.run.side_effect = RuntimeError("[ONNXRuntimeError] : 2 : INVALID_ARGUMENT")
        classifier = OnnxImageClassifier(session, "m")
        with pytest.raises(InferenceError, match="INVALID_ARGUMENT"):
            classifier.run(np.zeros((1, 224, 224, 3), dtype=np.uint8))

    def test_empty_output_is_inference_error(self) -> None:
        session = _make_session()
        session.run.return_value = []
        classifier = OnnxImageClassifier(session, "m")
        with pytest.raises(InferenceError, match="no outputs"):
            classifier.run(np.zeros((1, 224, 224, 3), dtype=np.uint8))

    def test_multiple_inputs_rejected(self) -> None:
        session = _make_session()
        session.get_inputs.return_value = session.get_inputs.return_value * 2
        with pytest.raises(ModelConfigError, match="one input"):
            OnnxImageClassifier(session, "m")


# ---------------------------------------------------------------------------
# validate_model_config
# ---------------------------------------------------------------------------


class TestValidateModelConfig:
    def test_consistent_config_passes(self) -> None:
        validate_model_config(OnnxImageClassifier(_make_session(), "m"), 224, 2)

    def test_dynamic_batch_passes(self) -> None:
        session = _make_session(input_shape=[None, 224, 224, 3])
        validate_model_config(OnnxImageClassifier(session, "m"), 224, 2)

    def test_wrong_input_size(self) -> None:
        with pytest.raises(ModelConfigError, match="input shape"):
            validate_model_config(OnnxImageClassifier(_make_session(), "m"), 192, 2)

    def test_channels_first_rejected(self) -> None:
        session = _make_session(input_shape=[1, 3, 224, 224])
        with pytest.raises(ModelConfigError, match="input shape"):
            validate_model_config(OnnxImageClassifier(session, "m"), 224, 2)

    def test_batch_larger_than_one_rejected(self) -> None:
        session = _make_session(input_shape=[4, 224, 224, 3])
        with pytest.raises(ModelConfigError):
            validate_model_config(OnnxImageClassifier(session, "m"), 224, 2)

    def test_dynamic_spatial_dims_rejected(self) -> None:
        session = _make_session(input_shape=[1, "h", "w", 3])
        with pytest.raises(ModelConfigError, match="dynamic"):
            validate_model_config(OnnxImageClassifier(session, "m"), 224, 2)

    def test_float_input_rejected(self) -> None:
        session = _make_session(input_type="tensor(float)")
        with pytest.raises(ModelConfigError, match="float32"):
            validate_model_config(OnnxImageClassifier(session, "m"), 224, 2)

    def test_label_count_mismatch(self) -> None:
        with pytest.raises(ModelConfigError, match="outputs 2 scores but 3 labels"):
            validate_model_config(OnnxImageClassifier(_make_session(), "m"), 224, 3)

    def test_empty_labels(self) -> None:
        with pytest.raises(ModelConfigError, match="empty"):
            validate_model_config(OnnxImageClassifier(_make_session(), "m"), 224, 0)

    def test_undeclared_output_length_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        session = _make_session(output_shape=[1, "classes"])
        validate_model_config(OnnxImageClassifier(session, "m"), 224, 5)
        assert "does not declare its output length" in caplog.text
