"""Tests for dequantization, softmax, arg-max, and the confidence gate."""

from __future__ import annotations

import numpy as np
import pytest

from ingredientx.ml.errors import ShapeMismatchError
from ingredientx.ml.postprocessing import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    OutputDecoder,
    QuantizationParams,
    argmax,
    dequantize,
    passes_confidence_gate,
    softmax,
)


class TestDequantize:
    def test_uint8_divided_by_255(self) -> None:
        values = dequantize(np.array([0, 51, 255], dtype=np.uint8))
        np.testing.assert_allclose(values, [0.0, 0.2, 1.0])

    def test_affine_params(self) -> None:
        params = QuantizationParams(scale=0.5, zero_point=10)
        values = dequantize(np.array([10, 12, 0], dtype=np.uint8), params)
        np.testing.assert_allclose(values, [0.0, 1.0, -5.0])

    def test_floats_pass_through(self) -> None:
        values = dequantize(np.array([-1.5, 3.25], dtype=np.float32))
        assert values.dtype == np.float64
        np.testing.assert_allclose(values, [-1.5, 3.25])

    def test_mapping_is_monotonic(self) -> None:
        raw = np.arange(256, dtype=np.uint8)
        assert (np.diff(dequantize(raw)) > 0).all()


class TestSoftmax:
    def test_sums_to_one(self) -> None:
        rng = np.random.default_rng(0)
        for _ in range(20):
            probs = softmax(rng.normal(scale=50, size=rng.integers(1, 50)))
            assert abs(probs.sum() - 1.0) < 1e-6
            assert ((probs >= 0) & (probs <= 1)).all()

    def test_equal_values_give_uniform_distribution(self) -> None:
        probs = softmax([0.3, 0.3, 0.3, 0.3])
        np.testing.assert_allclose(probs, [0.25] * 4)

    def test_dominant_outlier_approaches_one(self) -> None:
        probs = softmax([0.0, 1000.0, 0.0])
        assert probs[1] == pytest.approx(1.0)
        assert abs(probs.sum() - 1.0) < 1e-6

    def test_large_magnitudes_stay_finite(self) -> None:
        probs = softmax([1e308, 1e308])
        assert np.isfinite(probs).all()
        np.testing.assert_allclose(probs, [0.5, 0.5])

    def test_single_element(self) -> None:
        np.testing.assert_allclose(softmax([42.0]), [1.0])

    def test_empty_vector_rejected(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            softmax([])


class TestArgmax:
    def test_ties_resolve_to_lowest_index(self) -> None:
        assert argmax([5, 5, 3]) == 0

    def test_late_tie(self) -> None:
        assert argmax([1, 7, 3, 7]) == 1

    def test_unique_max(self) -> None:
        assert argmax([0.1, 0.2, 0.7]) == 2


class TestConfidenceGate:
    def test_default_threshold(self) -> None:
        assert DEFAULT_CONFIDENCE_THRESHOLD == 0.10

    def test_below_threshold_fails(self) -> None:
        assert passes_confidence_gate(0.09, 0.10) is False

    def test_threshold_is_inclusive(self) -> None:
        assert passes_confidence_gate(0.10, 0.10) is True

    def test_above_threshold_passes(self) -> None:
        assert passes_confidence_gate(0.95) is True


class TestOutputDecoder:
    def test_decodes_quantized_scores(self) -> None:
        decoded = OutputDecoder(label_count=2).decode(np.array([200, 50], dtype=np.uint8))
        assert decoded.index == 0
        expected = 1.0 / (1.0 + np.exp(-(150 / 255.0)))
        assert decoded.confidence == pytest.approx(expected)
        assert decoded.probabilities.sum() == pytest.approx(1.0)

    def test_tie_break_on_quantized_scores(self) -> None:
        decoded = OutputDecoder(label_count=3).decode(np.array([5, 5, 3], dtype=np.uint8))
        assert decoded.index == 0
        assert decoded.probabilities[0] == decoded.probabilities[1]

    def test_accepts_batched_output(self) -> None:
        decoded = OutputDecoder(label_count=3).decode(np.array([[1, 9, 2]], dtype=np.uint8))
        assert decoded.index == 1

    def test_uses_quantization_params(self) -> None:
        params = QuantizationParams(scale=1.0, zero_point=0)
        decoded = OutputDecoder(label_count=2, quantization=params).decode(np.array([10, 0], dtype=np.uint8))
        assert decoded.confidence == pytest.approx(1.0 / (1.0 + np.exp(-10)))

    def test_probabilities_are_read_only(self) -> None:
        decoded = OutputDecoder(label_count=2).decode(np.array([1, 2], dtype=np.uint8))
        with pytest.raises(ValueError):
            decoded.probabilities[0] = 1.0

    def test_too_few_scores(self) -> None:
        with pytest.raises(ShapeMismatchError, match="2 scores for 3 labels"):
            OutputDecoder(label_count=3).decode(np.array([1, 2], dtype=np.uint8))

    def test_too_many_scores(self) -> None:
        with pytest.raises(ShapeMismatchError):
            OutputDecoder(label_count=1).decode(np.array([1, 2], dtype=np.uint8))
