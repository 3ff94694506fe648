"""Shared fixtures: synthetic images and a scripted classifier."""

from __future__ import annotations

import io
import threading
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

import numpy as np
import pytest
from PIL import Image

if TYPE_CHECKING:
    from numpy.typing import NDArray

    ScoreSource = Sequence[float] | Callable[[NDArray[np.uint8]], Sequence[float]]


class ScriptedClassifier:
    """Classifier double returning fixed raw scores.

    ``scores`` is a fixed sequence or a callable taking the input tensor. When
    ``hold`` returns True for a tensor, ``run`` sets ``started`` and waits for
    ``release`` before answering.
    """

    def __init__(
        self,
        scores: ScoreSource,
        *,
        input_size: int = 224,
        output_length: int | None = None,
        dtype: type = np.uint8,
        hold: Callable[[NDArray[np.uint8]], bool] | None = None,
    ) -> None:
        self._scores = scores
        self._dtype = dtype
        self._input_size = input_size
        self._output_length = output_length
        self._hold = hold
        self.calls: list[NDArray[np.uint8]] = []
        self.started = threading.Event()
        self.release = threading.Event()

    @property
    def model_name(self) -> str:
        return "scripted"

    @property
    def input_shape(self) -> tuple[int | None, ...]:
        return (1, self._input_size, self._input_size, 3)

    @property
    def input_dtype(self) -> str:
        return "uint8"

    @property
    def output_length(self) -> int | None:
        return self._output_length

    def run(self, tensor: NDArray[np.uint8]) -> NDArray[np.generic]:
        self.calls.append(tensor)
        if self._hold is not None and self._hold(tensor):
            self.started.set()
            self.release.wait(timeout=10)
        scores = self._scores(tensor) if callable(self._scores) else self._scores
        return np.asarray(scores, dtype=self._dtype)


def encode_image(width: int = 64, height: int = 64, color: tuple[int, int, int] = (200, 40, 40), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture()
def make_image_bytes() -> Callable[..., bytes]:
    """Factory for solid-color encoded images."""
    return encode_image


@pytest.fixture()
def scripted_classifier() -> type[ScriptedClassifier]:
    return ScriptedClassifier
