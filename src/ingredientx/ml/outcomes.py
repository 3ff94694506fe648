"""Result types returned by the classification pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class PipelineState(StrEnum):
    IDLE = "idle"
    PREPROCESSING = "preprocessing"
    INFERRING = "inferring"
    DECIDED = "decided"
    FAILED = "failed"


class ErrorKind(StrEnum):
    DECODE_ERROR = "decode_error"
    INFERENCE_ERROR = "inference_error"
    SHAPE_MISMATCH = "shape_mismatch"


@dataclass(frozen=True)
class ClassificationResult:
    """The identified ingredient."""

    ingredient: str
    confidence: float
    matched: bool


@dataclass(frozen=True)
class Matched:
    """A confident match and its recipes."""

    result: ClassificationResult
    recipes: tuple[str, ...]


@dataclass(frozen=True)
class LowConfidence:
    """The best guess fell below the confidence threshold. Not an error."""

    label: str
    confidence: float


@dataclass(frozen=True)
class Failed:
    """The run aborted on a component error."""

    kind: ErrorKind
    message: str


PipelineOutcome = Matched | LowConfidence | Failed
