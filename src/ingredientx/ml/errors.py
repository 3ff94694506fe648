"""Exception taxonomy for the classification pipeline."""

from __future__ import annotations


class DecodeError(ValueError):
    """The input bytes are not a supported, intact raster image."""


class ModelConfigError(RuntimeError):
    """Model, labels, and pipeline configuration disagree.

    Raised once at startup; the classification feature cannot run.
    """


class InferenceError(RuntimeError):
    """The classifier invocation failed. Safe to retry the same image."""


class ShapeMismatchError(RuntimeError):
    """The classifier output does not line up with the label list."""


class TensorLayoutError(RuntimeError):
    """The encoded input tensor does not have the layout the classifier expects."""
