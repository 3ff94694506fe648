"""Pydantic request/response schemas for the IngredientX API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ClassifyResponse(BaseModel):
    """Response for the classification endpoint."""

    status: Literal["matched", "low_confidence"] = Field(
        description="'matched' when the confidence reached the threshold, else 'low_confidence'"
    )
    ingredient: str = Field(description="Canonical ingredient name (best guess when low_confidence)")
    confidence: float = Field(ge=0.0, le=1.0)
    recipes: list[str] = Field(description="Recipe titles for the ingredient; empty when low_confidence")


class LabelInfo(BaseModel):
    """A single classifier label."""

    index: int
    raw: str
    canonical: str


class LabelsResponse(BaseModel):
    """Response for the labels listing endpoint."""

    labels: list[LabelInfo]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    model: str
    label_count: int
    confidence_threshold: float
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
