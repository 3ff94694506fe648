"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, UploadFile, status

from ingredientx.api.middleware import verify_api_key
from ingredientx.api.schemas import (
    ClassifyResponse,
    ErrorResponse,
    HealthResponse,
    LabelInfo,
    LabelsResponse,
)
from ingredientx.ml.outcomes import ErrorKind, Failed, LowConfidence, Matched

if TYPE_CHECKING:
    from ingredientx.config import Settings
    from ingredientx.ml.inference import InferencePool
    from ingredientx.ml.outcomes import PipelineOutcome
    from ingredientx.ml.pipeline import ClassificationPipeline
    from ingredientx.ml.session import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_FAILURE_STATUS: dict[ErrorKind, int] = {
    ErrorKind.DECODE_ERROR: status.HTTP_422_UNPROCESSABLE_CONTENT,
    ErrorKind.INFERENCE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.SHAPE_MISMATCH: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_pipeline(request: Request) -> ClassificationPipeline:
    pipeline: ClassificationPipeline = request.app.state.pipeline
    return pipeline


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_sessions(request: Request) -> SessionRegistry:
    sessions: SessionRegistry = request.app.state.sessions
    return sessions


def _to_response(outcome: PipelineOutcome) -> ClassifyResponse:
    if isinstance(outcome, Matched):
        return ClassifyResponse(
            status="matched",
            ingredient=outcome.result.ingredient,
            confidence=outcome.result.confidence,
            recipes=list(outcome.recipes),
        )
    if isinstance(outcome, LowConfidence):
        return ClassifyResponse(
            status="low_confidence",
            ingredient=outcome.label,
            confidence=outcome.confidence,
            recipes=[],
        )
    if isinstance(outcome, Failed):
        raise HTTPException(status_code=_FAILURE_STATUS[outcome.kind], detail=outcome.message)
    raise TypeError(f"Unexpected pipeline outcome: {outcome!r}")


@router.post(
    "/classify",
    response_model=ClassifyResponse,
    responses={
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_CONTENT: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Identify the ingredient in an image",
)
async def classify(
    request: Request,
    file: UploadFile,
    session: Annotated[str | None, Query(max_length=128, description="Client session id")] = None,
) -> ClassifyResponse:
    """Classify an uploaded image and return the ingredient with its recipes.

    With a session id, a newer upload in the same session supersedes this one
    and this request answers 409.
    """
    settings = _get_settings(request)
    image_bytes = await file.read(settings.max_file_size + 1)
    if len(image_bytes) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    if session is not None:
        outcome = await _get_sessions(request).get(session).submit(image_bytes)
        if outcome is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Superseded by a newer image in the same session",
            )
        return _to_response(outcome)

    pipeline = _get_pipeline(request)
    try:
        outcome = await _get_inference_pool(request).run(pipeline.classify, image_bytes)
    except TimeoutError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Classifier busy, try again",
        ) from None
    return _to_response(outcome)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pipeline = _get_pipeline(request)
    pool = _get_inference_pool(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model=pipeline.classifier.model_name,
        label_count=len(pipeline.labels),
        confidence_threshold=pipeline.confidence_threshold,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/labels",
    response_model=LabelsResponse,
    summary="List classifier labels",
)
async def list_labels(request: Request) -> LabelsResponse:
    """Return every label in classifier output order with its canonical name."""
    pipeline = _get_pipeline(request)
    return LabelsResponse(
        labels=[LabelInfo(index=entry.index, raw=entry.raw, canonical=entry.canonical) for entry in pipeline.labels]
    )
