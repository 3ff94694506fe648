"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ingredientx.api.routes import router
from ingredientx.config import get_settings
from ingredientx.ml.inference import InferencePool
from ingredientx.ml.model_manager import OnnxModelManager
from ingredientx.ml.pipeline import build_pipeline
from ingredientx.ml.session import SessionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load artifacts on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting IngredientX (device=%s, max_concurrent=%s, model=%s, labels=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_path,
        settings.labels_path,
    )

    # ModelConfigError propagates: the app must not start with a broken model.
    model_manager = OnnxModelManager(settings)
    pipeline = build_pipeline(settings, model_manager)
    inference_pool = InferencePool(settings)
    app.state.model_manager = model_manager
    app.state.pipeline = pipeline
    app.state.inference_pool = inference_pool
    app.state.sessions = SessionRegistry(pipeline, inference_pool, settings.max_sessions)

    logger.info("IngredientX ready (%d labels)", len(pipeline.labels))
    yield

    logger.info("Shutting down IngredientX")
    inference_pool.shutdown()
    pipeline.shutdown()
    model_manager.shutdown()
    logger.info("IngredientX shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="IngredientX",
        description="Offline ingredient recognition and recipe suggestions",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("ingredientx.main:app", host=settings.host, port=settings.port)
