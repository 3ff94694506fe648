"""Environment-based configuration for IngredientX."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from INGREDIENTX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="INGREDIENTX_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Artifacts (local files only)
    model_path: str = "models/model.onnx"
    labels_path: str = "models/labels.txt"
    recipes_path: str | None = None

    # Preprocessing
    input_size: int = Field(default=224, ge=1)
    resample: Literal["nearest", "bilinear"] = "nearest"
    apply_exif_orientation: bool = False

    # Decision
    confidence_threshold: float = Field(default=0.10, ge=0.0, le=1.0)

    # Output dequantization (None = divide by 255)
    output_scale: float | None = Field(default=None, gt=0.0)
    output_zero_point: int = 0

    # Timeouts in seconds (None = unbounded)
    inference_timeout: float | None = Field(default=None, gt=0.0)
    queue_timeout: float = Field(default=5.0, gt=0.0)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    max_sessions: int = Field(default=1024, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
