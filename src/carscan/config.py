"""Environment-based configuration for CarScan."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from CARSCAN_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CARSCAN_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    detection_model: str = "detr_resnet50"
    classification_model: str = "vit_base_patch16_224"
    models_dir: str = "models"
    preload_models: bool = False

    # Post-processing
    detection_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    classification_top_k: int = Field(default=5, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency (queue_timeout None = wait for a slot indefinitely)
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float | None = Field(default=None, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=40_000_000, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
