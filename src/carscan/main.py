"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carscan.analysis.analyzer import CarAnalyzer
from carscan.api.routes import page_router, router
from carscan.config import get_settings
from carscan.ml.inference import InferencePool
from carscan.ml.model_manager import OnnxModelManager
from carscan.ml.provider import OnnxInferenceProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting CarScan (device=%s, max_concurrent=%s, detection=%s, classification=%s)",
        settings.device,
        settings.max_concurrent,
        settings.detection_model,
        settings.classification_model,
    )

    inference_pool = InferencePool(settings)
    model_manager = OnnxModelManager(settings)
    provider = OnnxInferenceProvider(settings, model_manager, inference_pool)
    app.state.inference_pool = inference_pool
    app.state.model_manager = model_manager
    app.state.analyzer = CarAnalyzer(provider, settings)

    if settings.preload_models:
        await provider.preload()

    logger.info("CarScan ready")
    yield

    logger.info("Shutting down CarScan")
    inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("CarScan shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="CarScan",
        description="Heuristic car condition reports from pretrained vision models",
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

    application.include_router(page_router)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app on the configured host and port."""
    settings = get_settings()
    uvicorn.run("carscan.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
