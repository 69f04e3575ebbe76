"""API route definitions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, UploadFile, status
from fastapi.responses import HTMLResponse, JSONResponse

from carscan.analysis.analyzer import ImageUpload
from carscan.analysis.errors import (
    AnalysisError,
    InferenceError,
    InvalidInputError,
    NoVehicleDetectedError,
    UploadTooLargeError,
)
from carscan.analysis.result import tone_for
from carscan.api.middleware import verify_api_key
from carscan.api.schemas import (
    AnalysisResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
)
from carscan.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from carscan.analysis.analyzer import CarAnalyzer
    from carscan.config import Settings
    from carscan.ml.inference import InferencePool
    from carscan.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])
page_router = APIRouter()

_INDEX_PAGE = Path(__file__).resolve().parent.parent / "static" / "index.html"

_ERROR_STATUS: dict[type[AnalysisError], int] = {
    InvalidInputError: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    UploadTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    NoVehicleDetectedError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InferenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


def _get_analyzer(request: Request) -> CarAnalyzer:
    analyzer: CarAnalyzer = request.app.state.analyzer
    return analyzer


def _error_response(exc: AnalysisError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    body = ErrorResponse(detail=exc.user_message, code=exc.code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@page_router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index() -> HTMLResponse:
    """Serve the upload page."""
    return HTMLResponse(_INDEX_PAGE.read_text(encoding="utf-8"))


@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Assess the condition of a car photo",
)
async def analyze(request: Request, file: UploadFile) -> AnalysisResponse | JSONResponse:
    """Run detection and classification on an uploaded photo and return a condition report."""
    max_file_size = _get_settings(request).max_file_size
    filename = file.filename or "upload"
    if file.size is not None and file.size > max_file_size:
        logger.warning("Rejected %s: %d bytes exceeds %d", filename, file.size, max_file_size)
        return _error_response(UploadTooLargeError())

    # One byte past the limit is enough for the analyzer to reject the upload.
    upload = ImageUpload(
        filename=filename,
        content_type=file.content_type,
        data=await file.read(max_file_size + 1),
    )
    try:
        result = await _get_analyzer(request).analyze(upload)
    except AnalysisError as exc:
        return _error_response(exc)

    return AnalysisResponse(
        overall_condition=result.overall_condition,
        condition_score=result.condition_score,
        damages=list(result.damages),
        recommendations=list(result.recommendations),
        confidence=result.confidence,
        tone=tone_for(result.overall_condition),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=_get_model_manager(request).get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return registered models, marking the configured detector and classifier active."""
    settings = _get_settings(request)
    active_models = {settings.detection_model, settings.classification_model}

    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                task=str(spec.task),
                status="active" if spec.name in active_models else "available",
                license=spec.license,
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
