"""Pydantic request/response schemas for the CarScan API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from carscan.analysis.result import Condition, Tone


class AnalysisResponse(BaseModel):
    """Condition report for an uploaded car photo."""

    overall_condition: Condition
    condition_score: int = Field(ge=0, le=100)
    damages: list[str]
    recommendations: list[str]
    confidence: float = Field(ge=0.0, le=1.0, description="Heuristic confidence, capped at 0.98")
    tone: Tone = Field(description="Display tone for the condition: 'success', 'info', 'warning', 'danger'")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task: 'object_detection' or 'image_classification'")
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str = "error"
