"""Pydantic models for frame analysis API endpoints."""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from .base import BaseResponse


class TriggerInfo(BaseModel):
    """Signal from the frame trigger that caused this request."""

    person_count: int = Field(..., ge=0, description="People detected in the frame")
    density: float = Field(..., description="Crowd density estimate")
    motion_intensity: float = Field(..., description="Motion intensity estimate")


class FrameRequest(BaseModel):
    """Fields shared by every analysis request."""

    image: str = Field(..., description="Base64-encoded image (a data URI prefix is accepted)")
    provider: str = Field(default="local", description="Provider id (local or cloud)")
    timeout_ms: Optional[int] = Field(
        default=None, gt=0, description="Per-call timeout override in milliseconds"
    )
    trigger: Optional[TriggerInfo] = Field(default=None, description="Optional trigger signal")


class AnalyzeRequest(FrameRequest):
    """Open-ended question about a frame."""

    prompt: Optional[str] = Field(
        default=None,
        description="Question for the model. If not provided, asks for a short scene description.",
    )


class CaptionRequest(FrameRequest):
    """Caption a frame."""

    length: Literal["short", "normal", "long"] = Field(default="normal", description="Caption length")


class TargetRequest(FrameRequest):
    """Locate an object in a frame (detect or point)."""

    target: str = Field(..., min_length=1, description="Object label to locate, e.g. 'person'")


class SceneRequest(FrameRequest):
    """Structured scene analysis."""

    scene_type: str = Field(
        default="general", description="Scene type: queue, inventory, safety, or general"
    )


class CompareRequest(BaseModel):
    """Send one request to several providers concurrently."""

    image: str = Field(..., description="Base64-encoded image (a data URI prefix is accepted)")
    operation: Literal["query", "caption", "detect", "point"] = Field(
        default="query", description="Operation to run on every provider"
    )
    providers: List[str] = Field(
        default_factory=lambda: ["local", "cloud"], description="Provider ids to compare"
    )
    prompt: Optional[str] = Field(default=None, description="Question for query")
    length: Optional[Literal["short", "normal", "long"]] = Field(default=None, description="Length for caption")
    target: Optional[str] = Field(default=None, description="Object label for detect and point")
    timeout_ms: Optional[int] = Field(default=None, gt=0, description="Per-call timeout override in milliseconds")
    trigger: Optional[TriggerInfo] = Field(default=None, description="Optional trigger signal")


class AnalysisResultModel(BaseModel):
    """Normalized outcome of one provider call."""

    provider: str = Field(..., description="Provider that produced the result")
    response: str = Field(default="", description="Text answer, empty on failure")
    structured_data: Optional[Any] = Field(default=None, description="Parsed JSON payload, if any")
    processing_time_ms: int = Field(..., description="Provider call time in milliseconds")
    confidence: Optional[float] = Field(default=None, description="Backend confidence in [0, 1]")
    error: Optional[str] = Field(default=None, description="Failure description; set iff the call failed")


class AnalysisResponse(BaseResponse):
    """Response for single-provider analysis endpoints."""

    result: AnalysisResultModel = Field(..., description="Provider result")


class CompareResponse(BaseResponse):
    """Response for provider comparisons."""

    correlation_id: str = Field(..., description="Identifier shared by all results of this comparison")
    total_time_ms: int = Field(..., description="Wall time until every provider settled")
    fastest_provider: Optional[str] = Field(default=None, description="Quickest successful provider")
    results: List[AnalysisResultModel] = Field(..., description="One result per provider, in request order")


class ProviderInfo(BaseModel):
    """Static provider information."""

    id: str = Field(..., description="Provider id")
    kind: str = Field(..., description="Provider kind (local or cloud)")
    base_url: str = Field(..., description="Backend base URL")
    default_timeout_seconds: float = Field(..., description="Default per-call timeout")
    requires_local_server: bool = Field(..., description="Whether calls are gated on local server readiness")
    model: Optional[str] = Field(default=None, description="Model name (local provider)")
    has_api_key: Optional[bool] = Field(default=None, description="Whether an API key is configured (cloud provider)")


class ProvidersResponse(BaseModel):
    """Registered providers."""

    providers: List[ProviderInfo] = Field(..., description="Registered providers")
