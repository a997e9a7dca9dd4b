"""Frame analysis API router for single-provider calls and comparisons."""

import base64
import binascii
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, HTTPException

from ..models.analysis import (
    AnalysisResponse,
    AnalysisResultModel,
    AnalyzeRequest,
    CaptionRequest,
    CompareRequest,
    CompareResponse,
    ProviderInfo,
    ProvidersResponse,
    SceneRequest,
    TargetRequest,
    TriggerInfo,
)
from ...dispatch import get_engine
from ...errors import RequestBuildError
from ...providers import ProviderRequest, TriggerSignal, get_providers
from ...storage.history import history_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])


class InvalidRequestError(ValueError):
    """Client input that cannot be turned into a provider request."""


def decode_image(image: str) -> bytes:
    """
    Decode a base64 image, with or without a data URI prefix.

    Raises:
        InvalidRequestError: If the payload is empty or not valid base64
    """
    if image.startswith("data:"):
        _, _, image = image.partition(",")
    try:
        data = base64.b64decode(image, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidRequestError(f"Invalid base64 image: {e}") from e
    if not data:
        raise InvalidRequestError("Image payload is empty")
    return data


def to_trigger(trigger: Optional[TriggerInfo]) -> Optional[TriggerSignal]:
    if trigger is None:
        return None
    return TriggerSignal(
        person_count=trigger.person_count,
        density=trigger.density,
        motion_intensity=trigger.motion_intensity,
    )


def _request_data(request: Any) -> Dict[str, Any]:
    """Request parameters for history, without the image payload."""
    data = request.model_dump(exclude={"image"})
    data["image_bytes"] = len(request.image)
    return data


def _bad_request(code: str, message: str, request_id: str) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"code": code, "message": message, "request_id": request_id},
    )


async def _handle(
    service: str,
    request: Any,
    run: Callable[[str], Awaitable[Any]],
) -> Any:
    """
    Run one analysis endpoint with uniform history and error handling.

    ``run`` receives the request id and returns the response model. Backend
    failures are already inside the result; only client errors and
    unexpected failures become HTTP errors here.
    """
    request_id = str(uuid.uuid4())

    try:
        response = await run(request_id)
    except InvalidRequestError as e:
        logger.warning(f"Invalid request {request_id}: {e}")
        raise _bad_request("INVALID_REQUEST", str(e), request_id)
    except RequestBuildError as e:
        logger.error(f"Could not build provider request {request_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={"code": "ANALYSIS_FAILED", "message": str(e), "request_id": request_id},
        )
    except ValueError as e:
        error_msg = str(e)
        code = "UNKNOWN_PROVIDER" if error_msg.startswith("Unknown provider") else "INVALID_REQUEST"
        logger.warning(f"Rejected request {request_id}: {error_msg}")
        raise _bad_request(code, error_msg, request_id)
    except Exception as e:
        error_msg = f"Failed to analyze frame: {str(e)}"
        logger.error(f"Analysis failed for request {request_id}: {error_msg}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={"code": "ANALYSIS_FAILED", "message": error_msg, "request_id": request_id},
        )

    response_data = response.model_dump()
    if isinstance(response, CompareResponse):
        failed = all(r.error for r in response.results)
    else:
        failed = response.result.error is not None

    history_storage.add_request(
        service=service,
        request_id=request_id,
        request_data=_request_data(request),
        response_data=response_data,
        status="error" if failed else "success",
    )
    return response


async def _dispatch_one(request: Any, build: Callable[[bytes], ProviderRequest], request_id: str) -> AnalysisResponse:
    start_time = time.time()
    provider_request = build(decode_image(request.image))
    result = await get_engine().dispatch_single(provider_request, request.provider)
    return AnalysisResponse(
        request_id=request_id,
        processing_time_ms=int((time.time() - start_time) * 1000),
        result=AnalysisResultModel(**result.to_dict()),
    )


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers() -> ProvidersResponse:
    """List registered providers and their configuration."""
    return ProvidersResponse(
        providers=[ProviderInfo(**p.describe()) for p in get_providers().values()]
    )


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(request: AnalyzeRequest) -> AnalysisResponse:
    """
    Ask a provider an open-ended question about a frame.

    Returns:
        The provider result; backend failures are reported in result.error
    """
    return await _handle(
        "analyze",
        request,
        lambda rid: _dispatch_one(
            request,
            lambda image: ProviderRequest.query(
                image, request.prompt, timeout_ms=request.timeout_ms, trigger=to_trigger(request.trigger)
            ),
            rid,
        ),
    )


@router.post("/caption", response_model=AnalysisResponse)
async def caption(request: CaptionRequest) -> AnalysisResponse:
    """Caption a frame."""
    return await _handle(
        "caption",
        request,
        lambda rid: _dispatch_one(
            request,
            lambda image: ProviderRequest.caption(
                image, request.length, timeout_ms=request.timeout_ms, trigger=to_trigger(request.trigger)
            ),
            rid,
        ),
    )


@router.post("/detect", response_model=AnalysisResponse)
async def detect(request: TargetRequest) -> AnalysisResponse:
    """Detect instances of an object in a frame."""
    return await _handle(
        "detect",
        request,
        lambda rid: _dispatch_one(
            request,
            lambda image: ProviderRequest.detect(
                image, request.target, timeout_ms=request.timeout_ms, trigger=to_trigger(request.trigger)
            ),
            rid,
        ),
    )


@router.post("/point", response_model=AnalysisResponse)
async def point(request: TargetRequest) -> AnalysisResponse:
    """Locate an object in a frame as coordinate points."""
    return await _handle(
        "point",
        request,
        lambda rid: _dispatch_one(
            request,
            lambda image: ProviderRequest.point(
                image, request.target, timeout_ms=request.timeout_ms, trigger=to_trigger(request.trigger)
            ),
            rid,
        ),
    )


@router.post("/scene", response_model=AnalysisResponse)
async def scene(request: SceneRequest) -> AnalysisResponse:
    """
    Structured scene analysis.

    queue, inventory and safety ask for a JSON report which is returned as
    result.structured_data; any other scene type gets a free description.
    """
    return await _handle(
        "scene",
        request,
        lambda rid: _dispatch_one(
            request,
            lambda image: ProviderRequest.for_scene(
                image, request.scene_type, timeout_ms=request.timeout_ms, trigger=to_trigger(request.trigger)
            ),
            rid,
        ),
    )


@router.post("/compare", response_model=CompareResponse)
async def compare(request: CompareRequest) -> CompareResponse:
    """
    Run the same operation on several providers concurrently.

    Every provider runs to completion; each result carries its own error.
    """

    async def run(request_id: str) -> CompareResponse:
        start_time = time.time()
        provider_request = ProviderRequest(
            operation=request.operation,
            image=decode_image(request.image),
            prompt=request.prompt,
            length=request.length,
            target=request.target,
            timeout_ms=request.timeout_ms,
            trigger=to_trigger(request.trigger),
        )
        report = await get_engine().dispatch_comparison(provider_request, request.providers)
        data = report.to_dict()
        return CompareResponse(
            request_id=request_id,
            processing_time_ms=int((time.time() - start_time) * 1000),
            correlation_id=data["correlation_id"],
            total_time_ms=data["total_time_ms"],
            fastest_provider=data["fastest_provider"],
            results=[AnalysisResultModel(**r) for r in data["results"]],
        )

    return await _handle("compare", request, run)
