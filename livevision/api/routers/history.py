"""History API router for analysis request history."""

from typing import List

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ...storage.history import history_storage


router = APIRouter(prefix="/api/history", tags=["history"])


SERVICE_ALIASES = {
    "analyze": "analyze",
    "query": "analyze",
    "caption": "caption",
    "detect": "detect",
    "point": "point",
    "scene": "scene",
    "compare": "compare",
    "comparison": "compare",
}


class HistoryEntry(BaseModel):
    """History entry model."""

    service: str
    timestamp: str
    request_id: str
    status: str
    request: dict
    response: dict


def _resolve_service(service: str) -> str:
    resolved = SERVICE_ALIASES.get(service)
    if not resolved:
        raise HTTPException(status_code=400, detail="Invalid service name")
    return resolved


@router.get("/all", response_model=List[HistoryEntry])
async def get_all_history(
    limit: int = Query(default=50, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Get request history across all services, most recent first."""
    return history_storage.get_history(limit=limit, offset=offset)


@router.get("/{service}", response_model=List[HistoryEntry])
async def get_history(
    service: str,
    limit: int = Query(default=50, le=100),
    offset: int = Query(default=0, ge=0),
):
    """
    Get request history for a service.

    Args:
        service: Service name (analyze, caption, detect, point, scene, compare)
        limit: Maximum number of entries (max 100)
        offset: Number of entries to skip
    """
    return history_storage.get_history(_resolve_service(service), limit=limit, offset=offset)


@router.get("/{service}/{request_id}", response_model=HistoryEntry)
async def get_request(service: str, request_id: str):
    """Get a specific request by ID."""
    entry = history_storage.get_request(_resolve_service(service), request_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Request not found")

    return entry


@router.delete("/{service}")
async def clear_history(service: str):
    """Clear all history for a service."""
    resolved_service = _resolve_service(service)

    history_storage.clear_history(resolved_service)
    return {"message": f"History cleared for {resolved_service}"}
