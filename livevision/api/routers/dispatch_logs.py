"""Dispatch log API router for per-provider call records."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query

from ...db import dispatch_logs

router = APIRouter(prefix="/api/dispatch-logs", tags=["dispatch-logs"])


@router.get("")
async def get_dispatch_logs(
    limit: int = Query(default=100, ge=1, le=1000),
    provider: Optional[str] = Query(default=None, description="Filter by provider id"),
    correlation_id: Optional[str] = Query(default=None, description="Filter by comparison"),
) -> List[Dict[str, Any]]:
    """Most recent provider calls first."""
    return dispatch_logs.get_recent_logs(limit=limit, provider=provider, correlation_id=correlation_id)


@router.get("/stats")
async def get_dispatch_stats(hours: int = Query(default=24, ge=1, le=24 * 30)) -> List[Dict[str, Any]]:
    """Call counts and average latency per provider."""
    return dispatch_logs.get_log_stats(hours=hours)
