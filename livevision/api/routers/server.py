"""Local server supervision API router."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from ..models.server import PullRequest, PullResponse, ServerStatusResponse, StartResponse
from ...db.settings import get_setting
from ...errors import ModelPullError, StartupError
from ...supervisor import check_status, get_supervisor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/server", tags=["server"])


def _vision_model() -> str:
    return get_setting("vision_model", "llava:7b")


@router.get("/status", response_model=ServerStatusResponse)
async def server_status() -> ServerStatusResponse:
    """
    Get local server health.

    Never waits on a start or pull in progress.
    """
    supervisor = get_supervisor()
    status = await check_status(supervisor.base_url, timeout=supervisor.status_timeout)
    return ServerStatusResponse(**status.to_dict(), **supervisor.describe())


@router.post("/start", response_model=StartResponse)
async def start_server() -> StartResponse:
    """
    Start the local server and make sure the vision model is pulled.

    Raises:
        HTTPException: If the server cannot be started or the pull is rejected
    """
    supervisor = get_supervisor()
    model = _vision_model()

    try:
        state = await supervisor.start()
        pulled = await supervisor.pull_model(model)
    except StartupError as e:
        logger.error(f"Failed to start local server: {e}")
        raise HTTPException(
            status_code=500,
            detail={"code": "STARTUP_FAILED", "message": str(e)},
        )
    except ModelPullError as e:
        logger.error(str(e))
        raise HTTPException(
            status_code=502,
            detail={"code": "MODEL_PULL_FAILED", "message": str(e), "status": e.status},
        )

    return StartResponse(state=state.value, model=model, pulled=pulled)


@router.post("/pull", response_model=PullResponse)
async def pull_model(request: PullRequest) -> PullResponse:
    """Pull a model on the local server (no-op if already present)."""
    model = request.model or _vision_model()

    try:
        pulled = await get_supervisor().pull_model(model)
    except ModelPullError as e:
        logger.error(str(e))
        raise HTTPException(
            status_code=502,
            detail={"code": "MODEL_PULL_FAILED", "message": str(e), "status": e.status},
        )

    return PullResponse(model=model, pulled=pulled)


@router.post("/stop")
async def stop_server() -> Dict[str, Any]:
    """Stop the spawned local server. An externally managed server is left running."""
    supervisor = get_supervisor()
    await supervisor.stop()
    return {"success": True, "state": supervisor.state.value}
