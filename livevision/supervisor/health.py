"""Liveness probe and model readiness classification for the local server.

Both functions are stateless and never touch the supervisor lock, so status
polling keeps working while a slow start or pull is in progress.
"""

from __future__ import annotations

import logging
from typing import Optional

from .. import transport
from ..config import get_local_server_url
from ..errors import TransportError
from .protocol import ServerStatus

logger = logging.getLogger(__name__)

STATUS_TIMEOUT_SECONDS = 2.0

# Catalog substrings that mean a usable vision model is present. Substring
# matching because the catalog format differs across server versions.
ACCEPTED_MODEL_MARKERS = ("llava:7b", "llava:", "llama3.2-vision")


async def probe_version(
    base_url: Optional[str] = None, timeout: float = STATUS_TIMEOUT_SECONDS
) -> bool:
    """
    Check whether a server answers on its version endpoint.

    Args:
        base_url: Server base URL (defaults to the local server)
        timeout: Probe timeout in seconds

    Returns:
        True if GET /api/version returned a success status
    """
    url = f"{base_url or get_local_server_url()}/api/version"
    try:
        resp = await transport.request("GET", url, timeout=timeout)
    except TransportError as e:
        logger.debug(f"Version probe failed: {e}")
        return False
    return resp.ok


def catalog_has_vision_model(body: str) -> bool:
    """True if the catalog text mentions any accepted vision model."""
    return any(marker in body for marker in ACCEPTED_MODEL_MARKERS)


async def check_status(
    base_url: Optional[str] = None, timeout: float = STATUS_TIMEOUT_SECONDS
) -> ServerStatus:
    """
    Classify local server health from its model catalog.

    Order of classification:
    1. No response (connection failure, timeout) -> not running, error = cause
    2. Non-success status -> not running, error = status
    3. Success -> running, model_ready iff the catalog names a vision model

    Args:
        base_url: Server base URL (defaults to the local server)
        timeout: Request timeout in seconds

    Returns:
        Fresh ServerStatus
    """
    url = f"{base_url or get_local_server_url()}/api/tags"

    try:
        resp = await transport.request("GET", url, timeout=timeout)
    except TransportError as e:
        logger.debug(f"Status check failed: {e}")
        return ServerStatus(
            running=False,
            model_ready=False,
            error=f"Local server not responding: {e}",
        )

    if not resp.ok:
        logger.debug(f"Status check returned HTTP {resp.status}")
        return ServerStatus(
            running=False,
            model_ready=False,
            error=f"Local server returned HTTP {resp.status}",
        )

    try:
        body = resp.text()
    except UnicodeDecodeError as e:
        return ServerStatus(
            running=True,
            model_ready=False,
            error=f"Malformed catalog response: {e}",
        )

    model_ready = catalog_has_vision_model(body)
    logger.debug(f"Local server running, model_ready={model_ready}")
    return ServerStatus(running=True, model_ready=model_ready)
