"""Outbound HTTP for the local server and cloud providers.

Every backend call goes through ``request`` or ``download`` so timeouts and
error classification live in one place. Blocking urllib calls run in a worker
thread so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError

from .errors import RequestBuildError, TransportError

logger = logging.getLogger(__name__)

USER_AGENT = "live-vision-analyzer/1.0"


@dataclass
class HttpResponse:
    """Status and raw body of a completed HTTP exchange."""

    status: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


def encode_json(payload: Any) -> bytes:
    """Serialize a request body, raising RequestBuildError on failure."""
    try:
        return json.dumps(payload).encode()
    except (TypeError, ValueError) as e:
        raise RequestBuildError(f"Failed to serialize request body: {e}") from e


def _send(
    method: str,
    url: str,
    data: Optional[bytes],
    headers: Dict[str, str],
    timeout: float,
) -> HttpResponse:
    try:
        req = urlrequest.Request(url, data=data, headers=headers, method=method)
    except ValueError as e:
        raise RequestBuildError(f"Invalid request URL '{url}': {e}") from e

    try:
        with urlrequest.urlopen(req, timeout=timeout) as resp:
            return HttpResponse(status=resp.status, body=resp.read())
    except HTTPError as e:
        # Non-success status: the caller decides how to fold it
        try:
            body = e.read()
        except Exception:
            body = b""
        return HttpResponse(status=e.code, body=body or b"")
    except URLError as e:
        raise TransportError(f"{method} {url} failed: {e.reason}") from e
    except (ConnectionError, TimeoutError, OSError, http.client.HTTPException) as e:
        raise TransportError(f"{method} {url} failed: {e}") from e


async def request(
    method: str,
    url: str,
    *,
    json_body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30.0,
) -> HttpResponse:
    """
    Issue an HTTP request with an explicit timeout.

    Args:
        method: HTTP method
        url: Absolute URL
        json_body: Optional JSON-serializable body
        headers: Extra request headers
        timeout: Socket timeout in seconds

    Returns:
        HttpResponse for any status code the server answered with

    Raises:
        RequestBuildError: If the request cannot be formed
        TransportError: If no response was received
    """
    all_headers = {"User-Agent": USER_AGENT}
    data = None
    if json_body is not None:
        data = encode_json(json_body)
        all_headers["Content-Type"] = "application/json"
    if headers:
        all_headers.update(headers)

    return await asyncio.to_thread(_send, method, url, data, all_headers, timeout)


def _download(url: str, dest: Path, timeout: float) -> int:
    tmp = dest.with_suffix(dest.suffix + ".part")
    req = urlrequest.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urlrequest.urlopen(req, timeout=timeout) as resp, open(tmp, "wb") as f:
            size = 0
            while True:
                chunk = resp.read(1024 * 1024)
                if not chunk:
                    break
                f.write(chunk)
                size += len(chunk)
    except (URLError, OSError, http.client.HTTPException) as e:
        tmp.unlink(missing_ok=True)
        raise TransportError(f"Download of {url} failed: {e}") from e

    tmp.replace(dest)
    return size


async def download(url: str, dest: Path, timeout: float = 600.0) -> int:
    """
    Stream a remote file to ``dest``.

    The file is written to a ``.part`` sibling first and renamed on success,
    so an interrupted download never leaves a truncated file at ``dest``.

    Returns:
        Number of bytes written
    """
    logger.info(f"Downloading {url} -> {dest}")
    return await asyncio.to_thread(_download, url, dest, timeout)
