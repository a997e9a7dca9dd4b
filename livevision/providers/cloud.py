"""Provider backed by a remote cloud vision API."""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Callable, Dict, Optional

from .. import transport
from ..config import DEFAULT_CLOUD_BASE_URL
from .base import (
    DEFAULT_QUERY_PROMPT,
    AnalysisResult,
    BaseProvider,
    CaptionLength,
    extract_json_object,
    normalize_confidence,
    summarize_objects,
    summarize_points,
)

logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Moondream-Auth"


def _field(body: Dict[str, Any], key: str, kind: type, default: Any):
    """Field value checked against ``kind``; missing or null gives ``default``."""
    value = body.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise ValueError(f"'{key}' is {type(value).__name__}, expected {kind.__name__}")
    return value


def _normalize_query(body: Dict[str, Any]):
    answer = _field(body, "answer", str, "")
    return answer, extract_json_object(answer), normalize_confidence(body.get("confidence"))


def _normalize_caption(body: Dict[str, Any]):
    return _field(body, "caption", str, ""), None, None


def _normalize_detect(body: Dict[str, Any]):
    objects = _field(body, "objects", list, [])
    return summarize_objects(objects), {"objects": objects}, None


def _normalize_point(body: Dict[str, Any]):
    points = _field(body, "points", list, [])
    return summarize_points(points), {"points": points}, None


# operation -> response normalizer returning (response, structured_data, confidence)
NORMALIZERS: Dict[str, Callable[[Dict[str, Any]], tuple]] = {
    "query": _normalize_query,
    "caption": _normalize_caption,
    "detect": _normalize_detect,
    "point": _normalize_point,
}


class CloudProvider(BaseProvider):
    """
    Remote vision API with one endpoint per operation.

    Requests carry the frame as a data URI and authenticate with an opaque
    API key header. A missing key is allowed; the backend then rejects the
    call and the result carries the HTTP error.
    """

    kind = "cloud"
    requires_local_server = False

    def __init__(
        self,
        provider_id: str = "cloud",
        api_key: str = "",
        base_url: str = DEFAULT_CLOUD_BASE_URL,
        default_timeout: float = 60.0,
    ):
        super().__init__(provider_id, default_timeout)
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.provider_id,
            "kind": self.kind,
            "base_url": self.base_url,
            "default_timeout_seconds": self.default_timeout,
            "requires_local_server": self.requires_local_server,
            "has_api_key": self.has_api_key,
        }

    @staticmethod
    def image_url(image: bytes) -> str:
        return f"data:image/jpeg;base64,{base64.b64encode(image).decode('ascii')}"

    async def _call(
        self,
        operation: str,
        image: bytes,
        params: Dict[str, Any],
        timeout: Optional[float],
    ) -> AnalysisResult:
        start = time.perf_counter()
        body = {"image_url": self.image_url(image), **params, "stream": False}

        logger.debug(f"{self.provider_id}: sending {operation} request")
        resp = await transport.request(
            "POST",
            f"{self.base_url}/{operation}",
            json_body=body,
            headers={AUTH_HEADER: self._api_key},
            timeout=timeout or self.default_timeout,
        )

        if not resp.ok:
            error = f"{operation.capitalize()} API error {resp.status}"
            detail = resp.body.decode(errors="replace")[:200]
            if detail:
                error = f"{error}: {detail}"
            return self._failure(start, error)

        try:
            data = resp.json()
        except ValueError as e:
            return self._failure(start, f"Failed to parse {operation} response: {e}")
        if not isinstance(data, dict):
            return self._failure(start, f"Failed to parse {operation} response: expected an object")

        try:
            response, structured, confidence = NORMALIZERS[operation](data)
        except ValueError as e:
            return self._failure(start, f"Failed to parse {operation} response: {e}")
        result = self._result(start, response, structured_data=structured, confidence=confidence)
        logger.info(f"{self.provider_id}: {operation} completed in {result.processing_time_ms}ms")
        return result

    async def query(self, image: bytes, prompt: Optional[str] = None, timeout: Optional[float] = None) -> AnalysisResult:
        return await self._call("query", image, {"question": prompt or DEFAULT_QUERY_PROMPT}, timeout)

    async def caption(
        self, image: bytes, length: Optional[CaptionLength] = None, timeout: Optional[float] = None
    ) -> AnalysisResult:
        length = CaptionLength(length or CaptionLength.NORMAL)
        return await self._call("caption", image, {"length": length.value}, timeout)

    async def detect(self, image: bytes, target: str, timeout: Optional[float] = None) -> AnalysisResult:
        return await self._call("detect", image, {"object": target}, timeout)

    async def point(self, image: bytes, target: str, timeout: Optional[float] = None) -> AnalysisResult:
        return await self._call("point", image, {"object": target}, timeout)
