"""Provider backed by the supervised local model server."""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Dict, Optional

from .. import transport
from ..config import get_local_server_url
from .base import (
    DEFAULT_QUERY_PROMPT,
    AnalysisResult,
    BaseProvider,
    CaptionLength,
    extract_json_object,
    summarize_objects,
    summarize_points,
)
from .prompts import caption_prompt, detect_prompt, point_prompt

logger = logging.getLogger(__name__)

# Generation options tuned for short interactive answers on a single frame
GENERATE_OPTIONS = {
    "temperature": 0.3,
    "num_predict": 200,
    "num_ctx": 2048,
    "num_thread": 4,
}


class LocalServerProvider(BaseProvider):
    """
    Vision model served by the local server's /api/generate endpoint.

    Every operation is a prompt; detect and point ask for JSON and parse it
    out of the reply.
    """

    kind = "local"
    requires_local_server = True

    def __init__(
        self,
        provider_id: str = "local",
        model: str = "llava:7b",
        base_url: Optional[str] = None,
        default_timeout: float = 30.0,
        keep_alive: str = "5m",
    ):
        super().__init__(provider_id, default_timeout)
        self.model = model
        self.base_url = (base_url or get_local_server_url()).rstrip("/")
        self.keep_alive = keep_alive

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.provider_id,
            "kind": self.kind,
            "model": self.model,
            "base_url": self.base_url,
            "default_timeout_seconds": self.default_timeout,
            "requires_local_server": self.requires_local_server,
        }

    async def _generate(self, image: bytes, prompt: str, timeout: Optional[float]) -> transport.HttpResponse:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "images": [base64.b64encode(image).decode("ascii")],
            "stream": False,
            "keep_alive": self.keep_alive,
            "options": GENERATE_OPTIONS,
        }
        return await transport.request(
            "POST",
            f"{self.base_url}/api/generate",
            json_body=payload,
            timeout=timeout or self.default_timeout,
        )

    async def _generate_text(self, start: float, image: bytes, prompt: str, timeout: Optional[float]):
        """Run a generation and return (text, None) or (None, failed result)."""
        resp = await self._generate(image, prompt, timeout)

        if not resp.ok:
            detail = resp.body.decode(errors="replace")[:200]
            return None, self._failure(start, f"Analysis failed: HTTP {resp.status} {detail}".rstrip())

        try:
            body = resp.json()
        except ValueError as e:
            return None, self._failure(start, f"Malformed response from local server: {e}")

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            return None, self._failure(start, "Malformed response from local server: missing 'response'")

        return text.strip(), None

    async def query(self, image: bytes, prompt: Optional[str] = None, timeout: Optional[float] = None) -> AnalysisResult:
        start = time.perf_counter()
        text, failed = await self._generate_text(start, image, prompt or DEFAULT_QUERY_PROMPT, timeout)
        if failed:
            return failed
        return self._result(start, text, structured_data=extract_json_object(text))

    async def caption(
        self, image: bytes, length: Optional[CaptionLength] = None, timeout: Optional[float] = None
    ) -> AnalysisResult:
        start = time.perf_counter()
        length = CaptionLength(length or CaptionLength.NORMAL)
        text, failed = await self._generate_text(start, image, caption_prompt(length.value), timeout)
        if failed:
            return failed
        return self._result(start, text)

    async def detect(self, image: bytes, target: str, timeout: Optional[float] = None) -> AnalysisResult:
        start = time.perf_counter()
        text, failed = await self._generate_text(start, image, detect_prompt(target), timeout)
        if failed:
            return failed

        objects = self._parse_list(text, "objects")
        if objects is None:
            return self._failure(start, f"Could not parse detections from model output: {text[:200]}")
        return self._result(start, summarize_objects(objects), structured_data={"objects": objects})

    async def point(self, image: bytes, target: str, timeout: Optional[float] = None) -> AnalysisResult:
        start = time.perf_counter()
        text, failed = await self._generate_text(start, image, point_prompt(target), timeout)
        if failed:
            return failed

        points = self._parse_list(text, "points")
        if points is None:
            return self._failure(start, f"Could not parse points from model output: {text[:200]}")
        return self._result(start, summarize_points(points), structured_data={"points": points})

    @staticmethod
    def _parse_list(text: str, key: str) -> Optional[list]:
        parsed = extract_json_object(text)
        if isinstance(parsed, dict) and isinstance(parsed.get(key), list):
            return parsed[key]
        return None
