"""Provider request/result types and the base class for provider clients.

Every provider exposes the same four operations (query, caption, detect,
point) and returns an AnalysisResult. Backend-specific response shapes are
normalized inside each provider, so callers never branch on provider identity.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .prompts import scene_prompt

logger = logging.getLogger(__name__)

DEFAULT_QUERY_PROMPT = (
    "Describe what you see in this image in 2-3 sentences. "
    "Focus on the main subjects and activities."
)


class OperationKind(str, Enum):
    """Analysis operations supported by every provider."""

    QUERY = "query"
    CAPTION = "caption"
    DETECT = "detect"
    POINT = "point"


class CaptionLength(str, Enum):
    SHORT = "short"
    NORMAL = "normal"
    LONG = "long"


@dataclass(frozen=True)
class TriggerSignal:
    """Opaque signal from the frame trigger that caused a dispatch."""

    person_count: int
    density: float
    motion_intensity: float


@dataclass(frozen=True)
class ProviderRequest:
    """One analysis intent for one frame."""

    operation: OperationKind
    image: bytes
    prompt: Optional[str] = None
    length: Optional[CaptionLength] = None
    target: Optional[str] = None
    timeout_ms: Optional[int] = None
    trigger: Optional[TriggerSignal] = None

    def __post_init__(self):
        # Accept plain strings for the enum fields
        object.__setattr__(self, "operation", OperationKind(self.operation))
        if self.length is not None:
            object.__setattr__(self, "length", CaptionLength(self.length))

        if self.operation in (OperationKind.DETECT, OperationKind.POINT) and not self.target:
            raise ValueError(f"'{self.operation.value}' requires a target object label")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

    def describe(self) -> Dict[str, Any]:
        """Request parameters without the image payload."""
        data: Dict[str, Any] = {
            "operation": self.operation.value,
            "prompt": self.prompt,
            "length": self.length.value if self.length else None,
            "target": self.target,
            "timeout_ms": self.timeout_ms,
            "image_bytes": len(self.image),
        }
        if self.trigger is not None:
            data["trigger"] = {
                "person_count": self.trigger.person_count,
                "density": self.trigger.density,
                "motion_intensity": self.trigger.motion_intensity,
            }
        return data

    @classmethod
    def query(cls, image: bytes, prompt: Optional[str] = None, **kwargs) -> "ProviderRequest":
        return cls(OperationKind.QUERY, image, prompt=prompt, **kwargs)

    @classmethod
    def caption(cls, image: bytes, length: Optional[CaptionLength] = None, **kwargs) -> "ProviderRequest":
        return cls(OperationKind.CAPTION, image, length=length, **kwargs)

    @classmethod
    def detect(cls, image: bytes, target: str, **kwargs) -> "ProviderRequest":
        return cls(OperationKind.DETECT, image, target=target, **kwargs)

    @classmethod
    def point(cls, image: bytes, target: str, **kwargs) -> "ProviderRequest":
        return cls(OperationKind.POINT, image, target=target, **kwargs)

    @classmethod
    def for_scene(cls, image: bytes, scene_type: str, **kwargs) -> "ProviderRequest":
        """Structured scene query (queue, inventory, safety, or free description)."""
        return cls(OperationKind.QUERY, image, prompt=scene_prompt(scene_type), **kwargs)


@dataclass(frozen=True)
class AnalysisResult:
    """Normalized outcome of one provider call.

    A result carries either an answer (response and optional structured data)
    or an error, never both.
    """

    provider: str
    response: str = ""
    structured_data: Optional[Any] = None
    processing_time_ms: int = 0
    confidence: Optional[float] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.error is not None and (self.response or self.structured_data is not None):
            raise ValueError("AnalysisResult with an error cannot carry a response or structured data")
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, provider: str, error: str, processing_time_ms: int = 0) -> "AnalysisResult":
        return cls(provider=provider, processing_time_ms=processing_time_ms, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "response": self.response,
            "structured_data": self.structured_data,
            "processing_time_ms": self.processing_time_ms,
            "confidence": self.confidence,
            "error": self.error,
        }


def extract_json_object(text: str) -> Optional[Any]:
    """
    Parse the JSON object embedded in free text.

    Takes the slice from the first '{' to the last '}' and returns it parsed,
    or None if there is no such slice or it does not parse.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start:end + 1])
    except ValueError:
        return None


def summarize_objects(objects: Any) -> str:
    return f"Detected objects: {json.dumps(objects)}"


def summarize_points(points: Any) -> str:
    return f"Object coordinates: {json.dumps(points)}"


def normalize_confidence(value: Any) -> Optional[float]:
    """Backend confidence as a float in [0, 1], or None if absent or unusable."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if 0.0 <= value <= 1.0:
        return value
    return None


def elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class BaseProvider(ABC):
    """
    Base class for provider clients.

    Subclasses must implement:
    - query, caption, detect, point
    - describe

    Transport failures (no response at all) propagate as TransportError; the
    dispatch engine turns them into failed results. Request construction
    failures propagate as RequestBuildError.
    """

    kind: str = ""
    requires_local_server: bool = False

    def __init__(self, provider_id: str, default_timeout: float):
        """
        Args:
            provider_id: Identifier reported in every AnalysisResult
            default_timeout: Per-call timeout in seconds when the request has no override
        """
        self.provider_id = provider_id
        self.default_timeout = default_timeout

    def timeout_for(self, request: ProviderRequest) -> float:
        """Effective per-call timeout in seconds."""
        if request.timeout_ms is not None:
            return request.timeout_ms / 1000.0
        return self.default_timeout

    async def run(self, request: ProviderRequest) -> AnalysisResult:
        """Execute the operation named by ``request``."""
        timeout = self.timeout_for(request)

        if request.operation == OperationKind.QUERY:
            return await self.query(request.image, request.prompt, timeout=timeout)
        if request.operation == OperationKind.CAPTION:
            return await self.caption(request.image, request.length, timeout=timeout)
        if request.operation == OperationKind.DETECT:
            return await self.detect(request.image, request.target, timeout=timeout)
        if request.operation == OperationKind.POINT:
            return await self.point(request.image, request.target, timeout=timeout)

        raise ValueError(f"Unsupported operation: {request.operation}")

    @abstractmethod
    async def query(self, image: bytes, prompt: Optional[str] = None, timeout: Optional[float] = None) -> AnalysisResult:
        """Open-ended question about the image."""

    @abstractmethod
    async def caption(
        self, image: bytes, length: Optional[CaptionLength] = None, timeout: Optional[float] = None
    ) -> AnalysisResult:
        """Describe the image; length defaults to normal."""

    @abstractmethod
    async def detect(self, image: bytes, target: str, timeout: Optional[float] = None) -> AnalysisResult:
        """Locate instances of ``target`` as labeled regions."""

    @abstractmethod
    async def point(self, image: bytes, target: str, timeout: Optional[float] = None) -> AnalysisResult:
        """Locate ``target`` as coordinate points."""

    @abstractmethod
    def describe(self) -> Dict[str, Any]:
        """Static provider information for status displays."""

    def _result(
        self,
        start: float,
        response: str,
        structured_data: Optional[Any] = None,
        confidence: Optional[float] = None,
    ) -> AnalysisResult:
        return AnalysisResult(
            provider=self.provider_id,
            response=response,
            structured_data=structured_data,
            processing_time_ms=elapsed_ms(start),
            confidence=confidence,
        )

    def _failure(self, start: float, error: str) -> AnalysisResult:
        logger.warning(f"{self.provider_id}: {error}")
        return AnalysisResult.failure(self.provider_id, error, elapsed_ms(start))
