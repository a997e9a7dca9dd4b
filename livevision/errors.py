"""Exceptions raised by the supervision and dispatch layer.

Only hard failures are raised. Backend-side failures during analysis
(non-success status, malformed body, not ready, timeout) are captured in
``AnalysisResult.error`` instead.
"""

from typing import Optional


class StartupError(RuntimeError):
    """Local server binary could not be fetched, made executable or spawned."""


class ModelPullError(RuntimeError):
    """Local server rejected a model pull."""

    def __init__(self, model: str, status: Optional[int] = None, detail: str = ""):
        self.model = model
        self.status = status
        message = f"Failed to pull model '{model}'"
        if status is not None:
            message = f"{message}: HTTP {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RequestBuildError(ValueError):
    """An outbound request could not be formed (e.g. unserializable body)."""


class TransportError(ConnectionError):
    """No HTTP response was received (connection refused, DNS, timeout)."""
