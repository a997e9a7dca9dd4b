"""Shared types for the local server supervisor.

The supervised server exposes an Ollama-compatible HTTP API:
- GET  /api/version  -> Liveness probe
- GET  /api/tags     -> Model catalog
- POST /api/pull     -> Model provisioning
- POST /api/generate -> Inference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import time


class ServerState(str, Enum):
    """Supervisor view of the local server."""

    STOPPED = "stopped"  # No handle held
    EXTERNAL = "external"  # Already running, not spawned by us
    RUNNING = "running"  # Spawned and alive
    EXITED = "exited"  # Spawned but the process has exited


@dataclass(frozen=True)
class ServerStatus:
    """Snapshot of local server health, produced fresh on every check."""

    running: bool
    model_ready: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"running": self.running, "model_ready": self.model_ready, "error": self.error}


@dataclass
class ServerProcessHandle:
    """Supervisor's view of a spawned local server process."""

    proc: Any  # subprocess.Popen
    data_dir: Path
    models_dir: Path
    started_at: float = field(default_factory=time.time)

    @property
    def pid(self) -> Optional[int]:
        """OS process id, only while the process is running."""
        return self.proc.pid if self.is_alive() else None

    def is_alive(self) -> bool:
        """Check if the server process is still running."""
        return self.proc.poll() is None
