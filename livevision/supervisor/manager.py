"""LocalServerSupervisor - lifecycle of the locally-hosted model server.

Responsibilities:
- Acquire the server binary on first use
- Start the server exactly once (or adopt an already-running instance)
- Provision and warm models
- Stop the spawned process on teardown
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .. import transport
from ..config import get_local_server_host, get_server_dir
from ..errors import ModelPullError, StartupError, TransportError
from .binary import ensure_binary
from .health import STATUS_TIMEOUT_SECONDS, check_status, probe_version
from .protocol import ServerProcessHandle, ServerState, ServerStatus

logger = logging.getLogger(__name__)


class LocalServerSupervisor:
    """
    Owns the local server process.

    start/stop/pull_model are serialized by one asyncio lock. Status checks go
    through ``check_status`` which never takes that lock, so readiness polling
    is not starved by a slow start or pull.

    Usable as an async context manager: the spawned process is stopped on
    every exit path.
    """

    def __init__(
        self,
        server_dir: Optional[Path] = None,
        host: Optional[str] = None,
        settle_seconds: float = 2.0,
        status_timeout: float = STATUS_TIMEOUT_SECONDS,
        pull_timeout: float = 1800.0,
        preload_timeout: float = 120.0,
    ):
        """
        Initialize supervisor.

        Args:
            server_dir: Directory for the binary and models (default: per-user data dir)
            host: host:port the server binds to
            settle_seconds: Fixed wait after spawning, before start() returns
            status_timeout: Timeout for liveness probes
            pull_timeout: Timeout for a blocking model pull
            preload_timeout: Timeout for the model warm-up request
        """
        self.server_dir = server_dir or get_server_dir()
        self.models_dir = self.server_dir / "models"
        self.host = host or get_local_server_host()
        self.base_url = f"http://{self.host}"

        self.settle_seconds = settle_seconds
        self.status_timeout = status_timeout
        self.pull_timeout = pull_timeout
        self.preload_timeout = preload_timeout

        self._handle: Optional[ServerProcessHandle] = None
        self._external = False
        self._lock = asyncio.Lock()

    @property
    def handle(self) -> Optional[ServerProcessHandle]:
        return self._handle

    @property
    def state(self) -> ServerState:
        if self._handle is not None:
            return ServerState.RUNNING if self._handle.is_alive() else ServerState.EXITED
        if self._external:
            return ServerState.EXTERNAL
        return ServerState.STOPPED

    async def start(self) -> ServerState:
        """
        Start the local server if it is not already available.

        Idempotent: a live handle or an externally managed server that answers
        the liveness probe both count as success without spawning.

        Returns:
            Resulting ServerState (RUNNING or EXTERNAL)

        Raises:
            StartupError: If the binary cannot be fetched or the process cannot be spawned
        """
        async with self._lock:
            if self._handle is not None:
                if self._handle.is_alive():
                    return ServerState.RUNNING
                logger.warning(
                    f"Local server (pid {self._handle.proc.pid}) exited with code "
                    f"{self._handle.proc.returncode}, restarting"
                )
                self._handle = None

            if await probe_version(self.base_url, timeout=self.status_timeout):
                logger.info("Local server already running, using existing instance")
                self._external = True
                return ServerState.EXTERNAL

            self._external = False
            binary = await ensure_binary(self.server_dir)

            try:
                self.models_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StartupError(f"Failed to create models directory {self.models_dir}: {e}") from e

            self._handle = self._spawn(binary)

            # Give the server time to bind; callers poll check_status() for readiness
            await asyncio.sleep(self.settle_seconds)
            return ServerState.RUNNING

    def _spawn(self, binary: Path) -> ServerProcessHandle:
        env = os.environ.copy()
        env["OLLAMA_MODELS"] = str(self.models_dir)
        env["OLLAMA_HOST"] = self.host

        log_path = self.server_dir / "server.log"
        logger.info(f"Starting local server: {binary} serve (host={self.host}, log={log_path})")

        try:
            with open(log_path, "ab") as log_file:
                proc = subprocess.Popen(
                    [str(binary), "serve"],
                    env=env,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                )
        except OSError as e:
            raise StartupError(f"Failed to start local server: {e}") from e

        logger.info(f"Local server spawned with pid {proc.pid}")
        return ServerProcessHandle(proc=proc, data_dir=self.server_dir, models_dir=self.models_dir)

    async def stop(self) -> None:
        """Stop the spawned server, if any. Safe to call repeatedly; never raises."""
        async with self._lock:
            await asyncio.to_thread(self._terminate)

    def close(self) -> None:
        """Synchronous teardown for interpreter exit."""
        self._terminate()

    def _terminate(self) -> None:
        handle, self._handle = self._handle, None
        self._external = False
        if handle is None:
            return

        try:
            if not handle.is_alive():
                return

            logger.info(f"Stopping local server (pid {handle.proc.pid})")
            handle.proc.terminate()
            try:
                handle.proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                handle.proc.kill()
                handle.proc.wait(timeout=2)
        except Exception as e:
            # Already exited or reaped elsewhere
            logger.debug(f"Ignoring error while stopping local server: {e}")

    def manifest_path(self, model_name: str) -> Path:
        """
        On-disk manifest written by the server once a model is pulled.

        ``llava:7b`` -> models/manifests/registry.ollama.ai/library/llava/7b
        ``user/model`` -> models/manifests/registry.ollama.ai/user/model/latest
        """
        repo, _, tag = model_name.partition(":")
        parts = repo.split("/")
        if len(parts) == 1:
            parts = ["library"] + parts
        return self.models_dir.joinpath("manifests", "registry.ollama.ai", *parts, tag or "latest")

    async def pull_model(self, model_name: str) -> bool:
        """
        Make sure a model is available on the local server.

        Args:
            model_name: Model identifier (e.g., 'llava:7b')

        Returns:
            True if a pull was issued, False if the manifest was already on disk

        Raises:
            ModelPullError: If the server rejects the pull or cannot be reached
        """
        async with self._lock:
            if self.manifest_path(model_name).exists():
                logger.info(f"Model {model_name} already present")
                return False

            logger.info(f"Pulling model {model_name}...")
            try:
                resp = await transport.request(
                    "POST",
                    f"{self.base_url}/api/pull",
                    json_body={"name": model_name, "stream": False},
                    timeout=self.pull_timeout,
                )
            except TransportError as e:
                raise ModelPullError(model_name, detail=str(e)) from e

            if not resp.ok:
                raise ModelPullError(model_name, resp.status, resp.body.decode(errors="replace")[:200])

            logger.info(f"Model {model_name} pulled")
            return True

    async def preload_model(self, model_name: str, keep_alive: str = "10m") -> bool:
        """
        Load a model into memory ahead of the first frame.

        Returns:
            True if the server accepted the warm-up request
        """
        try:
            resp = await transport.request(
                "POST",
                f"{self.base_url}/api/generate",
                json_body={"model": model_name, "keep_alive": keep_alive},
                timeout=self.preload_timeout,
            )
        except TransportError as e:
            logger.warning(f"Failed to preload model {model_name}: {e}")
            return False

        if not resp.ok:
            logger.warning(f"Failed to preload model {model_name}: HTTP {resp.status}")
            return False

        logger.info(f"Model {model_name} preloaded (keep_alive={keep_alive})")
        return True

    async def bootstrap(self, model_name: str, keep_alive: str = "10m") -> ServerStatus:
        """
        Start the server, pull the model and warm it.

        Returns:
            Status after the sequence completes
        """
        await self.start()
        await self.pull_model(model_name)
        await self.preload_model(model_name, keep_alive=keep_alive)
        return await check_status(self.base_url, timeout=self.status_timeout)

    def describe(self) -> Dict[str, Any]:
        """Handle information without any I/O."""
        handle = self._handle
        return {
            "state": self.state.value,
            "pid": handle.pid if handle else None,
            "base_url": self.base_url,
            "models_dir": str(self.models_dir),
            "uptime_seconds": round(time.time() - handle.started_at, 1) if handle else None,
        }

    async def __aenter__(self) -> "LocalServerSupervisor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


# Global supervisor instance
_supervisor: Optional[LocalServerSupervisor] = None


def get_supervisor() -> LocalServerSupervisor:
    """
    Get or create the global LocalServerSupervisor.

    The spawned process is also stopped at interpreter exit.
    """
    global _supervisor
    if _supervisor is None:
        from ..db.settings import get_setting_float

        _supervisor = LocalServerSupervisor(
            settle_seconds=get_setting_float("server_settle_seconds", 2.0),
            status_timeout=get_setting_float("status_timeout_seconds", STATUS_TIMEOUT_SECONDS),
            pull_timeout=get_setting_float("model_pull_timeout_seconds", 1800.0),
        )
        atexit.register(_supervisor.close)
    return _supervisor


def reset_supervisor() -> None:
    """Drop the global instance after stopping it."""
    global _supervisor
    if _supervisor is not None:
        _supervisor.close()
        atexit.unregister(_supervisor.close)
        _supervisor = None
