"""Supervision of the locally-hosted model server.

Key components:
- manager: LocalServerSupervisor for process lifecycle and model provisioning
- health: lock-free liveness probe and model readiness classification
- binary: platform release selection and binary download
- protocol: ServerStatus, ServerProcessHandle, ServerState
"""

from .health import (
    ACCEPTED_MODEL_MARKERS,
    check_status,
    probe_version,
)
from .manager import (
    LocalServerSupervisor,
    get_supervisor,
    reset_supervisor,
)
from .protocol import ServerProcessHandle, ServerState, ServerStatus

__all__ = [
    "ACCEPTED_MODEL_MARKERS",
    "check_status",
    "probe_version",
    "LocalServerSupervisor",
    "get_supervisor",
    "reset_supervisor",
    "ServerProcessHandle",
    "ServerState",
    "ServerStatus",
]
