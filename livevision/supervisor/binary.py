"""Acquisition of the local server binary."""

from __future__ import annotations

import logging
import os
import platform
import stat
from pathlib import Path
from typing import Optional

from .. import transport
from ..config import LOCAL_SERVER_RELEASE_BASE, LOCAL_SERVER_VERSION
from ..errors import StartupError, TransportError

logger = logging.getLogger(__name__)

# (system, machine) -> release asset
RELEASE_ASSETS = {
    ("darwin", "arm64"): "ollama-darwin",
    ("darwin", "x86_64"): "ollama-darwin",
    ("windows", "amd64"): "ollama-windows-amd64.exe",
    ("windows", "x86_64"): "ollama-windows-amd64.exe",
    ("linux", "x86_64"): "ollama-linux-amd64",
    ("linux", "amd64"): "ollama-linux-amd64",
    ("linux", "aarch64"): "ollama-linux-arm64",
    ("linux", "arm64"): "ollama-linux-arm64",
}


def binary_name(system: Optional[str] = None) -> str:
    system = (system or platform.system()).lower()
    return "ollama.exe" if system == "windows" else "ollama"


def release_url(
    system: Optional[str] = None,
    machine: Optional[str] = None,
    version: str = LOCAL_SERVER_VERSION,
) -> str:
    """
    Select the release download URL for a platform.

    Args:
        system: OS name as reported by platform.system() (default: current)
        machine: Architecture as reported by platform.machine() (default: current)
        version: Release tag

    Raises:
        StartupError: If no release exists for the platform
    """
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()

    asset = RELEASE_ASSETS.get((system, machine))
    if asset is None:
        raise StartupError(f"No local server release for {system}/{machine}")

    return f"{LOCAL_SERVER_RELEASE_BASE}/{version}/{asset}"


def _make_executable(path: Path) -> None:
    if os.name != "posix":
        return
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH)


async def ensure_binary(server_dir: Path, url: Optional[str] = None) -> Path:
    """
    Ensure the server binary exists under ``server_dir/bin``, fetching it if absent.

    Idempotent: an existing binary is returned without any network access.

    Args:
        server_dir: Per-user server directory
        url: Override download URL (default: platform release URL)

    Returns:
        Path to the executable

    Raises:
        StartupError: If download or permission setting fails
    """
    bin_dir = server_dir / "bin"
    binary_path = bin_dir / binary_name()

    if binary_path.exists():
        return binary_path

    try:
        bin_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StartupError(f"Failed to create {bin_dir}: {e}") from e

    download_url = url or release_url()
    logger.info(f"Local server binary not found, downloading from {download_url}")

    try:
        size = await transport.download(download_url, binary_path)
    except TransportError as e:
        raise StartupError(f"Failed to download local server: {e}") from e

    try:
        _make_executable(binary_path)
    except OSError as e:
        # Only an executable binary may remain at binary_path
        binary_path.unlink(missing_ok=True)
        raise StartupError(f"Failed to mark {binary_path} executable: {e}") from e

    logger.info(f"Local server binary installed at {binary_path} ({size / (1024 * 1024):.1f} MB)")
    return binary_path
