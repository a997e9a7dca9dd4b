"""Application configuration for data paths, backend endpoints and credentials."""

import os
from pathlib import Path

# Fixed bind address for the supervised local model server
LOCAL_SERVER_HOST = "127.0.0.1:11434"

# Release used when the local server binary has to be fetched
LOCAL_SERVER_VERSION = "v0.4.7"
LOCAL_SERVER_RELEASE_BASE = "https://github.com/ollama/ollama/releases/download"

DEFAULT_CLOUD_BASE_URL = "https://api.moondream.ai/v1"

# Environment variable names
DATA_DIR_ENV = "LIVEVISION_DATA_DIR"
LOCAL_HOST_ENV = "LIVEVISION_LOCAL_HOST"
CLOUD_API_KEY_ENV = "MOONDREAM_API_KEY"
CLOUD_BASE_URL_ENV = "MOONDREAM_BASE_URL"


def get_data_dir() -> Path:
    """
    Get the per-user data directory.

    Checks LIVEVISION_DATA_DIR first, then falls back to
    ~/.live-vision-analyzer.
    """
    if env_data_dir := os.getenv(DATA_DIR_ENV):
        return Path(env_data_dir)

    return Path.home() / ".live-vision-analyzer"


def get_server_dir() -> Path:
    """Directory holding the local server binary and its models."""
    return get_data_dir() / "ollama"


def get_local_server_host() -> str:
    """host:port the local server binds to (LIVEVISION_LOCAL_HOST overrides)."""
    return os.getenv(LOCAL_HOST_ENV) or LOCAL_SERVER_HOST


def get_local_server_url() -> str:
    """Base URL of the local server API."""
    return f"http://{get_local_server_host()}"


def get_cloud_base_url() -> str:
    """
    Get the cloud provider base URL with priority order:
    1. Environment variable (MOONDREAM_BASE_URL)
    2. Default (https://api.moondream.ai/v1)
    """
    env_url = os.getenv(CLOUD_BASE_URL_ENV)
    if env_url:
        return env_url.rstrip("/")

    return DEFAULT_CLOUD_BASE_URL


def get_cloud_api_key() -> str:
    """
    Get the cloud provider API key from the environment.

    A missing key is not an error: the cloud provider is still registered and
    its calls fail authentication at the backend.

    Returns:
        API key (empty string if not configured)
    """
    return os.getenv(CLOUD_API_KEY_ENV, "")
