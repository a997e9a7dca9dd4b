"""Provider registry built from settings and environment."""

import logging
from typing import Dict, Optional

from ..config import get_cloud_api_key, get_cloud_base_url, get_local_server_url
from ..db.settings import get_setting, get_setting_float
from .base import BaseProvider
from .cloud import CloudProvider
from .local import LocalServerProvider

logger = logging.getLogger(__name__)

LOCAL_PROVIDER_ID = "local"
CLOUD_PROVIDER_ID = "cloud"

_providers: Optional[Dict[str, BaseProvider]] = None


def build_providers() -> Dict[str, BaseProvider]:
    """Create the local and cloud providers from current settings."""
    local = LocalServerProvider(
        provider_id=LOCAL_PROVIDER_ID,
        model=get_setting("vision_model", "llava:7b"),
        base_url=get_local_server_url(),
        default_timeout=get_setting_float("local_timeout_seconds", 30.0),
        keep_alive=get_setting("model_keep_alive", "5m"),
    )
    cloud = CloudProvider(
        provider_id=CLOUD_PROVIDER_ID,
        api_key=get_cloud_api_key(),
        base_url=get_cloud_base_url(),
        default_timeout=get_setting_float("cloud_timeout_seconds", 60.0),
    )
    if not cloud.has_api_key:
        logger.warning("No cloud API key configured; cloud provider calls will be rejected")
    return {p.provider_id: p for p in (local, cloud)}


def get_providers() -> Dict[str, BaseProvider]:
    """Get or create the global provider registry."""
    global _providers
    if _providers is None:
        _providers = build_providers()
    return _providers


def get_provider(provider_id: str) -> BaseProvider:
    """
    Look up a provider by id.

    Raises:
        ValueError: If no provider is registered under ``provider_id``
    """
    providers = get_providers()
    if provider_id not in providers:
        raise ValueError(
            f"Unknown provider '{provider_id}'. Available: {', '.join(sorted(providers))}"
        )
    return providers[provider_id]


def reset_providers() -> None:
    """Drop the registry so the next lookup rebuilds it from settings."""
    global _providers
    _providers = None
