"""Settings API router for application configuration."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ...db.settings import get_all_settings, get_setting, set_setting
from ...dispatch import reset_engine
from ...providers import reset_providers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["settings"])

# Sensitive keys that should be redacted in logs
SENSITIVE_KEYS = {"token", "password", "secret", "api_key", "apikey"}

# Settings read when providers are built
PROVIDER_KEYS = {"vision_model", "local_timeout_seconds", "cloud_timeout_seconds", "model_keep_alive"}


def should_redact(key: str) -> bool:
    """Check if a setting key contains sensitive data that should be redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


class SettingValue(BaseModel):
    """Request model for updating a setting value."""
    value: str = Field(..., description="Setting value")
    description: str | None = Field(None, description="Optional description")


class SettingsResponse(BaseModel):
    """Response model for settings."""
    settings: Dict[str, str] = Field(..., description="All settings as key-value pairs")


@router.get("/settings", response_model=SettingsResponse)
async def get_settings() -> SettingsResponse:
    """Get all application settings."""
    try:
        return SettingsResponse(settings=get_all_settings())
    except Exception as e:
        logger.error(f"Error getting settings: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "code": "SETTINGS_ERROR",
                "message": f"Failed to get settings: {str(e)}"
            }
        )


@router.put("/settings/{key}")
async def update_setting(key: str, setting: SettingValue) -> Dict[str, Any]:
    """
    Update a setting value.

    Provider settings take effect on the next request; supervisor settings
    take effect on the next application start.

    Args:
        key: Setting key to update
        setting: New value and optional description
    """
    try:
        set_setting(key, setting.value, setting.description)
    except Exception as e:
        logger.error(f"Error updating setting '{key}': {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "code": "UPDATE_ERROR",
                "message": f"Failed to update setting: {str(e)}"
            }
        )

    if should_redact(key):
        logger.info(f"Updated setting '{key}' to '[REDACTED]'")
    else:
        logger.info(f"Updated setting '{key}' to '{setting.value}'")

    if key in PROVIDER_KEYS:
        reset_providers()
        reset_engine()

    return {
        "success": True,
        "key": key,
        "value": setting.value,
        "message": f"Setting '{key}' updated successfully"
    }


@router.get("/settings/{key}")
async def get_setting_value(key: str) -> Dict[str, Any]:
    """Get a specific setting value."""
    value = get_setting(key)
    if value is None:
        raise HTTPException(
            status_code=404,
            detail={
                "code": "SETTING_NOT_FOUND",
                "message": f"Setting '{key}' not found"
            }
        )
    return {"key": key, "value": value}
