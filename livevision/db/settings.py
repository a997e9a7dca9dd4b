"""Database schema and functions for application settings."""

from typing import Optional, Any

from .db_config import get_db

# key, default value, description
DEFAULT_SETTINGS = [
    ("vision_model", "llava:7b", "Model served by the local server for frame analysis"),
    ("local_timeout_seconds", "30", "Default per-call timeout for the local provider"),
    ("cloud_timeout_seconds", "60", "Default per-call timeout for the cloud provider"),
    ("status_timeout_seconds", "2", "Timeout for local server status and liveness probes"),
    ("server_settle_seconds", "2", "Seconds to wait after spawning the local server before returning"),
    ("model_pull_timeout_seconds", "1800", "Timeout for a blocking model pull on the local server"),
    ("model_keep_alive", "5m", "How long the local server keeps the model loaded after a request"),
    ("preload_keep_alive", "10m", "keep_alive used when warming the model at startup"),
    ("auto_start_local_server", "true", "Start, pull and preload the local server when the app starts (true/false)"),
]


def init_settings_table():
    """Initialize settings table schema."""
    with get_db() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                description TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        for key, value, description in DEFAULT_SETTINGS:
            conn.execute("""
                INSERT OR IGNORE INTO settings (key, value, description)
                VALUES (?, ?, ?)
            """, (key, value, description))


def get_setting(key: str, default: Any = None) -> Optional[str]:
    """
    Get a setting value by key.

    Args:
        key: Setting key
        default: Default value if setting not found

    Returns:
        Setting value as string, or default if not found
    """
    with get_db() as conn:
        cursor = conn.execute("""
            SELECT value FROM settings WHERE key = ?
        """, (key,))
        row = cursor.fetchone()
        return row["value"] if row else default


def get_setting_bool(key: str, default: bool = False) -> bool:
    """
    Get a setting value as boolean.

    Args:
        key: Setting key
        default: Default value if setting not found or invalid

    Returns:
        Setting value as boolean
    """
    value = get_setting(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def get_setting_float(key: str, default: Optional[float] = None) -> Optional[float]:
    """
    Get a setting value as float.

    Args:
        key: Setting key
        default: Default value if setting not found or invalid

    Returns:
        Setting value as float, or default if empty/invalid
    """
    value = get_setting(key)
    if not value or value.strip() == "":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def set_setting(key: str, value: str, description: Optional[str] = None) -> None:
    """
    Set or update a setting value.

    Args:
        key: Setting key
        value: Setting value (will be stored as string)
        description: Optional description of the setting
    """
    with get_db() as conn:
        if description is not None:
            conn.execute("""
                INSERT INTO settings (key, value, description, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    description = excluded.description,
                    updated_at = CURRENT_TIMESTAMP
            """, (key, str(value), description))
        else:
            conn.execute("""
                INSERT INTO settings (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
            """, (key, str(value)))


def get_all_settings() -> dict:
    """
    Get all settings as a dictionary.

    Returns:
        Dictionary of all settings {key: value}
    """
    with get_db() as conn:
        cursor = conn.execute("SELECT key, value FROM settings")
        return {row["key"]: row["value"] for row in cursor.fetchall()}
