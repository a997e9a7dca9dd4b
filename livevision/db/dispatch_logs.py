"""Per-call dispatch logs.

One row per provider call settled by the dispatch engine, including calls
short-circuited by the readiness gate.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .db_config import get_db


def ensure_table() -> None:
    """Create dispatch_logs table if it doesn't exist."""
    with get_db() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS dispatch_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,

                provider TEXT NOT NULL,
                operation TEXT NOT NULL,
                correlation_id TEXT,

                completed_at DATETIME NOT NULL,
                duration_ms INTEGER NOT NULL,

                -- succeeded, failed_soft, failed_hard
                status TEXT NOT NULL,
                error_message TEXT,
                input_size_bytes INTEGER,

                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_dispatch_logs_provider_time
            ON dispatch_logs (provider, completed_at DESC)
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_dispatch_logs_correlation
            ON dispatch_logs (correlation_id)
        """)


def log_call(
    provider: str,
    operation: str,
    duration_ms: int,
    status: str,
    correlation_id: Optional[str] = None,
    error_message: Optional[str] = None,
    input_size_bytes: Optional[int] = None,
) -> int:
    """
    Record a settled provider call.

    Returns:
        The log ID
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO dispatch_logs (
                provider, operation, correlation_id, completed_at,
                duration_ms, status, error_message, input_size_bytes
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                provider, operation, correlation_id,
                datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
                duration_ms, status, error_message, input_size_bytes,
            )
        )
        return cursor.lastrowid


def get_recent_logs(
    limit: int = 100,
    provider: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Get recent dispatch logs, optionally filtered by provider or comparison."""
    conditions = []
    params: List[Any] = []

    if provider:
        conditions.append("provider = ?")
        params.append(provider)
    if correlation_id:
        conditions.append("correlation_id = ?")
        params.append(correlation_id)

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)

    params.append(limit)

    with get_db() as conn:
        cursor = conn.execute(
            f"""
            SELECT * FROM dispatch_logs
            {where_clause}
            ORDER BY id DESC
            LIMIT ?
            """,
            params
        )
        return [dict(row) for row in cursor.fetchall()]


def get_log_stats(hours: int = 24) -> List[Dict[str, Any]]:
    """
    Aggregate call counts and latency per provider over the last ``hours``.

    Returns:
        One dict per provider with total, succeeded, failed and avg_duration_ms
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            SELECT
                provider,
                COUNT(*) as total,
                SUM(CASE WHEN status = 'succeeded' THEN 1 ELSE 0 END) as succeeded,
                SUM(CASE WHEN status != 'succeeded' THEN 1 ELSE 0 END) as failed,
                AVG(duration_ms) as avg_duration_ms
            FROM dispatch_logs
            WHERE completed_at >= datetime('now', ?)
            GROUP BY provider
            ORDER BY provider
            """,
            (f"-{hours} hours",)
        )
        return [dict(row) for row in cursor.fetchall()]
