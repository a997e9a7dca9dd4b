"""Request history storage module using SQLite."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..db.db_config import get_db


class HistoryStorage:
    """SQLite-based storage for analysis request history.

    Image payloads are never stored, only the request parameters and the
    normalized result.
    """

    def __init__(self):
        self._initialized = False

    def _init_db(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        with get_db() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS request_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    service TEXT NOT NULL,
                    request_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    status TEXT NOT NULL,
                    request_data TEXT NOT NULL,
                    response_data TEXT NOT NULL,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_service_timestamp
                ON request_history(service, timestamp DESC)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_request_id
                ON request_history(request_id)
            """)

        self._initialized = True

    def reset(self) -> None:
        """Forget schema state, e.g. after the data directory changed."""
        self._initialized = False

    def add_request(
        self,
        service: str,
        request_id: str,
        request_data: Dict[str, Any],
        response_data: Dict[str, Any],
        status: str = "success",
    ) -> None:
        """
        Add a request to history.

        Args:
            service: Service name (analyze, caption, detect, point, scene, compare)
            request_id: Unique request ID
            request_data: Request parameters without image data
            response_data: Response data
            status: Request status (success/error)
        """
        self._init_db()
        timestamp = datetime.now(timezone.utc).isoformat()

        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO request_history
                (service, request_id, timestamp, status, request_data, response_data)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    service,
                    request_id,
                    timestamp,
                    status,
                    json.dumps(request_data),
                    json.dumps(response_data),
                ),
            )

    def get_history(
        self, service: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Get request history, most recent first.

        Args:
            service: Service name, or None for all services
            limit: Maximum number of entries to return
            offset: Number of entries to skip
        """
        self._init_db()

        where_clause = ""
        params: List[Any] = []
        if service:
            where_clause = "WHERE service = ?"
            params.append(service)
        params.extend([limit, offset])

        with get_db() as conn:
            cursor = conn.execute(
                f"""
                SELECT service, request_id, timestamp, status, request_data, response_data
                FROM request_history
                {where_clause}
                ORDER BY id DESC
                LIMIT ? OFFSET ?
                """,
                params,
            )
            return [self._row_to_entry(row) for row in cursor.fetchall()]

    def get_request(self, service: str, request_id: str) -> Optional[Dict[str, Any]]:
        """Get a specific request by ID, or None if not found."""
        self._init_db()

        with get_db() as conn:
            cursor = conn.execute(
                """
                SELECT service, request_id, timestamp, status, request_data, response_data
                FROM request_history
                WHERE service = ? AND request_id = ?
                LIMIT 1
                """,
                (service, request_id),
            )
            row = cursor.fetchone()

        return self._row_to_entry(row) if row is not None else None

    def clear_history(self, service: str) -> None:
        """Clear all history for a service."""
        self._init_db()

        with get_db() as conn:
            conn.execute(
                "DELETE FROM request_history WHERE service = ?",
                (service,),
            )

    @staticmethod
    def _row_to_entry(row) -> Dict[str, Any]:
        return {
            "service": row["service"],
            "timestamp": row["timestamp"],
            "request_id": row["request_id"],
            "status": row["status"],
            "request": json.loads(row["request_data"]),
            "response": json.loads(row["response_data"]),
        }


# Global instance
history_storage = HistoryStorage()
