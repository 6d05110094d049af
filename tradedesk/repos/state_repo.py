"""State repository — JSON documents keyed by fixed logical names."""

import json
import logging
from typing import Any, Optional

from tradedesk.repos.db import get_connection

logger = logging.getLogger("tradedesk")

SETTINGS_KEY = "settings"
FUNDS_KEY = "funds"
PORTFOLIO_KEY = "portfolio"
TRANSACTIONS_KEY = "transactions"
HISTORY_KEY = "history"


class StateRepo:
    """Data access layer for the ``app_state`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def put(self, key: str, value: Any) -> None:
        """Store *value* (JSON-serialisable) under *key*."""
        self.put_many({key: value})

    def put_many(self, documents: dict[str, Any]) -> None:
        """Store several documents in a single transaction.

        Either every document is written or none is.
        """
        rows = [(k, json.dumps(v)) for k, v in documents.items()]
        conn = get_connection(self._db_path)
        try:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO app_state (key, value, updated_at)
                    VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    rows,
                )
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[Any]:
        """Return the document stored under *key*, or ``None``.

        A document that is not valid JSON is logged and treated as absent.
        """
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT value FROM app_state WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Stored state '%s' is not valid JSON; using defaults.", key)
            return None
