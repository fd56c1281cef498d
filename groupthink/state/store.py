"""
Retry State Store — persisted per-device retry chains.

Behavioral Contract:
- At most one RetryEntry per device ID.
- Starting a chain always overwrites the previous entry and allocates a
  fresh generation. Generations live in their own table and are never
  reset, so a token from a finished or superseded chain can never match
  a later entry for the same device.
"""

import sqlite3
from typing import List, Optional

from groupthink.models.retry import RetryEntry


class RetryStateStore:
    """
    Retry entries keyed by device ID.
    SQLite; ``:memory:`` by default, a file path to survive restarts.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the retry tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS retry_entry (
                device_id TEXT PRIMARY KEY,
                attempt_count INTEGER NOT NULL DEFAULT 0,
                last_trigger INTEGER NOT NULL,
                generation INTEGER NOT NULL,
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS chain_generation (
                device_id TEXT PRIMARY KEY,
                generation INTEGER NOT NULL
            )
        """)
        self._conn.commit()

    def start_chain(self, device_id: str, timestamp: int) -> RetryEntry:
        """Reset the device's entry to attempt 0 under a new generation."""
        generation = self._next_generation(device_id)
        self._conn.execute(
            """
            INSERT INTO retry_entry (device_id, attempt_count, last_trigger, generation)
            VALUES (?, 0, ?, ?)
            ON CONFLICT(device_id) DO UPDATE SET
                attempt_count = 0,
                last_trigger = excluded.last_trigger,
                generation = excluded.generation,
                updated_at = datetime('now')
            """,
            (device_id, timestamp, generation),
        )
        self._conn.commit()
        return RetryEntry(
            device_id=device_id,
            attempt_count=0,
            last_trigger=timestamp,
            generation=generation,
        )

    def _next_generation(self, device_id: str) -> int:
        row = self._conn.execute(
            "SELECT generation FROM chain_generation WHERE device_id = ?",
            (device_id,),
        ).fetchone()
        generation = (row["generation"] if row else 0) + 1
        self._conn.execute(
            """
            INSERT INTO chain_generation (device_id, generation) VALUES (?, ?)
            ON CONFLICT(device_id) DO UPDATE SET generation = excluded.generation
            """,
            (device_id, generation),
        )
        return generation

    def _deserialize(self, row: sqlite3.Row) -> RetryEntry:
        return RetryEntry(
            device_id=row["device_id"],
            attempt_count=row["attempt_count"],
            last_trigger=row["last_trigger"],
            generation=row["generation"],
        )

    def get(self, device_id: str) -> Optional[RetryEntry]:
        """Get the active entry for a device, if any."""
        row = self._conn.execute(
            "SELECT * FROM retry_entry WHERE device_id = ?", (device_id,)
        ).fetchone()
        return self._deserialize(row) if row else None

    def increment(self, device_id: str) -> Optional[RetryEntry]:
        """Bump the attempt count. Returns None when no entry exists."""
        cursor = self._conn.execute(
            """
            UPDATE retry_entry
            SET attempt_count = attempt_count + 1, updated_at = datetime('now')
            WHERE device_id = ?
            """,
            (device_id,),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            return None
        return self.get(device_id)

    def clear(self, device_id: str) -> bool:
        """Delete the device's entry. Its generation counter is kept."""
        cursor = self._conn.execute(
            "DELETE FROM retry_entry WHERE device_id = ?", (device_id,)
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def all(self) -> List[RetryEntry]:
        """All active entries, oldest trigger first."""
        rows = self._conn.execute(
            "SELECT * FROM retry_entry ORDER BY last_trigger, device_id"
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def count(self) -> int:
        """Number of active retry chains."""
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM retry_entry").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
