"""
Key-value blob storage used to persist the embedding cache record.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from .db import get_db, init_db


class IKeyValueStore(ABC):
    """Abstract interface for string blob storage keyed by a fixed identifier."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value. Missing keys are ignored."""
        pass


class InMemoryKeyValueStore(IKeyValueStore):
    """Process-local store, useful for tests and ephemeral sessions."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SQLiteKeyValueStore(IKeyValueStore):
    """Blob store backed by the kv_blobs SQLite table."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        init_db(db_path)

    def get(self, key: str) -> Optional[str]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM kv_blobs WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO kv_blobs (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """,
                (key, value)
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM kv_blobs WHERE key = ?", (key,))
            conn.commit()
