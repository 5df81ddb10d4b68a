"""
Small key-value store for state the chat keeps between runs (conversation
history, coach profile). Backed by SQLite, or by a dict in tests and for
throwaway sessions.
"""
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def get_utc_now() -> str:
    """Return current UTC time as ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class MemoryStore:
    """In-process store; contents vanish with the process."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class SQLiteStore:
    """Key-value rows in a single SQLite table."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.init_database()

    @contextmanager
    def get_db(self):
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {str(e)}")
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {str(e)}")
        finally:
            conn.close()

    def init_database(self) -> None:
        with self.get_db() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key           TEXT PRIMARY KEY,
                    value         TEXT NOT NULL,
                    last_modified TEXT NOT NULL
                )
            """)
            conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        with self.get_db() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self.get_db() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO kv_store (key, value, last_modified)
                VALUES (?, ?, ?)
            """, (key, value, get_utc_now()))
            conn.commit()

    def remove_item(self, key: str) -> None:
        with self.get_db() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
