import sqlite3
import time
from pathlib import Path
from typing import Dict, Optional

from ctxtracker.config import LOCAL_STORAGE_FILENAME, resolve_home

CONTEXT_CHANGE_KEY = "context-change-timestamp"


class LocalStorage:
    """SQLite-backed key-value store for small string values"""

    def __init__(self, db_path: Path = None):
        self.db_path = db_path or (resolve_home() / LOCAL_STORAGE_FILENAME)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Open the database on first use"""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._init_db()
        return self._conn

    def _init_db(self):
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS items (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        cur = self.conn.execute("SELECT value FROM items WHERE key=?", (key,))
        row = cur.fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str):
        self.conn.execute(
            "INSERT OR REPLACE INTO items (key, value) VALUES (?, ?)",
            (key, value)
        )
        self.conn.commit()

    def remove_item(self, key: str) -> bool:
        cur = self.conn.execute("DELETE FROM items WHERE key=?", (key,))
        self.conn.commit()
        return cur.rowcount > 0

    def all_items(self) -> Dict[str, str]:
        cur = self.conn.execute("SELECT key, value FROM items ORDER BY key")
        return {key: value for key, value in cur.fetchall()}

    def clear(self):
        self.conn.execute("DELETE FROM items")
        self.conn.commit()

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __repr__(self):
        return f"<LocalStorage path={self.db_path}>"


def touch_context_change(kv: LocalStorage) -> str:
    """Record that the current context changed, as epoch milliseconds"""
    stamp = str(int(time.time() * 1000))
    kv.set_item(CONTEXT_CHANGE_KEY, stamp)
    return stamp


def get_context_change(kv: LocalStorage) -> Optional[str]:
    return kv.get_item(CONTEXT_CHANGE_KEY)
