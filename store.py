"""Local persistence for topics, recipient address and digest history.

The store is a key/value slot store: each slot holds one string, usually a
serialized JSON document. Nothing about the documents is versioned, so
reads must tolerate slots that are absent or hold something unparseable.

Database Schema:
    slots table:
        - key (TEXT, PK): Slot name (e.g. 'digest-history')
        - value (TEXT): Serialized document
        - updated_at (INTEGER): Last write time (Unix epoch)

Decoding Contract:
    read_json() attempts the read and the decode and, on any decode error,
    returns the caller's default. The failure is not raised, but it is kept
    on the returned ReadResult so callers and tests can see the fallback
    was taken.
"""

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from errors import MalformedPersistedState

logger = logging.getLogger(__name__)

# Slot names
TOPICS_KEY = "digest-topics"
EMAIL_KEY = "digest-email"
HISTORY_KEY = "digest-history"


class SlotStore:
    """SQLite-backed key/value slot store.

    Example:
        >>> with SlotStore("digest.db") as store:
        ...     store.write("digest-email", "me@example.com")
        ...     store.read("digest-email")
        'me@example.com'
    """

    SCHEMA = """
    -- One row per named slot
    CREATE TABLE IF NOT EXISTS slots (
        key TEXT PRIMARY KEY,            -- Slot name
        value TEXT NOT NULL,             -- Serialized document
        updated_at INTEGER NOT NULL      -- Last write (Unix epoch)
    );
    """

    path: Path
    conn: sqlite3.Connection

    def __init__(self, path: Path | str):
        """Open (or create) the store.

        Args:
            path: Path to SQLite database file
        """
        self.path = Path(path)
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.path))
        self.conn.row_factory = sqlite3.Row

        # WAL mode allows concurrent readers during writes
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(self.SCHEMA)
        self.conn.commit()
        logger.debug("Store initialized | path=%s", self.path)

    def read(self, key: str) -> str | None:
        """Read a slot, or None if it was never written."""
        cursor = self.conn.execute("SELECT value FROM slots WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row["value"] if row else None

    def write(self, key: str, value: str) -> None:
        """Write a slot, replacing any previous value."""
        self.conn.execute(
            "INSERT OR REPLACE INTO slots (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, int(time.time())),
        )
        self.conn.commit()
        logger.debug("Slot written | key=%s chars=%d", key, len(value))

    def delete(self, key: str) -> None:
        """Remove a slot if present."""
        self.conn.execute("DELETE FROM slots WHERE key = ?", (key,))
        self.conn.commit()

    def keys(self) -> list[str]:
        """List written slot names."""
        cursor = self.conn.execute("SELECT key FROM slots ORDER BY key")
        return [row["key"] for row in cursor.fetchall()]

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()

    def __enter__(self) -> "SlotStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class MemoryStore:
    """In-memory slot store with the same interface as SlotStore."""

    def __init__(self, slots: dict[str, str] | None = None):
        self.slots: dict[str, str] = dict(slots or {})

    def read(self, key: str) -> str | None:
        return self.slots.get(key)

    def write(self, key: str, value: str) -> None:
        self.slots[key] = value

    def delete(self, key: str) -> None:
        self.slots.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self.slots)

    def close(self) -> None:
        pass


@dataclass
class ReadResult:
    """Outcome of a tolerant slot read.

    Attributes:
        value: Decoded value, or the default when the fallback was taken
        fallback_used: True when the slot was absent or malformed
        error: Decode failure, None when the slot was absent or valid
    """

    value: Any
    fallback_used: bool = False
    error: MalformedPersistedState | None = None


def read_json(
    store: Any,
    key: str,
    default: Callable[[], Any],
    expect: type = list,
) -> ReadResult:
    """Read and decode a JSON slot, falling back to a default.

    Args:
        store: Any object with ``read(key) -> str | None``
        key: Slot name
        default: Factory for the fallback value
        expect: Required type of the decoded document

    Returns:
        ReadResult with the decoded value or the default
    """
    raw = store.read(key)
    if raw is None:
        return ReadResult(value=default(), fallback_used=True)

    try:
        value = json.loads(raw)
    except (ValueError, RecursionError) as e:
        error = MalformedPersistedState(key, f"invalid JSON ({e})")
        logger.warning("Stored slot unreadable, using default | key=%s error=%s", key, e)
        return ReadResult(value=default(), fallback_used=True, error=error)

    if not isinstance(value, expect):
        error = MalformedPersistedState(
            key, f"expected {expect.__name__}, found {type(value).__name__}"
        )
        logger.warning("Stored slot has wrong type, using default | key=%s", key)
        return ReadResult(value=default(), fallback_used=True, error=error)

    return ReadResult(value=value)


def write_json(store: Any, key: str, value: Any) -> None:
    """Serialize and write a JSON slot."""
    store.write(key, json.dumps(value, ensure_ascii=False))
