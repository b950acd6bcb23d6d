"""
State Store Module

Provides the ordered key-value state store interface the ledger writes
through, with an in-memory implementation (testing) and a SQLite
implementation (persistence). Values are opaque bytes; keys are composite
keys ordered by code point.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Tuple, Union
import bisect
import sqlite3
import threading
from pathlib import Path

from .config import LedgerConfig
from .exceptions import StoreError
from .logging_config import get_logger


logger = get_logger("state_ledger.storage")


def _require_bytes(value) -> None:
    if not isinstance(value, (bytes, bytearray)):
        raise StoreError(f"State values must be bytes, got {type(value).__name__}")


class StateStore(ABC):
    """Abstract interface for state store backends"""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Get the value stored under key, or None"""
        pass

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Store value under key, replacing any previous value"""
        pass

    @abstractmethod
    def put_if(self, key: str, value: bytes, expected: Optional[bytes]) -> bool:
        """
        Store value under key only if the current value equals expected

        expected=None means the key must not exist yet. The comparison and
        the write happen as one step.

        Returns:
            True if written, False if the current value did not match
        """
        pass

    @abstractmethod
    def range_scan(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        """Iterate (key, value) pairs with start_key <= key < end_key, in key order"""
        pass

    def close(self) -> None:
        """Close store connection (default no-op)"""
        pass


class InMemoryStateStore(StateStore):
    """
    In-memory state store for testing

    Args:
        fail_after_puts: If set, every put after this many successful puts
            raises StoreError. Simulates a host failure mid-invocation.
    """

    def __init__(self, fail_after_puts: Optional[int] = None):
        self._data: Dict[str, bytes] = {}
        self._keys: List[str] = []
        self._lock = threading.RLock()
        self.fail_after_puts = fail_after_puts
        self.put_count = 0

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        _require_bytes(value)
        with self._lock:
            self._write(key, value)

    def put_if(self, key: str, value: bytes, expected: Optional[bytes]) -> bool:
        _require_bytes(value)
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._write(key, value)
            return True

    def _write(self, key: str, value: bytes) -> None:
        # Caller holds self._lock
        if self.fail_after_puts is not None and self.put_count >= self.fail_after_puts:
            raise StoreError(f"Simulated store failure writing {key!r}")
        if key not in self._data:
            bisect.insort(self._keys, key)
        self._data[key] = bytes(value)
        self.put_count += 1

    def range_scan(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        with self._lock:
            lo = bisect.bisect_left(self._keys, start_key)
            hi = bisect.bisect_left(self._keys, end_key)
            # Snapshot so writes during iteration do not disturb the scan
            rows = [(key, self._data[key]) for key in self._keys[lo:hi]]
        return iter(rows)

    def keys(self) -> List[str]:
        """All stored keys in order, for debugging/inspection"""
        with self._lock:
            return list(self._keys)


class SQLiteStateStore(StateStore):
    """SQLite state store implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        try:
            # Autocommit: every put is durable as soon as it returns
            self._connection = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open state store {self.db_path}: {e}") from e

    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            raise StoreError(f"State store {self.db_path} is closed")
        return self._connection

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            try:
                row = self._conn().execute(
                    "SELECT value FROM state WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to read {key!r}: {e}") from e
        if row:
            return bytes(row[0])
        return None

    def put(self, key: str, value: bytes) -> None:
        _require_bytes(value)
        with self._lock:
            try:
                self._conn().execute(
                    "INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)",
                    (key, sqlite3.Binary(value))
                )
            except sqlite3.Error as e:
                raise StoreError(f"Failed to write {key!r}: {e}") from e

    def put_if(self, key: str, value: bytes, expected: Optional[bytes]) -> bool:
        _require_bytes(value)
        with self._lock:
            conn = self._conn()
            try:
                # IMMEDIATE takes the write lock up front, so no other
                # connection can write between the read and the replace
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute(
                        "SELECT value FROM state WHERE key = ?", (key,)
                    ).fetchone()
                    current = bytes(row[0]) if row else None
                    if current != expected:
                        conn.execute("ROLLBACK")
                        return False
                    conn.execute(
                        "INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)",
                        (key, sqlite3.Binary(value))
                    )
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
            except sqlite3.Error as e:
                raise StoreError(f"Failed to write {key!r}: {e}") from e
        return True

    def range_scan(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        # TEXT keys compare as UTF-8 bytes, which matches code point order
        with self._lock:
            try:
                rows = self._conn().execute(
                    "SELECT key, value FROM state WHERE key >= ? AND key < ? ORDER BY key",
                    (start_key, end_key)
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to scan [{start_key!r}, {end_key!r}): {e}") from e
        return iter([(key, bytes(value)) for key, value in rows])

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_store(config: LedgerConfig) -> StateStore:
    """Create the state store selected by configuration"""
    backend = config.store_backend.lower()
    if backend == "memory":
        return InMemoryStateStore()
    if backend == "sqlite":
        logger.info(f"Opening SQLite state store at {config.sqlite_path}")
        return SQLiteStateStore(config.sqlite_path)
    raise ValueError(f"Unknown store backend: {config.store_backend}")
