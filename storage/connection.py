"""
SQLite connection pool.

Readers check out independent connections from a queue; writes go through
one dedicated connection serialised by a lock (single writer, many
readers). WAL journaling lets readers proceed during a write transaction.
"""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path


logger = logging.getLogger(__name__)


def apply_pragmas(
    conn: sqlite3.Connection,
    *,
    busy_timeout_ms: int = 30000,
    cache_size_kb: int = -65536,
    mmap_size_bytes: int = 134217728,
) -> None:
    """Apply WAL and performance PRAGMAs."""
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA temp_store = MEMORY")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute(f"PRAGMA mmap_size = {mmap_size_bytes}")


class ConnectionPool:
    """Bounded pool of independent connections to one database file."""

    def __init__(self, path: str | Path, size: int = 20, timeout: float = 30.0):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        if str(path) in ("", ":memory:"):
            # every connection would open its own empty database
            raise ValueError("ConnectionPool needs a file database, not :memory:")
        self.path = str(path)
        self.size = size
        self.timeout = timeout
        self._available: queue.LifoQueue[sqlite3.Connection] = queue.LifoQueue()
        self._all: list[sqlite3.Connection] = []
        self._created = 0
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._writer: sqlite3.Connection | None = None
        self._closed = False

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self.path,
            timeout=self.timeout,
            isolation_level=None,  # explicit BEGIN/COMMIT
            check_same_thread=False,  # one thread at a time via checkout
        )
        conn.row_factory = sqlite3.Row
        apply_pragmas(conn, busy_timeout_ms=int(self.timeout * 1000))
        self._all.append(conn)
        return conn

    def _checkout(self) -> sqlite3.Connection:
        if self._closed:
            raise RuntimeError("ConnectionPool is closed")
        try:
            return self._available.get_nowait()
        except queue.Empty:
            pass
        with self._lock:
            if self._created < self.size:
                self._created += 1
                try:
                    return self._connect()
                except Exception:
                    self._created -= 1
                    raise
        try:
            return self._available.get(timeout=self.timeout)
        except queue.Empty:
            raise TimeoutError(
                f"No database connection available within {self.timeout}s (pool size {self.size})"
            ) from None

    @contextmanager
    def connection(self):
        """Check out a read connection for the duration of the block."""
        conn = self._checkout()
        try:
            yield conn
        finally:
            if self._closed:
                conn.close()
            else:
                if conn.in_transaction:
                    conn.rollback()
                self._available.put(conn)

    @contextmanager
    def writer(self):
        """Exclusive access to the single write connection."""
        with self._write_lock:
            if self._closed:
                raise RuntimeError("ConnectionPool is closed")
            if self._writer is None:
                with self._lock:
                    self._writer = self._connect()
            conn = self._writer
            try:
                yield conn
            finally:
                if conn.in_transaction:
                    conn.rollback()

    def close(self) -> None:
        with self._write_lock, self._lock:
            self._closed = True
            for conn in self._all:
                try:
                    conn.close()
                except sqlite3.Error as exc:
                    logger.debug("Ignoring error closing connection: %s", exc)
            self._all.clear()
            self._writer = None
            while not self._available.empty():
                self._available.get_nowait()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
