from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import orjson


# ──────────────────────────────────────────────────────────────
# Connections
# ──────────────────────────────────────────────────────────────

def connect_sqlite(path: str) -> sqlite3.Connection:
    """
    Open a RW SQLite connection with sane pragmas.

    IMPORTANT:
    - SQLite will NOT create parent directories.
    - WAL mode requires the directory to be writable (creates -wal/-shm).
    - isolation_level=None: transactions are opened explicitly by Database.
    """
    if path != ":memory:":
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def connect_sqlite_ro(path: str) -> sqlite3.Connection:
    """
    Open a read-only SQLite connection (operator scripts).

    Note:
    - This requires the DB file to already exist.
    - We intentionally do NOT mkdir here.
    """
    uri = f"file:{path}?mode=ro"
    conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA query_only=ON;")
    return conn


class Database:
    """
    One shared connection plus a re-entrant lock.

    Request handlers run on a threadpool, so every unit of work takes the
    lock; writes additionally run inside BEGIN IMMEDIATE so they are
    all-or-nothing. Uniqueness is still enforced by the schema, never by
    application-level read-then-write.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            # Nested calls join the outer transaction.
            if self._depth:
                self._depth += 1
                try:
                    yield self.conn
                finally:
                    self._depth -= 1
                return

            self.conn.execute("BEGIN IMMEDIATE;")
            self._depth = 1
            try:
                yield self.conn
            except BaseException:
                self.conn.rollback()
                raise
            else:
                self.conn.commit()
            finally:
                self._depth = 0

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            yield self.conn

    def close(self) -> None:
        with self._lock:
            self.conn.close()


# ──────────────────────────────────────────────────────────────
# Schema
# ──────────────────────────────────────────────────────────────

def ensure_schema(conn: sqlite3.Connection) -> None:
    # Imported here: the stores import this module for the JSON helpers.
    from placebook.services.places_store import PlacesStore
    from placebook.services.saved_places import SavedPlacesLedger
    from placebook.services.trips import TripsDirectory

    # Order matters: saved_places references places + trips.
    PlacesStore(conn).ensure_schema()
    TripsDirectory(conn).ensure_schema()
    SavedPlacesLedger(conn).ensure_schema()


# ──────────────────────────────────────────────────────────────
# JSON blob helpers
# ──────────────────────────────────────────────────────────────

def dump_json(value) -> Optional[bytes]:
    if value is None:
        return None
    return orjson.dumps(value)


def load_json(blob) -> Optional[object]:
    if blob is None:
        return None
    return orjson.loads(blob)
