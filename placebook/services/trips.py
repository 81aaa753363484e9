from __future__ import annotations

import logging
from typing import Optional, Tuple

from placebook.core.contracts import Trip
from placebook.core.keying import new_id

logger = logging.getLogger(__name__)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS trips (
  id         TEXT PRIMARY KEY,
  user_id    INTEGER NOT NULL,
  name       TEXT NOT NULL,
  city       TEXT,
  is_default INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_trips_user ON trips(user_id);

-- at most one default trip per user
CREATE UNIQUE INDEX IF NOT EXISTS uq_trips_default_per_user
  ON trips(user_id) WHERE is_default = 1;
"""


def _row_to_trip(row) -> Trip:
    return Trip(
        id=row["id"],
        user_id=int(row["user_id"]),
        name=row["name"],
        city=row["city"],
        is_default=bool(row["is_default"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class TripsDirectory:
    """
    Boundary to the trips owned by the trip CRUD service.

    The core only needs ownership lookups and the per-user default trip;
    the table lives in the same database so both run inside the ingestion
    transaction.
    """

    def __init__(self, conn):
        self.conn = conn

    def ensure_schema(self) -> None:
        self.conn.executescript(_SCHEMA_SQL)

    def get(self, trip_id: str) -> Optional[Trip]:
        row = self.conn.execute("SELECT * FROM trips WHERE id=?", (trip_id,)).fetchone()
        return _row_to_trip(row) if row else None

    def owner_of(self, trip_id: str) -> Optional[int]:
        row = self.conn.execute("SELECT user_id FROM trips WHERE id=?", (trip_id,)).fetchone()
        return int(row["user_id"]) if row else None

    def create(self, *, user_id: int, name: str, now: str, city: Optional[str] = None) -> Trip:
        trip_id = new_id()
        self.conn.execute(
            """
            INSERT INTO trips (id, user_id, name, city, is_default, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, ?, ?)
            """,
            (trip_id, int(user_id), name.strip(), (city or "").strip() or None, now, now),
        )
        trip = self.get(trip_id)
        if trip is None:
            raise RuntimeError(f"trip row missing after insert: {trip_id}")
        return trip

    def default_for(self, *, user_id: int, name: str, now: str) -> Tuple[Trip, bool]:
        """Find-or-create the user's default trip. Returns (trip, created)."""
        cur = self.conn.execute(
            """
            INSERT OR IGNORE INTO trips (id, user_id, name, city, is_default, created_at, updated_at)
            VALUES (?, ?, ?, NULL, 1, ?, ?)
            """,
            (new_id(), int(user_id), name, now, now),
        )
        created = cur.rowcount == 1
        row = self.conn.execute(
            "SELECT * FROM trips WHERE user_id=? AND is_default=1", (int(user_id),)
        ).fetchone()
        if created:
            logger.info("[trips] created default trip user_id=%s trip_id=%s", user_id, row["id"])
        return _row_to_trip(row), created
