from __future__ import annotations

import logging
from typing import Optional, Tuple

from placebook.core.contracts import Place, SavedPlace, SavedPlaceStatus, SavedPlaceUpdate
from placebook.core.errors import InvalidUpdate, SavedPlaceNotFound
from placebook.core.keying import new_id
from placebook.core.storage import Database
from placebook.core.time import utc_now_iso

logger = logging.getLogger(__name__)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS saved_places (
  id         TEXT PRIMARY KEY,
  user_id    INTEGER NOT NULL,
  place_id   TEXT NOT NULL
             REFERENCES places(place_id) ON DELETE RESTRICT ON UPDATE CASCADE,
  trip_id    TEXT NOT NULL
             REFERENCES trips(id) ON DELETE CASCADE ON UPDATE CASCADE,
  status     TEXT NOT NULL DEFAULT 'WISHLIST'
             CHECK (status IN ('WISHLIST', 'VISITED', 'SKIPPED')),
  user_notes TEXT,
  visited_at TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  UNIQUE (user_id, place_id)
);

CREATE INDEX IF NOT EXISTS idx_saved_places_user ON saved_places(user_id);
CREATE INDEX IF NOT EXISTS idx_saved_places_place ON saved_places(place_id);
CREATE INDEX IF NOT EXISTS idx_saved_places_status ON saved_places(status);
CREATE INDEX IF NOT EXISTS idx_saved_places_visited ON saved_places(visited_at);
"""


def visited_at_after(
    *,
    old_status: SavedPlaceStatus,
    old_visited_at: Optional[str],
    new_status: SavedPlaceStatus,
    now: str,
) -> Optional[str]:
    """
    visited_at for a status transition.

    Entering VISITED stamps `now`, staying VISITED keeps the original stamp,
    anything else clears it.
    """
    if new_status != "VISITED":
        return None
    if old_status == "VISITED" and old_visited_at:
        return old_visited_at
    return now


def _row_to_saved(row) -> SavedPlace:
    return SavedPlace(
        id=row["id"],
        user_id=int(row["user_id"]),
        place_id=row["place_id"],
        trip_id=row["trip_id"],
        status=row["status"],
        user_notes=row["user_notes"],
        visited_at=row["visited_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SavedPlacesLedger:
    """Per-user saved places. Like PlacesStore, never commits on its own."""

    def __init__(self, conn):
        self.conn = conn

    def ensure_schema(self) -> None:
        self.conn.executescript(_SCHEMA_SQL)

    def insert(
        self,
        *,
        user_id: int,
        place_id: str,
        trip_id: str,
        status: SavedPlaceStatus,
        user_notes: Optional[str],
        now: str,
    ) -> SavedPlace:
        """Raises sqlite3.IntegrityError when (user_id, place_id) already exists."""
        saved_id = new_id()
        visited_at = now if status == "VISITED" else None
        self.conn.execute(
            """
            INSERT INTO saved_places
              (id, user_id, place_id, trip_id, status, user_notes, visited_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (saved_id, int(user_id), place_id, trip_id, status, user_notes, visited_at, now, now),
        )
        saved = self.get(user_id=user_id, saved_id=saved_id)
        if saved is None:
            raise RuntimeError(f"saved_places row missing after insert: {saved_id}")
        return saved

    def get(self, *, user_id: int, saved_id: str) -> Optional[SavedPlace]:
        row = self.conn.execute(
            "SELECT * FROM saved_places WHERE id=? AND user_id=?", (saved_id, int(user_id))
        ).fetchone()
        return _row_to_saved(row) if row else None

    def get_by_pair(self, *, user_id: int, place_id: str) -> Optional[SavedPlace]:
        row = self.conn.execute(
            "SELECT * FROM saved_places WHERE user_id=? AND place_id=?", (int(user_id), place_id)
        ).fetchone()
        return _row_to_saved(row) if row else None

    def list_for_user(
        self, *, user_id: int, status: Optional[SavedPlaceStatus] = None
    ) -> list[Tuple[SavedPlace, Place]]:
        """The user's saves joined with their place, in place_id order."""
        params: list = [int(user_id)]
        where = "sp.user_id = ?"
        if status:
            where += " AND sp.status = ?"
            params.append(status)

        rows = self.conn.execute(
            f"""
            SELECT sp.*,
                   p.id AS p_id, p.lat AS p_lat, p.lng AS p_lng,
                   p.created_at AS p_created_at, p.updated_at AS p_updated_at
            FROM saved_places sp
            JOIN places p ON p.place_id = sp.place_id
            WHERE {where}
            ORDER BY sp.place_id
            """,
            params,
        ).fetchall()

        out: list[Tuple[SavedPlace, Place]] = []
        for r in rows:
            place = Place(
                id=r["p_id"],
                place_id=r["place_id"],
                lat=float(r["p_lat"]),
                lng=float(r["p_lng"]),
                created_at=r["p_created_at"],
                updated_at=r["p_updated_at"],
            )
            out.append((_row_to_saved(r), place))
        return out

    def write_update(
        self,
        *,
        saved_id: str,
        status: SavedPlaceStatus,
        user_notes: Optional[str],
        visited_at: Optional[str],
        now: str,
    ) -> None:
        self.conn.execute(
            """
            UPDATE saved_places
            SET status=?, user_notes=?, visited_at=?, updated_at=?
            WHERE id=?
            """,
            (status, user_notes, visited_at, now, saved_id),
        )


class SavedPlaces:
    """Status / notes updates for saved places."""

    def __init__(self, *, db: Database):
        self.db = db

    def update(self, *, user_id: int, saved_id: str, changes: SavedPlaceUpdate) -> SavedPlace:
        """
        Partial update. Only fields present in `changes.model_fields_set`
        are applied; an explicit `user_notes: null` clears the notes.
        """
        fields = changes.model_fields_set & {"status", "user_notes"}
        if not fields:
            raise InvalidUpdate("Provide status and/or user_notes")
        if "status" in fields and changes.status is None:
            raise InvalidUpdate("status cannot be null")

        with self.db.transaction() as conn:
            ledger = SavedPlacesLedger(conn)
            current = ledger.get(user_id=user_id, saved_id=saved_id)
            if current is None:
                raise SavedPlaceNotFound(f"No saved place {saved_id} for this user")

            now = utc_now_iso()
            status = changes.status if "status" in fields else current.status
            notes = changes.user_notes if "user_notes" in fields else current.user_notes
            visited_at = visited_at_after(
                old_status=current.status,
                old_visited_at=current.visited_at,
                new_status=status,
                now=now,
            )

            ledger.write_update(
                saved_id=current.id,
                status=status,
                user_notes=notes,
                visited_at=visited_at,
                now=now,
            )
            updated = ledger.get(user_id=user_id, saved_id=saved_id)

        if current.status != status:
            logger.info(
                "[saved] status %s -> %s saved_id=%s user_id=%s",
                current.status, status, saved_id, user_id,
            )
        return updated
