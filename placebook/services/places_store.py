from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from placebook.core.contracts import Place, PlaceCache, ProviderPlace
from placebook.core.errors import InvalidPayload
from placebook.core.geo import is_valid_lat, is_valid_lng
from placebook.core.keying import new_id, payload_digest
from placebook.core.storage import dump_json, load_json


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS places (
  id         TEXT PRIMARY KEY,
  place_id   TEXT NOT NULL UNIQUE,   -- upstream id, never expires
  lat        REAL NOT NULL,
  lng        REAL NOT NULL,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS place_cache (
  id                TEXT PRIMARY KEY,
  place_id          TEXT NOT NULL UNIQUE
                    REFERENCES places(place_id) ON DELETE CASCADE ON UPDATE CASCADE,
  formatted_address TEXT,
  address_json      BLOB,           -- orjson dump of the upstream projection
  types_json        BLOB,
  plus_code_json    BLOB,
  viewport_json     BLOB,
  payload_digest    TEXT,
  fetched_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_place_cache_fetched_at ON place_cache(fetched_at);
"""

# Upstream fields kept in address_json (the display/debug passthrough).
_ADDRESS_JSON_FIELDS: tuple[str, ...] = (
    "name",
    "formatted_address",
    "address_components",
    "vicinity",
    "rating",
    "user_ratings_total",
    "price_level",
    "opening_hours",
    "website",
    "url",
    "business_status",
)


def parse_payload(raw: Union[ProviderPlace, Dict[str, Any]]) -> Tuple[ProviderPlace, str, float, float]:
    """
    Validate an upstream payload. Returns (payload, place_id, lat, lng).

    Only the identifier and the coordinate pair are required; every other
    field is optional and unknown fields are carried through.
    """
    if isinstance(raw, ProviderPlace):
        payload = raw
    else:
        if not isinstance(raw, dict):
            raise InvalidPayload("Place data is required")
        try:
            payload = ProviderPlace.model_validate(raw)
        except ValidationError as e:
            raise InvalidPayload(f"Malformed place payload: {e.errors()[0].get('msg', 'invalid')}") from e

    place_id = (payload.place_id or "").strip()
    if not place_id:
        raise InvalidPayload("Google Place ID is required", code="place_id_required")

    loc = payload.geometry.location if payload.geometry else None
    if loc is None:
        raise InvalidPayload("Place coordinates (geometry.location) are required", code="geometry_required")
    if not is_valid_lat(loc.lat) or not is_valid_lng(loc.lng):
        raise InvalidPayload(f"Coordinates out of range: lat={loc.lat} lng={loc.lng}", code="geometry_out_of_range")

    return payload, place_id, float(loc.lat), float(loc.lng)


def cache_fields_from_payload(payload: ProviderPlace) -> Dict[str, Any]:
    """
    Project a provider payload into place_cache columns.

    Typed sub-fields (types, plus code, viewport) get their own columns;
    everything else that is displayable lands in address_json, together
    with any fields we don't model yet under "extra".
    """
    address: Dict[str, Any] = {}
    for field in _ADDRESS_JSON_FIELDS:
        v = getattr(payload, field)
        if v is not None:
            address[field] = v
    if payload.formatted_phone_number:
        address["phone"] = payload.formatted_phone_number
    if payload.international_phone_number:
        address["international_phone"] = payload.international_phone_number
    if payload.model_extra:
        address["extra"] = dict(payload.model_extra)

    viewport = payload.geometry.viewport if payload.geometry else None
    full = payload.model_dump(mode="json", exclude={"trip_id"}, exclude_none=True)

    return {
        "formatted_address": payload.formatted_address or None,
        "address_json": address or None,
        "types": list(payload.types) if payload.types else None,
        "plus_code": payload.plus_code.model_dump() if payload.plus_code else None,
        "viewport": viewport.model_dump() if viewport else None,
        "payload_digest": payload_digest(full),
    }


def _row_to_place(row) -> Place:
    return Place(
        id=row["id"],
        place_id=row["place_id"],
        lat=float(row["lat"]),
        lng=float(row["lng"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_cache(row) -> PlaceCache:
    return PlaceCache(
        place_id=row["place_id"],
        formatted_address=row["formatted_address"],
        address_json=load_json(row["address_json"]),
        types=load_json(row["types_json"]),
        plus_code=load_json(row["plus_code_json"]),
        viewport=load_json(row["viewport_json"]),
        payload_digest=row["payload_digest"],
        fetched_at=row["fetched_at"],
    )


class PlacesStore:
    """
    Canonical place store (SQLite): one `places` row per upstream place_id
    plus its 1:1 `place_cache` row.

    Methods never commit; callers wrap them in Database.transaction() so the
    place, cache and saved-place writes land together.
    """

    def __init__(self, conn):
        self.conn = conn

    def ensure_schema(self) -> None:
        self.conn.executescript(_SCHEMA_SQL)

    # ──────────────────────────────────────────────────────────────
    # Places
    # ──────────────────────────────────────────────────────────────

    def insert_or_get(self, *, place_id: str, lat: float, lng: float, now: str) -> Tuple[Place, bool]:
        """
        Atomic find-or-create keyed by place_id.

        Returns (place, created). When the row already exists it is returned
        untouched; concurrent callers converge on the same row through the
        UNIQUE(place_id) constraint.
        """
        cur = self.conn.execute(
            """
            INSERT INTO places (id, place_id, lat, lng, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(place_id) DO NOTHING
            """,
            (new_id(), place_id, float(lat), float(lng), now, now),
        )
        created = cur.rowcount == 1
        place = self.get(place_id)
        if place is None:
            raise RuntimeError(f"place row missing after insert: {place_id}")
        return place, created

    def get(self, place_id: str) -> Optional[Place]:
        row = self.conn.execute("SELECT * FROM places WHERE place_id=?", (place_id,)).fetchone()
        return _row_to_place(row) if row else None

    def update_coords(self, *, place_id: str, lat: float, lng: float, now: str) -> None:
        self.conn.execute(
            "UPDATE places SET lat=?, lng=?, updated_at=? WHERE place_id=?",
            (float(lat), float(lng), now, place_id),
        )

    # ──────────────────────────────────────────────────────────────
    # Cache
    # ──────────────────────────────────────────────────────────────

    def put_cache(self, *, place_id: str, fields: Dict[str, Any], fetched_at: str) -> None:
        """Insert the cache row, or overwrite every derived field of an existing one."""
        sql = """
        INSERT INTO place_cache
          (id, place_id, formatted_address, address_json, types_json, plus_code_json,
           viewport_json, payload_digest, fetched_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(place_id) DO UPDATE SET
          formatted_address=excluded.formatted_address,
          address_json=excluded.address_json,
          types_json=excluded.types_json,
          plus_code_json=excluded.plus_code_json,
          viewport_json=excluded.viewport_json,
          payload_digest=excluded.payload_digest,
          fetched_at=excluded.fetched_at
        """
        self.conn.execute(
            sql,
            (
                new_id(),
                place_id,
                fields.get("formatted_address"),
                dump_json(fields.get("address_json")),
                dump_json(fields.get("types")),
                dump_json(fields.get("plus_code")),
                dump_json(fields.get("viewport")),
                fields.get("payload_digest"),
                fetched_at,
            ),
        )

    def get_cache(self, place_id: str) -> Optional[PlaceCache]:
        row = self.conn.execute("SELECT * FROM place_cache WHERE place_id=?", (place_id,)).fetchone()
        return _row_to_cache(row) if row else None

    def caches_for(self, place_ids: Sequence[str]) -> Dict[str, PlaceCache]:
        if not place_ids:
            return {}
        placeholders = ",".join("?" for _ in place_ids)
        rows = self.conn.execute(
            f"SELECT * FROM place_cache WHERE place_id IN ({placeholders})",
            list(place_ids),
        ).fetchall()
        return {r["place_id"]: _row_to_cache(r) for r in rows}

    # ──────────────────────────────────────────────────────────────
    # Listing
    # ──────────────────────────────────────────────────────────────

    def list_places(self, *, limit: int, offset: int = 0) -> list[Place]:
        limit = max(1, int(limit))
        offset = max(0, int(offset))
        rows = self.conn.execute(
            "SELECT * FROM places ORDER BY created_at, place_id LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [_row_to_place(r) for r in rows]

    def list_stale(self, *, cutoff: str, limit: int) -> list[tuple[str, str]]:
        """(place_id, fetched_at) for caches fetched before `cutoff`, oldest first."""
        rows = self.conn.execute(
            """
            SELECT place_id, fetched_at FROM place_cache
            WHERE fetched_at < ?
            ORDER BY fetched_at
            LIMIT ?
            """,
            (cutoff, max(1, int(limit))),
        ).fetchall()
        return [(r["place_id"], r["fetched_at"]) for r in rows]
