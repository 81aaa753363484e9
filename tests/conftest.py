"""Shared fixtures: a fresh in-memory database and the services wired to it."""

from __future__ import annotations

import os

# Must be set before placebook.core.settings is imported anywhere.
os.environ["CACHE_DB_PATH"] = ":memory:"
os.environ["GOOGLE_PLACES_API_KEY"] = ""
os.environ["PLACE_CACHE_REFRESH_ON_READ"] = "false"

import pytest

from placebook.core.storage import Database, connect_sqlite, ensure_schema
from placebook.services.cache_policy import CachePolicy, PlaceCacheService
from placebook.services.ingest import Ingestion
from placebook.services.nearby import Nearby
from placebook.services.saved_places import SavedPlaces

THIRTY_DAYS_S = 60 * 60 * 24 * 30

BANGKOK = (13.7563, 100.5018)


def make_payload(place_id: str = "X1", lat: float = BANGKOK[0], lng: float = BANGKOK[1], **extra) -> dict:
    payload = {
        "place_id": place_id,
        "name": f"Place {place_id}",
        "formatted_address": f"{place_id} Road, Bangkok",
        "geometry": {
            "location": {"lat": lat, "lng": lng},
            "viewport": {
                "northeast": {"lat": lat + 0.001, "lng": lng + 0.001},
                "southwest": {"lat": lat - 0.001, "lng": lng - 0.001},
            },
        },
        "types": ["tourist_attraction", "point_of_interest"],
        "plus_code": {"global_code": "7P52QGV2+G8", "compound_code": "QGV2+G8 Bangkok"},
        "rating": 4.5,
    }
    payload.update(extra)
    return payload


def count_rows(db: Database, table: str) -> int:
    with db.reading() as conn:
        return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])


@pytest.fixture
def db():
    conn = connect_sqlite(":memory:")
    ensure_schema(conn)
    database = Database(conn)
    yield database
    conn.close()


@pytest.fixture
def caches(db) -> PlaceCacheService:
    return PlaceCacheService(db=db, policy=CachePolicy(THIRTY_DAYS_S))


@pytest.fixture
def ingestion(db) -> Ingestion:
    return Ingestion(db=db, default_trip_name="Saved places ({user_id})")


@pytest.fixture
def nearby(db, caches) -> Nearby:
    return Nearby(db=db, caches=caches)


@pytest.fixture
def saved_places(db) -> SavedPlaces:
    return SavedPlaces(db=db)
