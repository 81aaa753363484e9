from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, Optional, Union

from placebook.core.contracts import ProviderPlace, SaveResult, SAVED_PLACE_STATUSES, SavedPlaceStatus
from placebook.core.errors import DuplicateSave, InvalidPayload, TripForbidden, TripNotFound
from placebook.core.storage import Database
from placebook.core.time import utc_now_iso
from placebook.services.places_store import PlacesStore, cache_fields_from_payload, parse_payload
from placebook.services.saved_places import SavedPlacesLedger
from placebook.services.trips import TripsDirectory

logger = logging.getLogger(__name__)


class Ingestion:
    """
    Save an upstream place for a user.

    One transaction covers the default trip (if created), the place, its
    cache row and the saved-place row: either all of them are written or
    none are.
    """

    def __init__(self, *, db: Database, default_trip_name: str):
        self.db = db
        self.default_trip_name = default_trip_name

    def ingest(
        self,
        *,
        user_id: int,
        raw: Union[ProviderPlace, Dict[str, Any]],
        trip_id: Optional[str] = None,
        status: SavedPlaceStatus = "WISHLIST",
        user_notes: Optional[str] = None,
    ) -> SaveResult:
        if status not in SAVED_PLACE_STATUSES:
            raise InvalidPayload(f"Unknown status {status!r}", code="invalid_status")

        payload, place_id, lat, lng = parse_payload(raw)
        cache_fields = cache_fields_from_payload(payload)
        trip_id = trip_id or (payload.trip_id or "").strip() or None

        try:
            with self.db.transaction() as conn:
                ledger = SavedPlacesLedger(conn)

                # Fast path; the UNIQUE(user_id, place_id) constraint below is
                # what actually guarantees a single row under races.
                existing = ledger.get_by_pair(user_id=user_id, place_id=place_id)
                if existing is not None:
                    raise DuplicateSave("Place already saved", existing=existing)

                now = utc_now_iso()
                trips = TripsDirectory(conn)
                if trip_id is None:
                    trip, trip_created = trips.default_for(
                        user_id=user_id,
                        name=self.default_trip_name.format(user_id=user_id),
                        now=now,
                    )
                else:
                    owner = trips.owner_of(trip_id)
                    if owner is None:
                        raise TripNotFound(f"Trip {trip_id} not found")
                    if owner != int(user_id):
                        raise TripForbidden("Trip does not belong to this user")
                    trip = trips.get(trip_id)
                    trip_created = False

                store = PlacesStore(conn)
                place, place_created = store.insert_or_get(place_id=place_id, lat=lat, lng=lng, now=now)
                if place_created:
                    store.put_cache(place_id=place_id, fields=cache_fields, fetched_at=now)

                saved = ledger.insert(
                    user_id=user_id,
                    place_id=place_id,
                    trip_id=trip.id,
                    status=status,
                    user_notes=user_notes,
                    now=now,
                )
                cache = store.get_cache(place_id)
        except sqlite3.IntegrityError:
            # Lost a race with a concurrent save of the same pair.
            with self.db.reading() as conn:
                existing = SavedPlacesLedger(conn).get_by_pair(user_id=user_id, place_id=place_id)
            if existing is None:
                raise
            logger.warning("[ingest] duplicate save (race) user_id=%s place_id=%s", user_id, place_id)
            raise DuplicateSave("Place already saved", existing=existing)
        except DuplicateSave:
            logger.warning("[ingest] duplicate save user_id=%s place_id=%s", user_id, place_id)
            raise

        logger.info(
            "[ingest] saved user_id=%s place_id=%s trip_id=%s status=%s place_created=%s trip_created=%s",
            user_id, place_id, trip.id, status, place_created, trip_created,
        )
        return SaveResult(
            saved=saved,
            place=place,
            cache=cache,
            trip=trip,
            place_created=place_created,
            trip_created=trip_created,
        )
