from __future__ import annotations

import logging
import math
from typing import Dict, Optional, Tuple

from placebook.core.contracts import (
    LatLng,
    NearbyItem,
    NearbyResponse,
    Place,
    SAVED_PLACE_STATUSES,
    SavedPlace,
    SavedPlaceEntry,
    SavedPlaceStatus,
)
from placebook.core.errors import InvalidQuery
from placebook.core.geo import distance_fields, is_valid_lat, is_valid_lng, rank_by_distance
from placebook.core.storage import Database
from placebook.services.cache_policy import CacheView, PlaceCacheService
from placebook.services.saved_places import SavedPlacesLedger

logger = logging.getLogger(__name__)


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in SAVED_PLACE_STATUSES:
        raise InvalidQuery(f"status must be one of {', '.join(SAVED_PLACE_STATUSES)}")


class Nearby:
    """
    Read side of the ledger: a user's saved places, optionally ranked by
    great-circle distance from where they are now.

    The candidate set is one user's saves, so a linear Haversine scan is
    enough; no spatial index is kept.
    """

    def __init__(self, *, db: Database, caches: PlaceCacheService):
        self.db = db
        self.caches = caches

    def find_nearby(
        self,
        *,
        user_id: int,
        lat: float,
        lng: float,
        radius_m: float,
        status: Optional[SavedPlaceStatus] = None,
    ) -> NearbyResponse:
        if not is_valid_lat(lat):
            raise InvalidQuery(f"lat must be within [-90, 90], got {lat}")
        if not is_valid_lng(lng):
            raise InvalidQuery(f"lng must be within [-180, 180], got {lng}")
        if not math.isfinite(radius_m) or radius_m <= 0:
            raise InvalidQuery(f"radius_m must be > 0, got {radius_m}")
        _check_status(status)

        candidates, views = self._resolve(user_id=user_id, status=status)

        hits = rank_by_distance(
            candidates,
            lat=lat,
            lng=lng,
            radius_m=radius_m,
            coords=lambda c: (c[1].lat, c[1].lng),
        )

        items: list[NearbyItem] = []
        for (saved, place), d in hits:
            km, m = distance_fields(d)
            cache, stale = views[saved.place_id]
            items.append(
                NearbyItem(
                    saved=saved,
                    place=place,
                    cache=cache,
                    cache_stale=stale,
                    distance_km=km,
                    distance_m=m,
                )
            )

        logger.info(
            "[nearby] user_id=%s center=(%.5f,%.5f) radius_m=%s status=%s candidates=%d hits=%d",
            user_id, lat, lng, radius_m, status, len(candidates), len(items),
        )
        return NearbyResponse(
            center=LatLng(lat=lat, lng=lng),
            radius_m=radius_m,
            status=status,
            count=len(items),
            items=items,
        )

    def list_saved(self, *, user_id: int, status: Optional[SavedPlaceStatus] = None) -> list[SavedPlaceEntry]:
        _check_status(status)
        rows, views = self._resolve(user_id=user_id, status=status)
        return [
            SavedPlaceEntry(
                saved=saved,
                place=place,
                cache=views[saved.place_id][0],
                cache_stale=views[saved.place_id][1],
            )
            for saved, place in rows
        ]

    def _resolve(
        self, *, user_id: int, status: Optional[SavedPlaceStatus]
    ) -> Tuple[list[Tuple[SavedPlace, Place]], Dict[str, CacheView]]:
        """
        The user's (saved, place) rows with their cache views.

        Caches are resolved before anything reads coordinates: a refresh on
        read may move the place, so the rows are read again afterwards.
        """
        with self.db.reading() as conn:
            rows = SavedPlacesLedger(conn).list_for_user(user_id=user_id, status=status)

        views = self.caches.visible_caches([saved.place_id for saved, _place in rows])

        if self.caches.refresh_on_read:
            with self.db.reading() as conn:
                fresh = SavedPlacesLedger(conn).list_for_user(user_id=user_id, status=status)
            rows = [(saved, place) for saved, place in fresh if saved.place_id in views]
        return rows, views
