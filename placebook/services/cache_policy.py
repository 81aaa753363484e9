from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from placebook.core.contracts import CachedPlace, PlaceCache, ProviderPlace, RefreshResult
from placebook.core.errors import InvalidPayload, PlaceNotFound, ProviderError, ProviderNotConfigured
from placebook.core.storage import Database
from placebook.core.time import parse_iso, to_iso, utc_now, utc_now_iso
from placebook.services.google_places import GooglePlacesClient
from placebook.services.places_store import PlacesStore, cache_fields_from_payload, parse_payload

logger = logging.getLogger(__name__)


class CachePolicy:
    """
    Retention window for place_cache rows.

    A row is usable while `now - fetched_at <= ttl`; past that, readers must
    not display it and should refresh it from upstream by place_id.
    """

    def __init__(self, ttl_s: int):
        self.ttl = timedelta(seconds=int(ttl_s))

    def expires_at(self, fetched_at: str) -> datetime:
        return parse_iso(fetched_at) + self.ttl

    def is_stale(self, fetched_at: str, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        return now - parse_iso(fetched_at) > self.ttl

    def cutoff_iso(self, now: Optional[datetime] = None) -> str:
        """Rows with fetched_at strictly before this are stale."""
        return to_iso((now or utc_now()) - self.ttl)


CacheView = Tuple[Optional[PlaceCache], bool]


class PlaceCacheService:
    """
    Overwrites place_cache (and the place coordinates) from fresh provider
    data, and gives readers a policy-filtered view of cached rows.

    There is no sweep here: rows are only refreshed when someone reads them
    (with refresh_on_read) or asks explicitly.
    """

    def __init__(
        self,
        *,
        db: Database,
        policy: CachePolicy,
        provider: Optional[GooglePlacesClient] = None,
        refresh_on_read: bool = False,
    ):
        self.db = db
        self.policy = policy
        self.provider = provider
        self.refresh_on_read = refresh_on_read

    # ──────────────────────────────────────────────────────────────
    # Refresh
    # ──────────────────────────────────────────────────────────────

    def refresh(self, place_id: str, raw: Union[ProviderPlace, Dict[str, Any]]) -> RefreshResult:
        payload, payload_place_id, lat, lng = parse_payload(raw)
        if payload_place_id != place_id:
            raise InvalidPayload(
                f"Payload place_id {payload_place_id} does not match {place_id}",
                code="place_id_mismatch",
            )

        fields = cache_fields_from_payload(payload)

        with self.db.transaction() as conn:
            store = PlacesStore(conn)
            if store.get(place_id) is None:
                raise PlaceNotFound(f"No cached place for place_id={place_id}")

            previous = store.get_cache(place_id)
            now = utc_now_iso()
            store.update_coords(place_id=place_id, lat=lat, lng=lng, now=now)
            store.put_cache(place_id=place_id, fields=fields, fetched_at=now)

            place = store.get(place_id)
            cache = store.get_cache(place_id)

        changed = previous is None or previous.payload_digest != fields["payload_digest"]
        logger.info("[refresh] place_id=%s changed=%s", place_id, changed)
        return RefreshResult(place=place, cache=cache, changed=changed)

    def refresh_from_provider(self, place_id: str) -> RefreshResult:
        if self.provider is None:
            raise ProviderNotConfigured("No places provider configured for refresh")
        result = self.provider.details(place_id)
        return self.refresh(place_id, result)

    # ──────────────────────────────────────────────────────────────
    # Reader view
    # ──────────────────────────────────────────────────────────────

    def visible_caches(self, place_ids: Sequence[str]) -> Dict[str, CacheView]:
        """
        place_id -> (cache, stale) for display.

        Missing or expired rows come back as (None, True). With
        refresh_on_read, expired rows are refreshed first; provider failures
        leave the row flagged stale.
        """
        with self.db.reading() as conn:
            caches = PlacesStore(conn).caches_for(list(place_ids))

        now = utc_now()
        out: Dict[str, CacheView] = {}
        for pid in place_ids:
            cache = caches.get(pid)
            if cache is not None and not self.policy.is_stale(cache.fetched_at, now):
                out[pid] = (cache, False)
                continue

            if self.refresh_on_read and self.provider is not None:
                try:
                    out[pid] = (self.refresh_from_provider(pid).cache, False)
                    continue
                except (ProviderError, InvalidPayload) as e:
                    logger.warning("[refresh] on-read refresh failed place_id=%s: %s", pid, e)

            out[pid] = (None, True)
        return out

    def list_cached(self, *, limit: int = 100, offset: int = 0) -> list[CachedPlace]:
        """Every known place with its (policy-filtered) cache row."""
        with self.db.reading() as conn:
            places = PlacesStore(conn).list_places(limit=limit, offset=offset)

        views = self.visible_caches([p.place_id for p in places])
        return [
            CachedPlace(place=p, cache=views[p.place_id][0], cache_stale=views[p.place_id][1])
            for p in places
        ]
