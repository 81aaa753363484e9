from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import BANGKOK, THIRTY_DAYS_S, make_payload
from placebook.core.errors import InvalidPayload, PlaceNotFound, ProviderNotConfigured
from placebook.core.time import to_iso, utc_now
from placebook.services.cache_policy import CachePolicy, PlaceCacheService
from placebook.services.google_places import GooglePlacesClient
from placebook.services.nearby import Nearby


def _age_cache(db, place_id: str, days: float) -> None:
    old = to_iso(utc_now() - timedelta(days=days))
    with db.transaction() as conn:
        conn.execute("UPDATE place_cache SET fetched_at=? WHERE place_id=?", (old, place_id))


def test_policy_window_is_inclusive_of_thirty_days() -> None:
    policy = CachePolicy(THIRTY_DAYS_S)
    fetched = datetime(2026, 9, 1, tzinfo=timezone.utc)
    iso = to_iso(fetched)

    assert policy.is_stale(iso, now=fetched + timedelta(days=30)) is False
    assert policy.is_stale(iso, now=fetched + timedelta(days=30, seconds=1)) is True
    assert policy.expires_at(iso) == fetched + timedelta(days=30)
    assert policy.cutoff_iso(now=fetched + timedelta(days=30)) == iso


def test_stale_cache_is_hidden_from_readers(db, ingestion, nearby, caches) -> None:
    ingestion.ingest(user_id=1, raw=make_payload("FRESH", *BANGKOK))
    ingestion.ingest(user_id=1, raw=make_payload("OLD", BANGKOK[0] + 0.001, BANGKOK[1]))
    _age_cache(db, "OLD", days=31)

    res = nearby.find_nearby(user_id=1, lat=BANGKOK[0], lng=BANGKOK[1], radius_m=1000)
    by_id = {i.saved.place_id: i for i in res.items}

    assert by_id["FRESH"].cache is not None and by_id["FRESH"].cache_stale is False
    assert by_id["OLD"].cache is None and by_id["OLD"].cache_stale is True
    # the saved place itself is still found by its stored coordinates
    assert by_id["OLD"].distance_m > 0

    listed = {c.place.place_id: c for c in caches.list_cached()}
    assert listed["OLD"].cache_stale is True
    assert listed["FRESH"].cache_stale is False


def test_refresh_overwrites_cache_and_coordinates(db, ingestion, caches) -> None:
    first = ingestion.ingest(user_id=1, raw=make_payload("X1", *BANGKOK, formatted_address="Old"))
    _age_cache(db, "X1", days=45)

    res = caches.refresh("X1", make_payload("X1", 13.7600, 100.5100, formatted_address="New"))

    assert res.changed is True
    assert res.cache.formatted_address == "New"
    assert (res.place.lat, res.place.lng) == (13.7600, 100.5100)
    assert res.place.id == first.place.id
    assert res.cache.fetched_at > first.cache.fetched_at
    assert caches.visible_caches(["X1"])["X1"][1] is False


def test_refresh_with_identical_payload_reports_unchanged(ingestion, caches) -> None:
    ingestion.ingest(user_id=1, raw=make_payload("X1"))
    res = caches.refresh("X1", make_payload("X1"))
    assert res.changed is False


def test_refresh_rejects_unknown_place_and_mismatched_payload(ingestion, caches) -> None:
    with pytest.raises(PlaceNotFound):
        caches.refresh("NOPE", make_payload("NOPE"))

    ingestion.ingest(user_id=1, raw=make_payload("X1"))
    with pytest.raises(InvalidPayload) as exc:
        caches.refresh("X1", make_payload("X2"))
    assert exc.value.code == "place_id_mismatch"


def test_refresh_from_provider_requires_a_provider(ingestion, caches) -> None:
    ingestion.ingest(user_id=1, raw=make_payload("X1"))
    with pytest.raises(ProviderNotConfigured):
        caches.refresh_from_provider("X1")


def _details_transport(result: dict | None, status: str = "OK") -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        body = {"status": status}
        if result is not None:
            body["result"] = result
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


def test_refresh_on_read_uses_provider(db, ingestion) -> None:
    ingestion.ingest(user_id=1, raw=make_payload("X1", *BANGKOK, formatted_address="Old"))
    _age_cache(db, "X1", days=40)

    provider = GooglePlacesClient(
        api_key="test-key",
        transport=_details_transport(make_payload("X1", *BANGKOK, formatted_address="Fresh from Google")),
    )
    caches = PlaceCacheService(db=db, policy=CachePolicy(THIRTY_DAYS_S), provider=provider, refresh_on_read=True)
    nearby = Nearby(db=db, caches=caches)

    item = nearby.find_nearby(user_id=1, lat=BANGKOK[0], lng=BANGKOK[1], radius_m=100).items[0]

    assert item.cache_stale is False
    assert item.cache.formatted_address == "Fresh from Google"


def test_refresh_on_read_failure_leaves_entry_stale(db, ingestion) -> None:
    ingestion.ingest(user_id=1, raw=make_payload("X1", *BANGKOK))
    _age_cache(db, "X1", days=40)

    provider = GooglePlacesClient(api_key="test-key", transport=_details_transport(None, status="NOT_FOUND"))
    caches = PlaceCacheService(db=db, policy=CachePolicy(THIRTY_DAYS_S), provider=provider, refresh_on_read=True)

    cache, stale = caches.visible_caches(["X1"])["X1"]
    assert cache is None
    assert stale is True


def test_stale_listing_for_operators(db, ingestion) -> None:
    from placebook.services.places_store import PlacesStore

    ingestion.ingest(user_id=1, raw=make_payload("A"))
    ingestion.ingest(user_id=1, raw=make_payload("B"))
    _age_cache(db, "B", days=31)

    cutoff = CachePolicy(THIRTY_DAYS_S).cutoff_iso()
    with db.reading() as conn:
        rows = PlacesStore(conn).list_stale(cutoff=cutoff, limit=10)
    assert [pid for pid, _fetched in rows] == ["B"]


def test_refresh_on_read_ranks_by_refreshed_coordinates(db, ingestion) -> None:
    ingestion.ingest(user_id=1, raw=make_payload("X1", *BANGKOK))
    _age_cache(db, "X1", days=31)

    provider = GooglePlacesClient(
        api_key="test-key",
        transport=_details_transport(make_payload("X1", 14.5, 101.5, formatted_address="Moved")),
    )
    caches = PlaceCacheService(db=db, policy=CachePolicy(THIRTY_DAYS_S), provider=provider, refresh_on_read=True)
    nearby = Nearby(db=db, caches=caches)

    # the place moved ~136 km away, so it is no longer within 1 km
    assert nearby.find_nearby(user_id=1, lat=BANGKOK[0], lng=BANGKOK[1], radius_m=1000).items == []

    far = nearby.find_nearby(user_id=1, lat=BANGKOK[0], lng=BANGKOK[1], radius_m=200_000).items[0]
    assert (far.place.lat, far.place.lng) == (14.5, 101.5)
    assert far.distance_m > 100_000
    assert far.cache.formatted_address == "Moved"

    entry = nearby.list_saved(user_id=1)[0]
    assert (entry.place.lat, entry.place.lng) == (14.5, 101.5)
