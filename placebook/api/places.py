from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from placebook.api.identity import current_user_id
from placebook.core.contracts import (
    CachedPlace,
    CacheRefreshRequest,
    Envelope,
    RefreshResult,
    SavePlaceRequest,
    SaveResult,
)
from placebook.core.errors import bad_request
from placebook.services.cache_policy import PlaceCacheService
from placebook.services.ingest import Ingestion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/places")


def get_ingestion_service() -> Ingestion:
    raise RuntimeError("Ingestion must be provided by app dependency override")


def get_cache_service() -> PlaceCacheService:
    raise RuntimeError("PlaceCacheService must be provided by app dependency override")


# ──────────────────────────────────────────────────────────────
# /places/addplace
# ──────────────────────────────────────────────────────────────

@router.post("/addplace", response_model=Envelope[SaveResult], status_code=201)
def add_place(
    req: SavePlaceRequest,
    user_id: int = Depends(current_user_id),
    ingestion: Ingestion = Depends(get_ingestion_service),
) -> Envelope[SaveResult]:
    if not req.place:
        bad_request("place_required", "Place data is required in request body")

    result = ingestion.ingest(
        user_id=user_id,
        raw=req.place,
        trip_id=req.trip_id,
        status=req.status,
        user_notes=req.user_notes,
    )
    return Envelope(message="Place saved", data=result)


# ──────────────────────────────────────────────────────────────
# /places/cached
# ──────────────────────────────────────────────────────────────

@router.get("/cached", response_model=Envelope[list[CachedPlace]])
def list_cached(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    caches: PlaceCacheService = Depends(get_cache_service),
) -> Envelope[list[CachedPlace]]:
    items = caches.list_cached(limit=limit, offset=offset)
    return Envelope(message=f"{len(items)} cached places", data=items)


# ──────────────────────────────────────────────────────────────
# /places/{place_id}/cache  (provider data in)
# /places/{place_id}/refresh (fetch from provider)
# ──────────────────────────────────────────────────────────────

@router.put("/{place_id}/cache", response_model=Envelope[RefreshResult])
def put_cache(
    place_id: str,
    req: CacheRefreshRequest,
    user_id: int = Depends(current_user_id),
    caches: PlaceCacheService = Depends(get_cache_service),
) -> Envelope[RefreshResult]:
    result = caches.refresh(place_id, req.place)
    logger.info("put_cache: place_id=%s user_id=%s changed=%s", place_id, user_id, result.changed)
    return Envelope(message="Place cache refreshed", data=result)


@router.post("/{place_id}/refresh", response_model=Envelope[RefreshResult])
def refresh_from_provider(
    place_id: str,
    user_id: int = Depends(current_user_id),
    caches: PlaceCacheService = Depends(get_cache_service),
) -> Envelope[RefreshResult]:
    result = caches.refresh_from_provider(place_id)
    logger.info("refresh_from_provider: place_id=%s user_id=%s changed=%s", place_id, user_id, result.changed)
    return Envelope(message="Place cache refreshed from provider", data=result)
