from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from placebook.api.identity import current_user_id
from placebook.core.contracts import (
    Envelope,
    NearbyResponse,
    SavedPlace,
    SavedPlaceEntry,
    SavedPlaceUpdate,
)
from placebook.core.settings import settings
from placebook.services.nearby import Nearby
from placebook.services.saved_places import SavedPlaces

router = APIRouter(prefix="/saved-places")


def get_nearby_service() -> Nearby:
    raise RuntimeError("Nearby must be provided by app dependency override")


def get_saved_places_service() -> SavedPlaces:
    raise RuntimeError("SavedPlaces must be provided by app dependency override")


@router.get("", response_model=Envelope[list[SavedPlaceEntry]])
def list_saved_places(
    status: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    nearby: Nearby = Depends(get_nearby_service),
) -> Envelope[list[SavedPlaceEntry]]:
    items = nearby.list_saved(user_id=user_id, status=status)
    return Envelope(message=f"{len(items)} saved places", data=items)


@router.get("/nearby", response_model=Envelope[NearbyResponse])
def nearby_saved_places(
    lat: float,
    lng: float,
    radius_m: float = Query(default=settings.nearby_default_radius_m),
    status: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    nearby: Nearby = Depends(get_nearby_service),
) -> Envelope[NearbyResponse]:
    res = nearby.find_nearby(user_id=user_id, lat=lat, lng=lng, radius_m=radius_m, status=status)
    return Envelope(message=f"{res.count} saved places within {res.radius_m:g} m", data=res)


@router.patch("/{saved_id}", response_model=Envelope[SavedPlace])
def update_saved_place(
    saved_id: str,
    req: SavedPlaceUpdate,
    user_id: int = Depends(current_user_id),
    saved_places: SavedPlaces = Depends(get_saved_places_service),
) -> Envelope[SavedPlace]:
    updated = saved_places.update(user_id=user_id, saved_id=saved_id, changes=req)
    return Envelope(message="Saved place updated", data=updated)
