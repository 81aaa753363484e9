from __future__ import annotations

from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────
# Shared
# ──────────────────────────────────────────────────────────────

SavedPlaceStatus = Literal["WISHLIST", "VISITED", "SKIPPED"]

SAVED_PLACE_STATUSES: tuple[str, ...] = ("WISHLIST", "VISITED", "SKIPPED")


class LatLng(BaseModel):
    lat: float
    lng: float


class Viewport(BaseModel):
    northeast: LatLng
    southwest: LatLng


class PlusCode(BaseModel):
    global_code: str
    compound_code: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# Upstream provider payload (Google Places shape)
# Lenient on purpose: unknown fields are kept, loosely-typed rich
# fields stay as plain JSON so upstream drift never breaks ingestion.
# ──────────────────────────────────────────────────────────────

class PlaceGeometry(BaseModel):
    model_config = ConfigDict(extra="allow")

    location: Optional[LatLng] = None
    viewport: Optional[Viewport] = None


class ProviderPlace(BaseModel):
    model_config = ConfigDict(extra="allow")

    place_id: Optional[str] = None
    name: Optional[str] = None
    trip_id: Optional[str] = None
    formatted_address: Optional[str] = None
    geometry: Optional[PlaceGeometry] = None

    address_components: Optional[List[Dict[str, Any]]] = None
    types: Optional[List[str]] = None
    plus_code: Optional[PlusCode] = None

    formatted_phone_number: Optional[str] = None
    international_phone_number: Optional[str] = None
    opening_hours: Optional[Dict[str, Any]] = None
    photos: Optional[List[Dict[str, Any]]] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    website: Optional[str] = None
    url: Optional[str] = None
    vicinity: Optional[str] = None
    business_status: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# Stored records
# ──────────────────────────────────────────────────────────────

class Place(BaseModel):
    id: str
    place_id: str                   # upstream id, kept indefinitely
    lat: float
    lng: float
    created_at: str                 # ISO8601 UTC
    updated_at: str


class PlaceCache(BaseModel):
    place_id: str
    formatted_address: Optional[str] = None
    address_json: Optional[Dict[str, Any]] = None   # opaque upstream projection
    types: Optional[List[str]] = None
    plus_code: Optional[PlusCode] = None
    viewport: Optional[Viewport] = None
    payload_digest: Optional[str] = None
    fetched_at: str


class Trip(BaseModel):
    id: str
    user_id: int
    name: str
    city: Optional[str] = None
    is_default: bool = False
    created_at: str
    updated_at: str


class SavedPlace(BaseModel):
    id: str
    user_id: int
    place_id: str
    trip_id: str
    status: SavedPlaceStatus = "WISHLIST"
    user_notes: Optional[str] = None
    visited_at: Optional[str] = None
    created_at: str
    updated_at: str


# ──────────────────────────────────────────────────────────────
# Requests
# ──────────────────────────────────────────────────────────────

class SavePlaceRequest(BaseModel):
    place: Dict[str, Any]           # validated by the ingestion pipeline
    trip_id: Optional[str] = None
    status: SavedPlaceStatus = "WISHLIST"
    user_notes: Optional[str] = None


class SavedPlaceUpdate(BaseModel):
    """Partial update: only fields present in the request are applied."""

    status: Optional[SavedPlaceStatus] = None
    user_notes: Optional[str] = None


class CacheRefreshRequest(BaseModel):
    place: Dict[str, Any]


# ──────────────────────────────────────────────────────────────
# Results
# ──────────────────────────────────────────────────────────────

class SaveResult(BaseModel):
    saved: SavedPlace
    place: Place
    cache: Optional[PlaceCache] = None
    trip: Trip
    place_created: bool
    trip_created: bool


class CachedPlace(BaseModel):
    place: Place
    cache: Optional[PlaceCache] = None      # None when missing or stale
    cache_stale: bool = False


class SavedPlaceEntry(BaseModel):
    saved: SavedPlace
    place: Place
    cache: Optional[PlaceCache] = None
    cache_stale: bool = False


class NearbyItem(SavedPlaceEntry):
    distance_km: float
    distance_m: int


class NearbyResponse(BaseModel):
    center: LatLng
    radius_m: float
    status: Optional[SavedPlaceStatus] = None
    count: int
    items: List[NearbyItem] = Field(default_factory=list)


class RefreshResult(BaseModel):
    place: Place
    cache: PlaceCache
    changed: bool                   # upstream payload digest differs from the previous one


T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: str = ""
    data: Optional[T] = None
