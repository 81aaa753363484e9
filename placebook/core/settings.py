from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Paths
    cache_db_path: str = Field(default="placebook/data/placebook.db", alias="CACHE_DB_PATH")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Comma-separated
    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000,capacitor://localhost",
        alias="CORS_ORIGINS",
    )

    # ──────────────────────────────────────────────────────────────
    # Place cache retention
    # Upstream terms allow derived fields (coords, address, hours) to be
    # kept for 30 days. The place_id itself never expires.
    # ──────────────────────────────────────────────────────────────
    place_cache_ttl_s: int = Field(default=60 * 60 * 24 * 30, alias="PLACE_CACHE_TTL_S")  # 30d
    place_cache_refresh_on_read: bool = Field(default=False, alias="PLACE_CACHE_REFRESH_ON_READ")

    # Saved places
    default_trip_name: str = Field(default="Saved places ({user_id})", alias="DEFAULT_TRIP_NAME")
    nearby_default_radius_m: float = Field(default=5000.0, alias="NEARBY_DEFAULT_RADIUS_M")

    # ──────────────────────────────────────────────────────────────
    # Google Places (Place Details, used only for cache refresh)
    # ──────────────────────────────────────────────────────────────
    google_places_api_key: str = Field(default="", alias="GOOGLE_PLACES_API_KEY")
    google_places_details_url: str = Field(
        default="https://maps.googleapis.com/maps/api/place/details/json",
        alias="GOOGLE_PLACES_DETAILS_URL",
    )
    google_places_fields: str = Field(
        default=(
            "place_id,name,geometry,formatted_address,address_components,types,plus_code,"
            "vicinity,rating,user_ratings_total,price_level,opening_hours,website,url,"
            "formatted_phone_number,international_phone_number,business_status"
        ),
        alias="GOOGLE_PLACES_FIELDS",
    )
    google_places_timeout_s: float = Field(default=10.0, alias="GOOGLE_PLACES_TIMEOUT_S")

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
