# placebook/main.py
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.gzip import GZipMiddleware

# Load /backend/.env (main.py is /backend/placebook/main.py)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

from placebook.core.settings import settings
from placebook.core.errors import PlacebookError, ProviderNotConfigured
from placebook.core.storage import Database, connect_sqlite, ensure_schema
from placebook.api import api_router

from placebook.services.cache_policy import CachePolicy, PlaceCacheService
from placebook.services.google_places import GooglePlacesClient
from placebook.services.ingest import Ingestion
from placebook.services.nearby import Nearby
from placebook.services.saved_places import SavedPlaces

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


def _provider() -> Optional[GooglePlacesClient]:
    try:
        return GooglePlacesClient()
    except ProviderNotConfigured:
        logger.info("[app] GOOGLE_PLACES_API_KEY not set; provider refresh disabled")
        return None


def create_app(db: Optional[Database] = None, provider: Optional[GooglePlacesClient] = None) -> FastAPI:
    app = FastAPI(title="Placebook Backend", version="1.0.0")

    # ── Compression (must be added before CORS) ──
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ──────────────────────────────────────────────────────────────
    # DB connection
    # ──────────────────────────────────────────────────────────────

    if db is None:
        conn = connect_sqlite(settings.cache_db_path)
        ensure_schema(conn)
        db = Database(conn)

    if provider is None:
        provider = _provider()

    # ──────────────────────────────────────────────────────────────
    # Services (stateless; all state lives in the DB)
    # ──────────────────────────────────────────────────────────────

    caches = PlaceCacheService(
        db=db,
        policy=CachePolicy(settings.place_cache_ttl_s),
        provider=provider,
        refresh_on_read=settings.place_cache_refresh_on_read,
    )
    ingestion = Ingestion(db=db, default_trip_name=settings.default_trip_name)
    nearby = Nearby(db=db, caches=caches)
    saved_places = SavedPlaces(db=db)

    # ──────────────────────────────────────────────────────────────
    # Dependency overrides
    # ──────────────────────────────────────────────────────────────

    from placebook.api import places as places_api
    from placebook.api import saved_places as saved_places_api

    app.dependency_overrides[places_api.get_ingestion_service] = lambda: ingestion
    app.dependency_overrides[places_api.get_cache_service] = lambda: caches
    app.dependency_overrides[saved_places_api.get_nearby_service] = lambda: nearby
    app.dependency_overrides[saved_places_api.get_saved_places_service] = lambda: saved_places

    # ──────────────────────────────────────────────────────────────
    # Errors
    # ──────────────────────────────────────────────────────────────

    @app.exception_handler(PlacebookError)
    def placebook_error(request: Request, exc: PlacebookError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail()})

    @app.exception_handler(sqlite3.Error)
    def storage_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
        logger.exception("[app] storage failure on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": {"code": "storage_failure", "message": "Internal storage error"}},
        )

    # Routes
    app.include_router(api_router)

    # ──────────────────────────────────────────────────────────────
    # Shutdown
    # ──────────────────────────────────────────────────────────────

    @app.on_event("shutdown")
    def shutdown():
        logger.info("[app] Shutting down, closing connections")
        try:
            db.close()
        except sqlite3.Error as e:
            logger.warning("[app] Error closing cache DB: %s", e)

    return app


app = create_app()
