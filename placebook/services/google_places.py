"""
Google Places "Place Details" client.

Docs: https://developers.google.com/maps/documentation/places/web-service/details

Only used to refresh an expired place_cache row, keyed by the stored
place_id. Ingestion never calls out; it always receives provider data.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from placebook.core.errors import ProviderError, ProviderNotConfigured
from placebook.core.settings import settings

logger = logging.getLogger(__name__)

# Statuses where retrying later might help; the rest are permanent for this id.
_TRANSIENT_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}


class GooglePlacesClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        details_url: Optional[str] = None,
        fields: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.google_places_api_key
        if not self.api_key:
            raise ProviderNotConfigured("Google Places not configured (GOOGLE_PLACES_API_KEY)")
        self.details_url = details_url or settings.google_places_details_url
        self.fields = fields or settings.google_places_fields
        self.timeout_s = float(timeout_s or settings.google_places_timeout_s)
        self._transport = transport

    def details(self, place_id: str) -> dict[str, Any]:
        """Fetch the Place Details `result` document for `place_id`."""
        params = {"place_id": place_id, "fields": self.fields, "key": self.api_key}

        try:
            with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
                resp = client.get(self.details_url, params=params)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as e:
            body_txt = ""
            try:
                body_txt = (e.response.text or "")[:300]
            except Exception:
                body_txt = ""
            raise ProviderError(
                f"google_places_details_failed status={e.response.status_code} body={body_txt}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"google_places_details_failed err={e!r}") from e

        status = str(body.get("status") or "")
        if status != "OK":
            transient = status in _TRANSIENT_STATUSES
            logger.warning(
                "[google_places] details place_id=%s status=%s transient=%s",
                place_id, status, transient,
            )
            raise ProviderError(
                f"google_places_details status={status} "
                f"message={body.get('error_message') or ''}".strip()
            )

        result = body.get("result")
        if not isinstance(result, dict):
            raise ProviderError("google_places_details returned no result")

        # Details responses can omit place_id when it isn't in `fields`.
        result.setdefault("place_id", place_id)
        return result
