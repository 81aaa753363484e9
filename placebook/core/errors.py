from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException


def bad_request(code: str, message: str):
    raise HTTPException(status_code=400, detail={"code": code, "message": message})


# ──────────────────────────────────────────────────────────────
# Domain errors
# Raised by services, mapped to HTTP once in main.py.
# Storage errors (sqlite3.Error) are deliberately not part of this tree.
# ──────────────────────────────────────────────────────────────

class PlacebookError(Exception):
    status_code: int = 400
    code: str = "placebook_error"

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationFailed(PlacebookError):
    status_code = 400
    code = "validation_failed"


class InvalidPayload(ValidationFailed):
    code = "invalid_place_payload"


class InvalidQuery(ValidationFailed):
    code = "invalid_nearby_query"


class InvalidUpdate(ValidationFailed):
    code = "invalid_saved_place_update"


class NotFound(PlacebookError):
    status_code = 404
    code = "not_found"


class TripNotFound(NotFound):
    code = "trip_not_found"


class PlaceNotFound(NotFound):
    code = "place_not_found"


class SavedPlaceNotFound(NotFound):
    code = "saved_place_not_found"


class Forbidden(PlacebookError):
    status_code = 403
    code = "forbidden"


class TripForbidden(Forbidden):
    code = "trip_forbidden"


class Conflict(PlacebookError):
    status_code = 409
    code = "conflict"


class DuplicateSave(Conflict):
    """The user already saved this place; `existing` is the original ledger entry."""

    code = "place_already_saved"

    def __init__(self, message: str, *, existing: Any):
        super().__init__(message)
        self.existing = existing

    def detail(self) -> dict[str, Any]:
        d = super().detail()
        d["existing"] = self.existing.model_dump() if hasattr(self.existing, "model_dump") else self.existing
        return d


class ProviderError(PlacebookError):
    status_code = 502
    code = "places_provider_failed"


class ProviderNotConfigured(ProviderError):
    status_code = 503
    code = "places_provider_not_configured"
