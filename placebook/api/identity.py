from __future__ import annotations

from fastapi import Header


def current_user_id(x_user_id: int = Header(..., alias="X-User-Id", ge=1)) -> int:
    """
    Authenticated user id, set by the auth gateway in front of this service.

    Trusted as-is; credentials are never re-checked here.
    """
    return x_user_id
