from __future__ import annotations

import pytest

from conftest import make_payload
from placebook.core.contracts import SavedPlaceUpdate
from placebook.core.errors import InvalidUpdate, SavedPlaceNotFound
from placebook.services.saved_places import visited_at_after

NOW = "2026-10-19T12:00:00.000000Z"
EARLIER = "2026-10-01T08:00:00.000000Z"


@pytest.mark.parametrize("old", ["WISHLIST", "VISITED", "SKIPPED"])
@pytest.mark.parametrize("new", ["WISHLIST", "VISITED", "SKIPPED"])
def test_visited_at_is_set_iff_visited(old, new) -> None:
    old_visited = EARLIER if old == "VISITED" else None
    v = visited_at_after(old_status=old, old_visited_at=old_visited, new_status=new, now=NOW)
    assert (v is not None) == (new == "VISITED")


def test_staying_visited_keeps_first_stamp() -> None:
    assert visited_at_after(old_status="VISITED", old_visited_at=EARLIER, new_status="VISITED", now=NOW) == EARLIER
    assert visited_at_after(old_status="WISHLIST", old_visited_at=None, new_status="VISITED", now=NOW) == NOW


def test_visit_then_skip_round_trip(ingestion, saved_places) -> None:
    saved = ingestion.ingest(user_id=1, raw=make_payload("X1")).saved

    visited = saved_places.update(user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate(status="VISITED"))
    assert visited.status == "VISITED"
    assert visited.visited_at is not None

    skipped = saved_places.update(user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate(status="SKIPPED"))
    assert skipped.status == "SKIPPED"
    assert skipped.visited_at is None

    back = saved_places.update(user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate(status="WISHLIST"))
    assert back.status == "WISHLIST"
    assert back.visited_at is None


def test_partial_update_only_touches_supplied_fields(ingestion, saved_places) -> None:
    saved = ingestion.ingest(user_id=1, raw=make_payload("X1"), status="VISITED", user_notes="go early").saved

    notes_only = saved_places.update(
        user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate.model_validate({"user_notes": "bring cash"})
    )
    assert notes_only.user_notes == "bring cash"
    assert notes_only.status == "VISITED"
    assert notes_only.visited_at == saved.visited_at

    status_only = saved_places.update(
        user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate.model_validate({"status": "SKIPPED"})
    )
    assert status_only.user_notes == "bring cash"
    assert status_only.visited_at is None


def test_explicit_null_notes_clears_them(ingestion, saved_places) -> None:
    saved = ingestion.ingest(user_id=1, raw=make_payload("X1"), user_notes="temp").saved
    cleared = saved_places.update(
        user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate.model_validate({"user_notes": None})
    )
    assert cleared.user_notes is None


def test_empty_update_is_rejected(ingestion, saved_places) -> None:
    saved = ingestion.ingest(user_id=1, raw=make_payload("X1")).saved
    with pytest.raises(InvalidUpdate):
        saved_places.update(user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate())
    with pytest.raises(InvalidUpdate):
        saved_places.update(
            user_id=1, saved_id=saved.id, changes=SavedPlaceUpdate.model_validate({"status": None})
        )


def test_update_of_unknown_or_foreign_save_is_not_found(ingestion, saved_places) -> None:
    saved = ingestion.ingest(user_id=1, raw=make_payload("X1")).saved

    with pytest.raises(SavedPlaceNotFound):
        saved_places.update(user_id=1, saved_id="missing", changes=SavedPlaceUpdate(status="VISITED"))
    with pytest.raises(SavedPlaceNotFound):
        saved_places.update(user_id=2, saved_id=saved.id, changes=SavedPlaceUpdate(status="VISITED"))
