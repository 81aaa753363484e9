from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import make_payload
from placebook.core.storage import Database, connect_sqlite, ensure_schema
from placebook.core.time import to_iso, utc_now
from placebook.services.ingest import Ingestion
from scripts.stale_places_report import main


def test_help_describes_the_report(capsys) -> None:
    with pytest.raises(SystemExit):
        main(["--help"])
    out = capsys.readouterr().out
    assert "older than the retention window" in out
    assert "stale_places_report.py\n\n" not in out


def test_report_lists_only_expired_rows(tmp_path, capsys) -> None:
    path = str(tmp_path / "placebook.db")
    conn = connect_sqlite(path)
    ensure_schema(conn)
    db = Database(conn)
    ingestion = Ingestion(db=db, default_trip_name="Saved places ({user_id})")
    ingestion.ingest(user_id=1, raw=make_payload("FRESH"))
    ingestion.ingest(user_id=1, raw=make_payload("OLD"))
    with db.transaction() as c:
        c.execute(
            "UPDATE place_cache SET fetched_at=? WHERE place_id='OLD'",
            (to_iso(utc_now() - timedelta(days=31)),),
        )
    conn.close()

    assert main(["--db", path]) == 0

    captured = capsys.readouterr()
    lines = captured.out.strip().splitlines()
    assert lines[0] == "place_id,fetched_at"
    assert [line.split(",")[0] for line in lines[1:]] == ["OLD"]
    assert captured.err.startswith("1 stale rows")
