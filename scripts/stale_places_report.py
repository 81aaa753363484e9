#!/usr/bin/env python3
"""
scripts/stale_places_report.py

List place_cache rows older than the retention window (default 30 days).

Read-only: nothing is refreshed or deleted. Refreshing is done per place
through PUT /places/{place_id}/cache or POST /places/{place_id}/refresh.
"""

from __future__ import annotations

import argparse
import csv
import sys

from placebook.core.settings import settings
from placebook.core.storage import connect_sqlite_ro
from placebook.services.cache_policy import CachePolicy
from placebook.services.places_store import PlacesStore


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="List place_cache rows older than the retention window.")
    ap.add_argument("--db", default=settings.cache_db_path, help="SQLite path (default: CACHE_DB_PATH)")
    ap.add_argument("--ttl-s", type=int, default=settings.place_cache_ttl_s, help="retention window in seconds")
    ap.add_argument("--limit", type=int, default=10_000)
    args = ap.parse_args(argv)

    conn = connect_sqlite_ro(args.db)
    try:
        cutoff = CachePolicy(args.ttl_s).cutoff_iso()
        rows = PlacesStore(conn).list_stale(cutoff=cutoff, limit=args.limit)
    finally:
        conn.close()

    writer = csv.writer(sys.stdout)
    writer.writerow(["place_id", "fetched_at"])
    writer.writerows(rows)
    print(f"{len(rows)} stale rows (fetched before {cutoff})", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
