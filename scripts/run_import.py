#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from record_import.config import get_settings
from record_import.errors import FatalInputError
from record_import.importer import ImportRun, prepare_import
from record_import.logging_setup import configure_logging
from record_import.persistence import Repositories, init_db
from record_import.progress import EventBuffer, stream_events


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    p = argparse.ArgumentParser(description="Import a CSV file of customers, policies, payments or receipts.")
    p.add_argument("csv", type=Path, help="CSV file to import")
    p.add_argument("--kind", required=True, choices=["customers", "policies", "payments", "receipts"])
    p.add_argument("--mapping", type=Path, required=True, help="JSON file of {targetField: csvHeader}, optionally keyed by kind")
    p.add_argument("--db", type=Path, default=settings.db_path)
    p.add_argument("--actor", default="cli", help="Actor id recorded on imported payments")
    p.add_argument("--events", action="store_true", help="Print progress events as they happen")
    return p.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(get_settings().log_level)
    mappings = json.loads(args.mapping.read_text(encoding="utf-8"))
    # A mapping file may hold one table per kind.
    if isinstance(mappings.get(args.kind), dict):
        mappings = mappings[args.kind]
    try:
        request = prepare_import(args.csv.read_text(encoding="utf-8"), args.kind, mappings)
    except FatalInputError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)

    init_db(args.db)
    buffer = EventBuffer()
    run = ImportRun(request, Repositories.for_db(args.db), sink=buffer, actor_id=args.actor)
    if args.events:
        for frame in stream_events(run.outcomes(), buffer):
            print(frame, end="")
    else:
        run.execute()

    print(json.dumps({"run_id": run.run_id, **run.summary.to_response()}, indent=2))


if __name__ == "__main__":
    main()
