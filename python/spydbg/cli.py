"""spydbg-replay CLI entry point."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List

from .replay import iter_event_log, replay_events
from .store import SnapshotStore, StoreConfig

LOG = logging.getLogger("spydbg.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay a recorded debug session into a snapshot")
    parser.add_argument("log", type=Path, help="JSON-lines event log ({'channel': ..., 'data': ...} per line)")
    parser.add_argument("--json", action="store_true", help="Print the full snapshot as JSON")
    parser.add_argument(
        "--serialize-pages",
        action="store_true",
        help="Normalize page events one at a time so the last delivered page wins",
    )
    parser.add_argument("--log-level", default=os.environ.get("SPYDBG_LOG", "WARNING"), help="Logging level (default WARNING)")
    return parser


def render_summary(snapshot: dict) -> List[str]:
    storage = snapshot["storage"]
    database = snapshot["database"]
    page = snapshot["page"]
    lines = [
        f"console:  {len(snapshot['console'])} entries",
        f"system:   {len(snapshot['system'])} entries",
        f"network:  {len(snapshot['network'])} requests",
        f"connect:  {len(snapshot['connect'])} messages",
        f"page:     {(page.get('location') or {}).get('href') or '(none)'}",
    ]
    for kind, entries in storage.items():
        lines.append(f"storage:  {kind} {len(entries)} entries")
    basic = database.get("basicInfo")
    lines.append(f"database: {len(basic) if basic is not None else 0} known")
    detail = database.get("data")
    if detail:
        lines.append(f"          inspecting {detail['database'].get('name')}/{detail['store'].get('name')}")
    return lines


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    store = SnapshotStore(StoreConfig(serialize_pages=args.serialize_pages))
    LOG.debug("replaying %s", args.log)
    try:
        replay_events(iter_event_log(args.log), store)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        store.close()
    snapshot = store.snapshot()
    if args.json:
        print(json.dumps(snapshot, indent=2, sort_keys=True, default=str))
    else:
        for line in render_summary(snapshot):
            print(line)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
