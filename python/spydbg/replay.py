"""Offline replay of recorded channel events into a snapshot store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from .events import parse_event
from .store import SnapshotStore


logger = logging.getLogger(__name__)


def iter_event_log(path: Path) -> Iterator[Dict[str, Any]]:
    """Yield recorded frames from a JSON-lines file, skipping unreadable lines."""
    with Path(path).open("r", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                record = json.loads(text)
            except json.JSONDecodeError as exc:
                logger.warning("%s:%d: invalid json (%s)", path, lineno, exc.msg)
                continue
            if not isinstance(record, dict):
                logger.warning("%s:%d: expected an object", path, lineno)
                continue
            yield record


def replay_events(
    records: Iterable[Mapping[str, Any]],
    store: Optional[SnapshotStore] = None,
    *,
    timeout: Optional[float] = 10.0,
) -> SnapshotStore:
    """Apply recorded ``{"channel": ..., "data": ...}`` frames in order.

    ``type`` is accepted as an alias of ``channel`` so raw relay captures can
    be replayed unchanged.
    """

    store = store if store is not None else SnapshotStore()
    applied = 0
    for record in records:
        channel = record.get("channel") or record.get("type")
        try:
            event = parse_event(str(channel or ""), record.get("data"))
        except ValueError as exc:
            logger.warning("skipping frame: %s", exc)
            continue
        store.apply(event)
        applied += 1
    if not store.wait_for_pages(timeout=timeout):
        logger.warning("page normalization still pending after %ss", timeout)
    logger.debug("replayed %d events", applied)
    return store
