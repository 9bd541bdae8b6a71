"""Per-channel reconcilers.

Every reconciler maps ``(current slice, event)`` to the next slice without
touching its input.  When an event changes nothing the reconciler hands back
the very same slice object, so the store can skip the commit and its change
notification.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .events import (
    BaseEvent,
    ConnectEvent,
    ConsoleEvent,
    DatabaseEvent,
    DetailStale,
    NetworkEvent,
    PageEvent,
    StorageEvent,
    SystemEvent,
)
from .identity import detail_matches, network_key, storage_key
from .models import (
    STORAGE_KINDS,
    ConsoleRecord,
    DatabaseSlice,
    NetworkRecord,
    PageSnapshot,
    StorageSlice,
    SystemRecord,
    freeze_entry,
)


logger = logging.getLogger(__name__)

StaleSignal = Callable[[DetailStale], None]


def reconcile_console(records: Tuple[ConsoleRecord, ...], event: ConsoleEvent) -> Tuple[ConsoleRecord, ...]:
    return records + (event.record,)


def reconcile_system(records: Tuple[SystemRecord, ...], event: SystemEvent) -> Tuple[SystemRecord, ...]:
    return records + (event.record,)


def reconcile_connect(messages: Tuple[str, ...], event: ConnectEvent) -> Tuple[str, ...]:
    return messages + (event.message,)


def reconcile_network(records: Tuple[NetworkRecord, ...], event: NetworkEvent) -> Tuple[NetworkRecord, ...]:
    """Update a request in place by id, or insert it and re-sort by start time.

    Updates keep the record's position: the start time of a request does not
    change once it has been reported.
    """

    record = event.record
    key = network_key(record)
    for index, existing in enumerate(records):
        if network_key(existing) != key:
            continue
        if existing == record:
            return records
        return records[:index] + (record,) + records[index + 1 :]
    return tuple(sorted(records + (record,), key=lambda item: item.start_time))


def reconcile_page(current: PageSnapshot, event: PageEvent, tree: Optional[List[Any]], html: str) -> PageSnapshot:
    """Full replacement with a normalized page; there is nothing to merge."""
    snapshot = PageSnapshot(html=html, tree=tree, location=dict(event.location))
    if snapshot == current:
        return current
    return snapshot


def reconcile_storage(current: StorageSlice, event: StorageEvent) -> StorageSlice:
    kind = event.kind
    if kind not in STORAGE_KINDS:
        logger.debug("ignoring storage event for unknown kind %r", kind)
        return current
    entries = current.entries(kind)
    action = event.action

    if action == "get":
        if entries == event.entries:
            return current
        return current.with_entries(kind, event.entries)

    if action == "set":
        name = storage_key(event.entry)
        if name is None:
            logger.debug("ignoring nameless storage set on %s", kind)
            return current
        for index, existing in enumerate(entries):
            if storage_key(existing) != name:
                continue
            # Polled values are resent unchanged; skip those writes entirely.
            if existing == event.entry:
                return current
            return current.with_entries(kind, entries[:index] + (freeze_entry(event.entry),) + entries[index + 1 :])
        return current.with_entries(kind, entries + (freeze_entry(event.entry),))

    if action == "clear":
        if not entries:
            return current
        return current.with_entries(kind, ())

    if action == "remove":
        if not event.name:
            return current
        for index, existing in enumerate(entries):
            if storage_key(existing) == event.name:
                return current.with_entries(kind, entries[:index] + entries[index + 1 :])
        return current

    logger.debug("ignoring storage action %r on %s", action, kind)
    return current


def reconcile_database(
    current: DatabaseSlice,
    event: DatabaseEvent,
    *,
    signal: Optional[StaleSignal] = None,
) -> DatabaseSlice:
    """Apply a database event to the (listing, inspected detail) pair.

    ``update`` never changes the slice: when it targets the inspected detail
    the ``signal`` sink is told the detail is stale so the UI can refetch it.
    """

    action = event.action
    if action == "basic":
        if current.basic_info == event.basic_info:
            return current
        return replace(current, basic_info=event.basic_info)

    if action == "get":
        if current.detail == event.detail:
            return current
        return replace(current, detail=event.detail)

    if action == "update":
        if signal is not None and detail_matches(current.detail, event):
            signal(DetailStale(channel="database", database=event.database, store=event.store))
        return current

    if action == "clear":
        if detail_matches(current.detail, event):
            return replace(current, detail=None)
        return current

    if action == "drop":
        basic_info = current.basic_info
        if basic_info is not None:
            basic_info = tuple(item for item in basic_info if item.get("name") != event.database)
        detail = current.detail
        if detail is not None and detail.database_name == event.database:
            detail = None
        if basic_info == current.basic_info and detail is current.detail:
            return current
        return DatabaseSlice(basic_info=basic_info, detail=detail)

    logger.debug("ignoring database action %r", action)
    return current


RECONCILERS: Dict[str, Callable[[Any, Any], Any]] = {
    "console": reconcile_console,
    "system": reconcile_system,
    "connect": reconcile_connect,
    "network": reconcile_network,
    "storage": reconcile_storage,
    "database": reconcile_database,
}


def reconcile(current: Any, event: BaseEvent, *, signal: Optional[StaleSignal] = None) -> Any:
    """Route ``event`` to its channel reconciler.

    Page events are not handled here; they need an asynchronous
    normalization step first (see ``SnapshotStore``).
    """

    if isinstance(event, DatabaseEvent):
        return reconcile_database(current, event, signal=signal)
    handler = RECONCILERS.get(event.channel)
    if handler is None:
        raise ValueError(f"no synchronous reconciler for channel {event.channel!r}")
    return handler(current, event)
