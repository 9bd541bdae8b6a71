"""
spydbg - Reconciliation core for a remote-debugging console.

A debug session delivers console, network, system, connect, page, storage
and database events from an instrumented page.  This package folds them into
a consistent snapshot that a UI can render and subscribe to:

    models.py     → records and per-channel slice types
    events.py     → typed channel events, notifications, event bus
    identity.py   → identity keys used to match events to records
    reconcile.py  → one pure reconciler per channel
    store.py      → snapshot store (commit, change notification, pages)
    transport.py  → room connection (listeners, unicast to target)
    session.py    → session initiation and control surface
    replay.py     → replay recorded sessions offline
"""

from .transport import RoomTransport, TransportConfig, TransportError  # noqa: F401
from .session import SessionConfig, SessionManager  # noqa: F401
from .events import (  # noqa: F401
    CHANNELS,
    BaseEvent,
    ConnectEvent,
    ConsoleEvent,
    DatabaseEvent,
    DetailStale,
    EventBus,
    EventSubscription,
    NetworkEvent,
    Notification,
    PageEvent,
    SliceChanged,
    StorageEvent,
    SystemEvent,
    parse_event,
)
from .models import (  # noqa: F401
    STORAGE_KINDS,
    ConsoleRecord,
    DatabaseDetail,
    DatabaseSlice,
    NetworkRecord,
    PageSnapshot,
    StorageSlice,
    SystemRecord,
)
from .reconcile import reconcile  # noqa: F401
from .store import SnapshotStore, StoreConfig  # noqa: F401
from .replay import replay_events  # noqa: F401

__all__ = [
    "RoomTransport",
    "TransportConfig",
    "TransportError",
    "SessionConfig",
    "SessionManager",
    "CHANNELS",
    "BaseEvent",
    "ConsoleEvent",
    "SystemEvent",
    "NetworkEvent",
    "ConnectEvent",
    "PageEvent",
    "StorageEvent",
    "DatabaseEvent",
    "Notification",
    "SliceChanged",
    "DetailStale",
    "EventBus",
    "EventSubscription",
    "parse_event",
    "STORAGE_KINDS",
    "ConsoleRecord",
    "SystemRecord",
    "NetworkRecord",
    "PageSnapshot",
    "StorageSlice",
    "DatabaseDetail",
    "DatabaseSlice",
    "reconcile",
    "SnapshotStore",
    "StoreConfig",
    "replay_events",
]

__version__ = "0.1.0"
