"""Typed channel events, store notifications and the notification bus."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple

from .models import ConsoleRecord, DatabaseDetail, NetworkRecord, StorageEntry, SystemRecord


logger = logging.getLogger(__name__)

CHANNELS: Tuple[str, ...] = ("console", "system", "network", "connect", "page", "storage", "database")

# Event metadata that is not part of a stored storage entry.
STORAGE_META_FIELDS = frozenset({"id", "type", "action"})


def _to_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float:
    try:
        if value is None:
            return 0.0
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _ensure_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _ensure_tuple(value: Any) -> Tuple[Any, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    if value is None:
        return ()
    return (value,)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


# ----------------------------------------------------------------------
# Inbound channel events
# ----------------------------------------------------------------------


class BaseEvent:
    channel: ClassVar[str] = ""


@dataclass(frozen=True)
class ConsoleEvent(BaseEvent):
    channel: ClassVar[str] = "console"
    record: ConsoleRecord


@dataclass(frozen=True)
class SystemEvent(BaseEvent):
    channel: ClassVar[str] = "system"
    record: SystemRecord


@dataclass(frozen=True)
class NetworkEvent(BaseEvent):
    channel: ClassVar[str] = "network"
    record: NetworkRecord


@dataclass(frozen=True)
class ConnectEvent(BaseEvent):
    channel: ClassVar[str] = "connect"
    message: str


@dataclass(frozen=True)
class PageEvent(BaseEvent):
    channel: ClassVar[str] = "page"
    html: str
    location: Dict[str, Any] = field(default_factory=dict)

    @property
    def href(self) -> str:
        return str(self.location.get("href") or "")


@dataclass(frozen=True)
class StorageEvent(BaseEvent):
    channel: ClassVar[str] = "storage"
    kind: str
    action: str
    name: Optional[str] = None
    entry: StorageEntry = field(default_factory=dict)
    entries: Tuple[StorageEntry, ...] = ()


@dataclass(frozen=True)
class DatabaseEvent(BaseEvent):
    channel: ClassVar[str] = "database"
    action: str
    database: Optional[str] = None
    store: Optional[str] = None
    basic_info: Tuple[Dict[str, Any], ...] = ()
    detail: Optional[DatabaseDetail] = None


def _parse_network(data: Mapping[str, Any]) -> NetworkRecord:
    request_id = data.get("id")
    if request_id is None:
        raise ValueError("network event missing id")
    return NetworkRecord(
        id=str(request_id),
        method=str(data.get("method") or "GET"),
        url=str(data.get("url") or ""),
        name=str(data.get("name") or ""),
        request_type=str(data.get("requestType") or ""),
        status=_to_int(data.get("status")),
        status_text=str(data.get("statusText") or ""),
        ready_state=_to_int(data.get("readyState")),
        start_time=_to_float(data.get("startTime")),
        end_time=_to_float(data.get("endTime")),
        cost_time=_to_float(data.get("costTime")),
        request_header=data.get("requestHeader"),
        response_header=data.get("responseHeader"),
        response_type=str(data.get("responseType") or ""),
        response=data.get("response"),
        response_reason=_optional_str(data.get("responseReason")),
        get_data=data.get("getData"),
        post_data=data.get("postData"),
        with_credentials=bool(data.get("withCredentials")),
    )


def _parse_storage(data: Mapping[str, Any]) -> StorageEvent:
    kind = str(data.get("type") or "")
    action = str(data.get("action") or "")
    entries: Tuple[StorageEntry, ...] = ()
    if action == "get":
        entries = tuple(_ensure_dict(item) for item in _ensure_tuple(data.get("data")))
    entry = {key: value for key, value in data.items() if key not in STORAGE_META_FIELDS}
    return StorageEvent(
        kind=kind,
        action=action,
        name=_optional_str(data.get("name")),
        entry=entry if action == "set" else {},
        entries=entries,
    )


def _parse_database(data: Mapping[str, Any]) -> DatabaseEvent:
    action = str(data.get("action") or "")
    if action == "basic":
        return DatabaseEvent(
            action=action,
            basic_info=tuple(_ensure_dict(item) for item in _ensure_tuple(data.get("result"))),
        )
    if action == "get":
        database = _ensure_dict(data.get("database"))
        store = _ensure_dict(data.get("store"))
        detail = DatabaseDetail(
            database=database,
            store=store,
            rows=_ensure_tuple(data.get("data")),
            total=_to_int(data.get("total")) or 0,
            page=_ensure_dict(data.get("page")),
        )
        return DatabaseEvent(
            action=action,
            database=_optional_str(database.get("name")),
            store=_optional_str(store.get("name")),
            detail=detail,
        )
    return DatabaseEvent(
        action=action,
        database=_optional_str(data.get("database")),
        store=_optional_str(data.get("store")),
    )


def parse_event(channel: str, data: Any) -> BaseEvent:
    """Convert a raw channel payload into a typed event.

    Only the identity fields needed for reconciliation are checked; anything
    else is carried through as delivered.  Unknown channels and payloads of
    the wrong shape raise ``ValueError``.
    """

    if channel == "connect":
        return ConnectEvent(message=str(data))
    if not isinstance(data, Mapping):
        raise ValueError(f"{channel} payload must be an object, got {type(data).__name__}")
    if channel == "console":
        return ConsoleEvent(
            record=ConsoleRecord(
                log_type=str(data.get("logType") or "log"),
                logs=_ensure_tuple(data.get("logs")),
                time=_to_float(data.get("time")),
                url=_optional_str(data.get("url")),
                error_detail=data.get("errorDetail") if isinstance(data.get("errorDetail"), Mapping) else None,
            )
        )
    if channel == "system":
        return SystemEvent(
            record=SystemRecord(
                id=_optional_str(data.get("id")),
                system=_ensure_dict(data.get("system")),
                features=_ensure_dict(data.get("features")),
            )
        )
    if channel == "network":
        return NetworkEvent(record=_parse_network(data))
    if channel == "page":
        return PageEvent(html=str(data.get("html") or ""), location=_ensure_dict(data.get("location")))
    if channel == "storage":
        return _parse_storage(data)
    if channel == "database":
        return _parse_database(data)
    raise ValueError(f"unknown channel: {channel!r}")


# ----------------------------------------------------------------------
# Outbound notifications
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Notification:
    kind: ClassVar[str] = ""
    channel: str


@dataclass(frozen=True)
class SliceChanged(Notification):
    """A committed slice differs from its previous value."""

    kind: ClassVar[str] = "changed"
    old: Any = None
    new: Any = None


@dataclass(frozen=True)
class DetailStale(Notification):
    """The inspected (database, store) changed remotely and should be refetched."""

    kind: ClassVar[str] = "stale"
    database: Optional[str] = None
    store: Optional[str] = None


NotificationHandler = Callable[[Notification], None]


@dataclass
class EventSubscription:
    channels: Optional[List[str]] = None
    kinds: Optional[List[str]] = None
    queue_size: int = 256
    handler: NotificationHandler = lambda notification: None
    _queue: queue.Queue = field(init=False)

    def __post_init__(self) -> None:
        self._queue = queue.Queue(maxsize=self.queue_size)

    def accepts(self, notification: Notification) -> bool:
        channel_ok = not self.channels or notification.channel in self.channels
        kind_ok = not self.kinds or notification.kind in self.kinds
        return channel_ok and kind_ok

    def push(self, notification: Notification) -> None:
        try:
            self._queue.put_nowait(notification)
        except queue.Full:
            # Drop oldest notification to keep bus responsive; stale signals
            # have no later slice to recover from, so they go last.
            pending: List[Notification] = []
            while True:
                try:
                    pending.append(self._queue.get_nowait())
                except queue.Empty:
                    break
            for index, queued in enumerate(pending):
                if queued.kind != DetailStale.kind:
                    del pending[index]
                    break
            else:
                if pending:
                    pending.pop(0)
            for queued in pending:
                self._queue.put_nowait(queued)
            self._queue.put_nowait(notification)

    def dispatch(self) -> None:
        while True:
            try:
                notification = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                self.handler(notification)
            except Exception:
                logger.exception("notification handler failed for %s", notification.channel)


class EventBus:
    """Fan-out filtered store notifications to subscribers."""

    def __init__(self) -> None:
        self._subs: Dict[int, EventSubscription] = {}
        self._lock = threading.Lock()
        self._next_token = 1
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._interval = 0.01

    def subscribe(self, sub: EventSubscription) -> int:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subs[token] = sub
            return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subs.pop(token, None)

    def publish(self, notification: Notification) -> None:
        with self._lock:
            subscriptions = list(self._subs.values())
        for sub in subscriptions:
            if sub.accepts(notification):
                sub.push(notification)

    def pump(self) -> None:
        """Dispatch queued notifications on all subscriptions."""
        with self._lock:
            tokens = list(self._subs.keys())
        for token in tokens:
            sub = self._subs.get(token)
            if sub:
                sub.dispatch()

    def start(self, interval: float = 0.01) -> None:
        """Start background dispatcher that periodically pumps the bus."""

        self._interval = interval
        if self._worker and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run, name="spydbg-bus", daemon=True)
        self._worker.start()

    def stop(self) -> None:
        self._stop_event.set()
        worker = self._worker
        if worker and worker.is_alive():
            worker.join(timeout=0.5)
        self._worker = None

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.pump()
        self.pump()
