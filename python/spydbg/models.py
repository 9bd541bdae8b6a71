"""Snapshot records and per-channel slice types for spydbg."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


STORAGE_KINDS: Tuple[str, ...] = ("localStorage", "sessionStorage", "cookie", "mpStorage")

StorageEntry = Mapping[str, Any]


def freeze_entry(entry: Mapping[str, Any]) -> StorageEntry:
    """Read-only view over a private copy of a storage entry."""
    if isinstance(entry, MappingProxyType):
        return entry
    return MappingProxyType(dict(entry))


@dataclass(frozen=True)
class ConsoleRecord:
    """One console log line reported by the target."""

    log_type: str
    logs: Tuple[Any, ...] = ()
    time: float = 0.0
    url: Optional[str] = None
    error_detail: Optional[Dict[str, Any]] = None

    def text(self) -> str:
        return " ".join(str(item) for item in self.logs)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "logType": self.log_type,
            "logs": list(self.logs),
            "time": self.time,
            "url": self.url,
        }
        if self.error_detail is not None:
            payload["errorDetail"] = self.error_detail
        return payload


@dataclass(frozen=True)
class SystemRecord:
    """System information block (user agent, platform, feature support)."""

    id: Optional[str]
    system: Dict[str, Any] = field(default_factory=dict)
    features: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "system": self.system, "features": self.features}


@dataclass(frozen=True)
class NetworkRecord:
    """State of one request/response exchange, keyed by request id."""

    id: str
    method: str = "GET"
    url: str = ""
    name: str = ""
    request_type: str = ""
    status: Optional[int] = None
    status_text: str = ""
    ready_state: Optional[int] = None
    start_time: float = 0.0
    end_time: float = 0.0
    cost_time: float = 0.0
    request_header: Optional[Any] = None
    response_header: Optional[Any] = None
    response_type: str = ""
    response: Any = None
    response_reason: Optional[str] = None
    get_data: Optional[Any] = None
    post_data: Optional[Any] = None
    with_credentials: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "name": self.name,
            "requestType": self.request_type,
            "status": self.status,
            "statusText": self.status_text,
            "readyState": self.ready_state,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "costTime": self.cost_time,
            "requestHeader": self.request_header,
            "responseHeader": self.response_header,
            "responseType": self.response_type,
            "response": self.response,
            "responseReason": self.response_reason,
            "getData": self.get_data,
            "postData": self.post_data,
            "withCredentials": self.with_credentials,
        }


@dataclass(frozen=True)
class PageSnapshot:
    """Current page view: raw markup, normalized tree and location."""

    html: str = ""
    tree: Optional[List[Any]] = None
    location: Optional[Dict[str, Any]] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"html": self.html, "tree": self.tree, "location": self.location}


@dataclass(frozen=True)
class StorageSlice:
    """Entries per storage kind, each an ordered tuple of name-keyed mappings.

    Entries are stored as read-only mappings so a slice handed to a reader
    cannot be edited behind the store's back.  Nested values are not copied.
    """

    localStorage: Tuple[StorageEntry, ...] = ()
    sessionStorage: Tuple[StorageEntry, ...] = ()
    cookie: Tuple[StorageEntry, ...] = ()
    mpStorage: Tuple[StorageEntry, ...] = ()

    def __post_init__(self) -> None:
        for kind in STORAGE_KINDS:
            object.__setattr__(self, kind, tuple(freeze_entry(entry) for entry in getattr(self, kind)))

    def entries(self, kind: str) -> Tuple[StorageEntry, ...]:
        if kind not in STORAGE_KINDS:
            raise KeyError(kind)
        return getattr(self, kind)

    def with_entries(self, kind: str, entries: Tuple[StorageEntry, ...]) -> "StorageSlice":
        if kind not in STORAGE_KINDS:
            raise KeyError(kind)
        return replace(self, **{kind: tuple(entries)})

    def as_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {kind: [dict(entry) for entry in self.entries(kind)] for kind in STORAGE_KINDS}


@dataclass(frozen=True)
class DatabaseDetail:
    """Rows of the (database, store) pair currently being inspected."""

    database: Dict[str, Any]
    store: Dict[str, Any]
    rows: Tuple[Any, ...] = ()
    total: int = 0
    page: Dict[str, Any] = field(default_factory=dict)

    @property
    def database_name(self) -> Optional[str]:
        return self.database.get("name")

    @property
    def store_name(self) -> Optional[str]:
        return self.store.get("name")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "database": self.database,
            "store": self.store,
            "data": list(self.rows),
            "total": self.total,
            "page": self.page,
        }


@dataclass(frozen=True)
class DatabaseSlice:
    basic_info: Optional[Tuple[Dict[str, Any], ...]] = None
    detail: Optional[DatabaseDetail] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "basicInfo": list(self.basic_info) if self.basic_info is not None else None,
            "data": self.detail.as_dict() if self.detail is not None else None,
        }
