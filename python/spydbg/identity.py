"""Identity key extraction for each reconciled channel."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple
from urllib.parse import unquote

from .events import DatabaseEvent
from .models import DatabaseDetail, NetworkRecord


def network_key(record: NetworkRecord) -> str:
    return record.id


def storage_key(entry: Mapping[str, Any]) -> Optional[str]:
    """Entry name, or None when the entry has no usable identity."""
    name = entry.get("name")
    if name is None or name == "":
        return None
    return str(name)


def database_target(event: DatabaseEvent) -> Tuple[Optional[str], Optional[str]]:
    return event.database, event.store


def detail_identity(detail: Optional[DatabaseDetail]) -> Optional[Tuple[Optional[str], Optional[str]]]:
    if detail is None:
        return None
    return detail.database_name, detail.store_name


def detail_matches(detail: Optional[DatabaseDetail], event: DatabaseEvent) -> bool:
    identity = detail_identity(detail)
    return identity is not None and identity == database_target(event)


def room_id_from_address(address: Optional[str]) -> str:
    """Room identifier from a shared debug address (``room%23extra`` -> ``room``)."""
    if not address:
        return ""
    return unquote(address).split("#", 1)[0]
