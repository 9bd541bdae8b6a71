from spydbg.events import parse_event
from spydbg.identity import (
    database_target,
    detail_identity,
    detail_matches,
    network_key,
    room_id_from_address,
    storage_key,
)


def test_room_id_from_address():
    assert room_id_from_address("abc-123") == "abc-123"
    assert room_id_from_address("abc-123%23extra") == "abc-123"
    assert room_id_from_address("abc%2D123#frag#more") == "abc-123"
    assert room_id_from_address("%23only-fragment") == ""
    assert room_id_from_address("") == ""
    assert room_id_from_address(None) == ""


def test_storage_key():
    assert storage_key({"name": "token", "value": "x"}) == "token"
    assert storage_key({"name": "", "value": "x"}) is None
    assert storage_key({"value": "x"}) is None


def test_network_key():
    event = parse_event("network", {"id": "req-1"})
    assert network_key(event.record) == "req-1"


def test_database_identity_helpers():
    get = parse_event("database", {"action": "get", "database": {"name": "A"}, "store": {"name": "S"}})
    clear = parse_event("database", {"action": "clear", "database": "A", "store": "S"})
    other = parse_event("database", {"action": "clear", "database": "A", "store": "T"})
    assert detail_identity(get.detail) == ("A", "S")
    assert detail_identity(None) is None
    assert database_target(clear) == ("A", "S")
    assert detail_matches(get.detail, clear)
    assert not detail_matches(get.detail, other)
    assert not detail_matches(None, clear)
