import pytest

from spydbg.events import DetailStale, parse_event
from spydbg.models import DatabaseSlice, PageSnapshot, StorageSlice
from spydbg.reconcile import (
    reconcile,
    reconcile_console,
    reconcile_database,
    reconcile_network,
    reconcile_page,
    reconcile_storage,
    reconcile_system,
)


def _net(request_id, start, **extra):
    payload = {"id": request_id, "url": f"https://example.test/{request_id}", "startTime": start}
    payload.update(extra)
    return parse_event("network", payload)


def _storage(action, kind="localStorage", **fields):
    payload = {"type": kind, "action": action, "id": "evt"}
    payload.update(fields)
    return parse_event("storage", payload)


def _db(action, **fields):
    payload = {"action": action}
    payload.update(fields)
    return parse_event("database", payload)


def _db_get(database, store, rows=()):
    return _db(
        "get",
        database={"name": database, "version": 1},
        store={"name": store, "keyPath": "id"},
        data=list(rows),
        total=len(rows),
    )


def test_console_and_system_append_in_arrival_order():
    records = ()
    for idx in (3, 1, 2, 1):
        records = reconcile_console(records, parse_event("console", {"logType": "log", "logs": [idx], "time": idx}))
    assert [record.logs for record in records] == [(3,), (1,), (2,), (1,)]

    system = ()
    for _ in range(3):
        system = reconcile_system(system, parse_event("system", {"id": "same", "system": {"os": "ios"}}))
    assert len(system) == 3


def test_reconcile_does_not_mutate_input():
    empty = ()
    updated = reconcile_console(empty, parse_event("console", {"logType": "warn", "logs": ["x"]}))
    assert empty == ()
    assert len(updated) == 1


def test_network_updates_keep_single_record_with_latest_payload():
    records = ()
    records = reconcile_network(records, _net("a", 10, readyState=1))
    records = reconcile_network(records, _net("a", 10, readyState=2, status=200))
    records = reconcile_network(records, _net("a", 10, readyState=4, status=200, response="ok"))
    assert len(records) == 1
    assert records[0].ready_state == 4
    assert records[0].response == "ok"


def test_network_inserts_are_sorted_by_start_time():
    records = ()
    for request_id, start in (("c", 30), ("a", 10), ("d", 40), ("b", 20)):
        records = reconcile_network(records, _net(request_id, start))
    assert [record.id for record in records] == ["a", "b", "c", "d"]
    starts = [record.start_time for record in records]
    assert starts == sorted(starts)


def test_network_update_keeps_position():
    records = ()
    for request_id, start in (("a", 10), ("b", 20), ("c", 30)):
        records = reconcile_network(records, _net(request_id, start))
    records = reconcile_network(records, _net("b", 20, status=404))
    assert [record.id for record in records] == ["a", "b", "c"]
    assert records[1].status == 404


def test_network_identical_redelivery_returns_same_slice():
    records = reconcile_network((), _net("a", 10, status=200))
    assert reconcile_network(records, _net("a", 10, status=200)) is records


def test_page_replaces_snapshot():
    event = parse_event("page", {"html": "<p>raw</p>", "location": {"href": "https://example.test/"}})
    snapshot = reconcile_page(PageSnapshot(), event, [{"type": "element"}], "<p>fixed</p>")
    assert snapshot.html == "<p>fixed</p>"
    assert snapshot.tree == [{"type": "element"}]
    assert snapshot.location == {"href": "https://example.test/"}


def test_storage_get_replaces_kind_only():
    current = StorageSlice(cookie=({"name": "sid", "value": "1"},))
    updated = reconcile_storage(current, _storage("get", data=[{"name": "x", "value": "1"}, {"name": "y", "value": "2"}]))
    assert [entry["name"] for entry in updated.localStorage] == ["x", "y"]
    assert updated.cookie == current.cookie


def test_storage_set_strips_event_metadata_and_appends():
    updated = reconcile_storage(StorageSlice(), _storage("set", name="x", value="1"))
    assert updated.localStorage == ({"name": "x", "value": "1"},)


def test_storage_entries_are_read_only():
    event = _storage("set", name="x", value="1")
    updated = reconcile_storage(StorageSlice(), event)
    entry = updated.localStorage[0]
    with pytest.raises(TypeError):
        entry["value"] = "2"
    event.entry["value"] = "changed"
    assert updated.localStorage == ({"name": "x", "value": "1"},)
    assert updated.as_dict()["localStorage"] == [{"name": "x", "value": "1"}]
    assert type(updated.as_dict()["localStorage"][0]) is dict


def test_storage_set_without_name_is_ignored():
    current = StorageSlice()
    assert reconcile_storage(current, _storage("set", value="1")) is current
    assert reconcile_storage(current, _storage("set", name="", value="1")) is current


def test_storage_set_identical_value_is_noop():
    current = reconcile_storage(StorageSlice(), _storage("set", name="x", value="1"))
    assert reconcile_storage(current, _storage("set", name="x", value="1")) is current


def test_storage_set_different_value_replaces_in_place():
    current = StorageSlice(
        sessionStorage=({"name": "a", "value": "1"}, {"name": "b", "value": "1"}, {"name": "c", "value": "1"})
    )
    updated = reconcile_storage(current, _storage("set", kind="sessionStorage", name="b", value="2"))
    assert [entry["name"] for entry in updated.sessionStorage] == ["a", "b", "c"]
    assert updated.sessionStorage[1]["value"] == "2"
    assert current.sessionStorage[1]["value"] == "1"


def test_storage_remove_missing_name_is_noop():
    current = StorageSlice(localStorage=({"name": "a", "value": "1"},))
    assert reconcile_storage(current, _storage("remove", name="zzz")) is current


def test_storage_remove_preserves_order_of_others():
    current = StorageSlice(
        localStorage=({"name": "a", "value": "1"}, {"name": "b", "value": "2"}, {"name": "c", "value": "3"})
    )
    updated = reconcile_storage(current, _storage("remove", name="b"))
    assert updated.localStorage == ({"name": "a", "value": "1"}, {"name": "c", "value": "3"})


def test_storage_clear_and_unknown_actions():
    current = StorageSlice(mpStorage=({"name": "a", "value": "1"},))
    assert reconcile_storage(current, _storage("clear", kind="mpStorage")).mpStorage == ()
    assert reconcile_storage(current, _storage("rename", kind="mpStorage", name="a")) is current
    assert reconcile_storage(current, _storage("clear", kind="indexedDB")) is current


def test_database_basic_and_get_replace():
    current = reconcile_database(DatabaseSlice(), _db("basic", result=[{"name": "A"}, {"name": "B"}]))
    assert [item["name"] for item in current.basic_info] == ["A", "B"]
    current = reconcile_database(current, _db_get("A", "S", rows=[{"key": 1, "value": "v"}]))
    assert current.detail.database_name == "A"
    assert current.detail.store_name == "S"
    assert current.detail.rows == ({"key": 1, "value": "v"},)


def test_database_clear_only_for_matching_identity():
    current = reconcile_database(DatabaseSlice(), _db_get("A", "S"))
    assert reconcile_database(current, _db("clear", database="B", store="S")) is current
    assert reconcile_database(current, _db("clear", database="A", store="T")) is current
    assert reconcile_database(current, _db("clear", database="A", store="S")).detail is None


def test_database_drop_cascades_to_detail():
    current = reconcile_database(DatabaseSlice(), _db("basic", result=[{"name": "A"}, {"name": "B"}]))
    current = reconcile_database(current, _db_get("A", "S"))

    dropped_a = reconcile_database(current, _db("drop", database="A"))
    assert [item["name"] for item in dropped_a.basic_info] == ["B"]
    assert dropped_a.detail is None

    dropped_b = reconcile_database(current, _db("drop", database="B"))
    assert [item["name"] for item in dropped_b.basic_info] == ["A"]
    assert dropped_b.detail is current.detail


def test_database_drop_without_listing_still_clears_detail():
    current = reconcile_database(DatabaseSlice(), _db_get("A", "S"))
    updated = reconcile_database(current, _db("drop", database="A"))
    assert updated.basic_info is None
    assert updated.detail is None


def test_database_update_signals_only_for_inspected_store():
    signals = []
    current = reconcile_database(DatabaseSlice(), _db_get("A", "S"))

    assert reconcile_database(current, _db("update", database="A", store="S"), signal=signals.append) is current
    assert reconcile_database(current, _db("update", database="A", store="T"), signal=signals.append) is current
    reconcile_database(DatabaseSlice(), _db("update", database="A", store="S"), signal=signals.append)

    assert signals == [DetailStale(channel="database", database="A", store="S")]


def test_reconcile_routes_by_channel():
    assert len(reconcile((), parse_event("connect", "target joined"))) == 1
    signals = []
    current = reconcile(DatabaseSlice(), _db_get("A", "S"))
    reconcile(current, _db("update", database="A", store="S"), signal=signals.append)
    assert len(signals) == 1
