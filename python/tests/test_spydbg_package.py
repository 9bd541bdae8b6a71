import importlib


def test_spydbg_package_exports():
    module = importlib.import_module("spydbg")
    assert hasattr(module, "RoomTransport")
    assert hasattr(module, "SessionManager")
    assert hasattr(module, "EventBus")
    assert hasattr(module, "SnapshotStore")
    assert hasattr(module, "parse_event")
    assert module.__version__.startswith("0.")
