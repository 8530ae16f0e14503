import threading

import pytest

from agent_orchestrator.workflow_engine import SharedStore, SharedStoreView


def test_shared_store_basic():
    """Test basic functionality of the SharedStore."""
    store = SharedStore({"topic": "llamas"})

    store.set("plan", {"steps": ["Design", "Implement"], "next": "Implement"})
    store["count"] = 3

    assert store.get("topic") == "llamas"
    assert store["count"] == 3
    assert store.get("missing") is None
    assert store.get("missing", "default") == "default"

    assert store.has_key("plan")
    assert "plan" in store
    assert not store.has_key("tests")

    # Insertion order is kept for iteration
    assert store.keys() == ["topic", "plan", "count"]
    assert list(store) == ["topic", "plan", "count"]
    assert len(store) == 3

    store.delete("count")
    assert "count" not in store

    full_data = store.to_dict()
    assert isinstance(full_data, dict)
    assert set(full_data) == {"topic", "plan"}


def test_shared_store_rejects_bad_keys():
    store = SharedStore()
    with pytest.raises(ValueError):
        store.set("", 1)
    with pytest.raises(ValueError):
        store.set(None, 1)


def test_resolve_dotted_paths():
    """Nested values are reachable with dotted paths; exact keys win."""
    store = SharedStore()
    store.set("research", {"summary": "short", "sources": ["a", "b"]})
    store.set("research.summary", "exact")

    assert store.resolve("research.summary") == "exact"
    assert store.resolve("research.sources.1") == "b"
    assert store.resolve("research[sources][0]") == "a"
    assert store.resolve("research.missing") is None
    assert store.resolve("research.missing", "fallback") == "fallback"
    assert store.contains_path("research.sources")
    assert not store.contains_path("nothing.here")


def test_snapshot_is_detached():
    store = SharedStore({"items": [1, 2]})
    snapshot = store.snapshot()

    store.get("items").append(3)
    store.set("new", True)

    assert snapshot == {"items": [1, 2]}


def test_view_reads_and_writes_through():
    store = SharedStore({"topic": "llamas"})
    view = SharedStoreView(store, workflow_name="wf", step_kind="iterate", item="x", index=2)

    assert view.get("topic") == "llamas"
    assert view["topic"] == "llamas"
    assert "topic" in view

    view.set("result", 42)
    view["other"] = "value"

    assert store.get("result") == 42
    assert store.get("other") == "value"
    assert view.store is store
    assert view.item == "x"
    assert view.index == 2
    assert view.step_kind == "iterate"
    assert view.keys() == ["topic", "result", "other"]


def test_concurrent_writes_from_threads():
    """Writes from many threads are all recorded."""
    store = SharedStore()

    def writer(prefix):
        for i in range(200):
            store.set(f"{prefix}-{i}", i)

    threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store) == 800
