from __future__ import annotations

import json
import multiprocessing
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from memories_server import store as store_mod
from memories_server.errors import MemoryValidationError, StorageError
from memories_server.store import MemoryStore


@pytest.fixture
def ticking_clock(monkeypatch: pytest.MonkeyPatch):
    """Deterministic clock: every call advances one second."""
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    calls = {"n": 0}

    def fake_now() -> datetime:
        calls["n"] += 1
        return start + timedelta(seconds=calls["n"])

    monkeypatch.setattr(store_mod, "_utc_now", fake_now)
    return calls


def test_create_sets_defaults_and_server_fields(store: MemoryStore):
    m = store.create("alice", {"title": "Walk", "type": "text"})
    assert m.owner_id == "alice"
    assert m.id
    assert m.images == [] and m.videos == [] and m.tags == []
    assert m.is_public is False
    assert m.location is None
    assert m.created_at == m.updated_at


def test_create_accepts_camel_case_and_nulls(store: MemoryStore):
    m = store.create("alice", {
        "title": "Beach",
        "type": "mixed",
        "images": None,
        "isPublic": True,
        "location": {"latitude": 1.5, "longitude": 2.5, "city": "Nice"},
    })
    assert m.images == []
    assert m.is_public is True
    assert m.location is not None and m.location.city == "Nice"
    assert m.to_json()["isPublic"] is True


def test_create_ignores_client_owner_and_id(store: MemoryStore):
    m = store.create("alice", {"title": "T", "type": "text", "ownerId": "mallory", "id": "fixed"})
    assert m.owner_id == "alice"
    assert m.id != "fixed"


@pytest.mark.parametrize(
    "fields",
    [
        {"type": "text"},
        {"title": "", "type": "text"},
        {"title": "x"},
        {"title": "x", "type": ""},
        {"title": "", "type": "image", "images": ["a.jpg"], "tags": ["t"]},
    ],
)
def test_create_requires_title_and_type(store: MemoryStore, tmp_data_dir: Path, fields):
    with pytest.raises(MemoryValidationError) as exc:
        store.create("alice", fields)
    assert exc.value.message == "Title and type are required"
    assert list(tmp_data_dir.iterdir()) == []


@pytest.mark.parametrize(
    "fields",
    [
        {"title": "x", "type": "audio"},
        {"title": "   ", "type": "text"},
        {"title": "x", "type": "text", "location": {"latitude": 10}},
        {"title": "x", "type": "text", "location": {"latitude": 91, "longitude": 0}},
        {"title": "x", "type": "text", "images": "a.jpg"},
    ],
)
def test_create_rejects_invalid_fields(store: MemoryStore, fields):
    with pytest.raises(MemoryValidationError):
        store.create("alice", fields)
    assert store.list_by_owner("alice") == []


def test_get_one_is_owner_scoped(store: MemoryStore):
    m = store.create("alice", {"title": "Secret", "type": "text"})
    assert store.get_one("alice", m.id) == m
    assert store.get_one("bob", m.id) is None
    assert store.get_one("alice", "does-not-exist") is None


def test_list_by_owner_newest_first(store: MemoryStore, ticking_clock):
    first = store.create("alice", {"title": "one", "type": "text"})
    second = store.create("alice", {"title": "two", "type": "text"})
    third = store.create("alice", {"title": "three", "type": "text"})
    store.create("bob", {"title": "other", "type": "text"})

    listed = store.list_by_owner("alice")
    assert [m.id for m in listed] == [third.id, second.id, first.id]
    for newer, older in zip(listed, listed[1:]):
        assert newer.created_at > older.created_at


def test_list_by_owner_empty_for_unknown_owner(store: MemoryStore):
    assert store.list_by_owner("nobody") == []


def test_update_merges_and_refreshes_updated_at(store: MemoryStore, ticking_clock):
    m = store.create("alice", {"title": "Old", "type": "text", "tags": ["a"]})
    updated = store.update("alice", m.id, {"title": "New", "isPublic": True})
    assert updated is not None
    assert updated.title == "New"
    assert updated.is_public is True
    assert updated.tags == ["a"]
    assert updated.updated_at > m.updated_at
    assert updated.created_at == m.created_at

    again = store.get_one("alice", m.id)
    assert again == updated


def test_update_refreshes_updated_at_even_with_frozen_clock(store: MemoryStore, monkeypatch):
    frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)
    monkeypatch.setattr(store_mod, "_utc_now", lambda: frozen)
    m = store.create("alice", {"title": "T", "type": "text"})
    u1 = store.update("alice", m.id, {"content": "x"})
    u2 = store.update("alice", m.id, {"content": "y"})
    assert m.updated_at < u1.updated_at < u2.updated_at


def test_update_ignores_immutable_and_unknown_fields(store: MemoryStore):
    m = store.create("alice", {"title": "T", "type": "text"})
    updated = store.update("alice", m.id, {
        "id": "hijack",
        "ownerId": "mallory",
        "owner_id": "mallory",
        "createdAt": "1999-01-01T00:00:00Z",
        "bogus": 1,
        "description": "kept",
    })
    assert updated.id == m.id
    assert updated.owner_id == "alice"
    assert updated.created_at == m.created_at
    assert updated.description == "kept"
    assert store.get_one("mallory", m.id) is None


def test_update_rejects_blanking_required_fields(store: MemoryStore):
    m = store.create("alice", {"title": "T", "type": "text"})
    with pytest.raises(MemoryValidationError):
        store.update("alice", m.id, {"title": ""})
    with pytest.raises(MemoryValidationError):
        store.update("alice", m.id, {"type": "audio"})
    assert store.get_one("alice", m.id).title == "T"


def test_update_other_owner_is_not_found(store: MemoryStore):
    m = store.create("alice", {"title": "T", "type": "text"})
    assert store.update("bob", m.id, {"title": "pwned"}) is None
    assert store.get_one("alice", m.id).title == "T"


def test_delete_is_permanent_and_owner_scoped(store: MemoryStore):
    m = store.create("alice", {"title": "T", "type": "text"})
    assert store.delete("bob", m.id) is False
    assert store.get_one("alice", m.id) is not None
    assert store.delete("alice", m.id) is True
    assert store.get_one("alice", m.id) is None
    assert store.delete("alice", m.id) is False


def test_records_persist_across_instances(tmp_data_dir: Path):
    m = MemoryStore(str(tmp_data_dir)).create("alice", {"title": "T", "type": "video", "videos": ["v.mp4"]})
    reopened = MemoryStore(str(tmp_data_dir))
    got = reopened.get_one("alice", m.id)
    assert got is not None
    assert got.videos == ["v.mp4"]


def test_each_memory_is_its_own_document(store: MemoryStore, tmp_data_dir: Path):
    a = store.create("alice", {"title": "T", "type": "text"})
    b = store.create("alice", {"title": "U", "type": "text"})
    files = sorted(tmp_data_dir.rglob("*.json"))
    assert [f.stem for f in files] == sorted([a.id, b.id])
    assert len({f.parent for f in files}) == 1
    data = json.loads(files[0].read_text(encoding="utf-8"))
    assert data["ownerId"] == "alice"
    assert "createdAt" in data and "isPublic" in data


def test_delete_leaves_other_documents(store: MemoryStore, tmp_data_dir: Path):
    a = store.create("alice", {"title": "T", "type": "text"})
    b = store.create("alice", {"title": "U", "type": "text"})
    assert store.delete("alice", a.id) is True
    assert [f.stem for f in tmp_data_dir.rglob("*.json")] == [b.id]


@pytest.mark.parametrize("memory_id", ["..", "../x", "ABC", "a" * 31, ""])
def test_malformed_ids_are_not_found(store: MemoryStore, memory_id):
    store.create("alice", {"title": "T", "type": "text"})
    assert store.get_one("alice", memory_id) is None
    assert store.update("alice", memory_id, {"title": "x"}) is None
    assert store.delete("alice", memory_id) is False


def test_corrupt_file_raises_storage_error(store: MemoryStore, tmp_data_dir: Path):
    store.create("alice", {"title": "T", "type": "text"})
    path = next(tmp_data_dir.rglob("*.json"))
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        store.list_by_owner("alice")
    # Corrupt data is left in place, not discarded.
    assert path.read_text(encoding="utf-8") == "{not json"


def test_concurrent_creates_from_separate_instances_all_persist(tmp_data_dir: Path):
    stores = [MemoryStore(str(tmp_data_dir)) for _ in range(4)]

    def worker(s: MemoryStore) -> list:
        return [s.create("alice", {"title": f"m{i}", "type": "text"}).id for i in range(25)]

    with ThreadPoolExecutor(max_workers=4) as pool:
        acked = [mid for ids in pool.map(worker, stores) for mid in ids]

    stored = {m.id for m in MemoryStore(str(tmp_data_dir)).list_by_owner("alice")}
    assert len(acked) == 100
    assert stored == set(acked)


@pytest.mark.skipif(
    "fork" not in multiprocessing.get_all_start_methods(),
    reason="needs fork start method",
)
def test_concurrent_creates_from_worker_processes_all_persist(tmp_data_dir: Path):
    ctx = multiprocessing.get_context("fork")
    per_worker = 30

    def worker() -> None:
        s = MemoryStore(str(tmp_data_dir))
        for i in range(per_worker):
            s.create("alice", {"title": f"m{i}", "type": "text"})

    procs = [ctx.Process(target=worker) for _ in range(4)]
    for p in procs:
        p.start()
    for p in procs:
        p.join(timeout=60)
    assert [p.exitcode for p in procs] == [0, 0, 0, 0]

    survivor = MemoryStore(str(tmp_data_dir))
    assert len(survivor.list_by_owner("alice")) == 4 * per_worker


def test_concurrent_delete_does_not_touch_other_records(tmp_data_dir: Path):
    a, b = MemoryStore(str(tmp_data_dir)), MemoryStore(str(tmp_data_dir))
    doomed = [a.create("alice", {"title": f"d{i}", "type": "text"}).id for i in range(20)]

    def add() -> list:
        return [b.create("alice", {"title": f"k{i}", "type": "text"}).id for i in range(20)]

    def remove() -> list:
        return [a.delete("alice", mid) for mid in doomed]

    with ThreadPoolExecutor(max_workers=2) as pool:
        kept = pool.submit(add)
        removed = pool.submit(remove)
        kept_ids, results = kept.result(), removed.result()

    assert all(results)
    assert {m.id for m in a.list_by_owner("alice")} == set(kept_ids)
