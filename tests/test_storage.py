from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from pyconnect.exceptions import StorageUnavailableError
from pyconnect.state import JsonFileStorage, MemoryStorage, StateStore, Tier


def test_json_file_storage_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "local.json"
    storage = JsonFileStorage(path)

    assert storage.read("missing") is None
    storage.write("cc:a", b'{"value":1}')
    storage.write("cc:b", b'{"value":2}')
    storage.remove("cc:b")

    reopened = JsonFileStorage(path)
    assert reopened.keys() == ["cc:a"]
    assert reopened.read("cc:a") == b'{"value":1}'
    assert json.loads(path.read_text(encoding="utf-8")) == {"cc:a": '{"value":1}'}


def test_corrupt_file_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "local.json"
    path.write_text("{broken", encoding="utf-8")
    storage = JsonFileStorage(path)

    assert storage.keys() == []
    storage.write("cc:a", b"{}")
    assert JsonFileStorage(path).keys() == ["cc:a"]


def test_non_object_file_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "local.json"
    path.write_text("[1, 2]", encoding="utf-8")
    assert JsonFileStorage(path).keys() == []


def test_local_tier_survives_a_new_store(tmp_path: Path, clock) -> None:
    path = tmp_path / "local.json"
    StateStore(local=JsonFileStorage(path), clock=clock).set("theme", "dark", tier=Tier.LOCAL)

    store = StateStore(session=MemoryStorage(), local=JsonFileStorage(path), clock=clock)
    assert store.get("theme") == "dark"
    assert store.lookup("theme").tier == Tier.LOCAL


def test_memory_storage() -> None:
    storage = MemoryStorage({"x": b"1"})
    storage.write("y", b"2")
    storage.remove("x")
    storage.remove("absent")
    assert storage.keys() == ["y"]
    assert len(storage) == 1


def _failing_replace(src: str, dst: str) -> None:
    raise OSError("disk full")


def test_failed_write_is_not_visible_or_flushed_later(
    tmp_path: Path, clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "local.json"
    storage = JsonFileStorage(path)
    store = StateStore(local=storage, clock=clock)
    store.set("a", 1, tier=Tier.LOCAL)

    with monkeypatch.context() as patched:
        patched.setattr(os, "replace", _failing_replace)
        store.set("k", "v", tier=Tier.LOCAL)
        with pytest.raises(StorageUnavailableError):
            storage.write("cc:direct", b"{}")

    assert store.get("k") is None
    assert storage.keys() == ["cc:a"]
    assert list(tmp_path.iterdir()) == [path]

    store.set("b", 2, tier=Tier.LOCAL)
    assert sorted(json.loads(path.read_text(encoding="utf-8"))) == ["cc:a", "cc:b"]


def test_failed_remove_keeps_the_entry(tmp_path: Path, clock, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "local.json"
    storage = JsonFileStorage(path)
    store = StateStore(local=storage, clock=clock)
    store.set("a", 1, tier=Tier.LOCAL)

    with monkeypatch.context() as patched:
        patched.setattr(os, "replace", _failing_replace)
        store.remove("a")

    assert store.get("a") == 1
    assert JsonFileStorage(path).read("cc:a") is not None
