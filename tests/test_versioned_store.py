"""Tests for optimistic-concurrency writes and the read cache."""

from __future__ import annotations

import pytest

from autonomous_deployer.agent.errors import ConcurrencyConflict, FileNotFound
from autonomous_deployer.agent.storage.versioned_store import VersionedFileStore
from conftest import InMemoryContents


def test_write_with_stale_token_raises_conflict(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    current = store.read("package.json")
    contents.external_edit("package.json", "{}")

    with pytest.raises(ConcurrencyConflict):
        store.write("package.json", '{"a": 1}', "Update", expected_version=current.version)

    assert contents.content("package.json") == "{}"


def test_conflict_invalidates_cached_entry(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    current = store.read("package.json")
    contents.external_edit("package.json", "{}")
    with pytest.raises(ConcurrencyConflict):
        store.write("package.json", "x", "Update", expected_version=current.version)

    assert store.read("package.json").content == "{}"


def test_reads_are_served_from_cache_refreshed_by_writes(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    store.read("src/App.js")
    store.read("src/App.js")
    assert contents.reads == 1

    store.upsert("src/App.js", "changed", "Update App")

    assert store.read("src/App.js").content == "changed"
    assert contents.reads == 1


def test_cache_can_be_disabled(contents: InMemoryContents) -> None:
    uncached = VersionedFileStore(contents, "acme", "shop", cache=False)
    uncached.read("src/App.js")
    uncached.read("src/App.js")
    assert contents.reads == 2


def test_update_of_vanished_file_falls_back_to_create(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    current = store.read("src/App.js")
    del contents.files["src/App.js"]

    store.write("src/App.js", "recreated", "Update App", expected_version=current.version)

    assert contents.content("src/App.js") == "recreated"
    assert contents.writes[-1][0] == "create"


def test_read_modify_write_retries_on_fresh_content(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    store.upsert("notes.txt", "a", "Create notes")
    store.read("notes.txt")
    contents.external_edit("notes.txt", "a\nb")

    store.read_modify_write("notes.txt", lambda current: f"{current}\nc", "Append")

    assert contents.content("notes.txt") == "a\nb\nc"


def test_read_modify_write_gives_up_after_max_retries(contents: InMemoryContents) -> None:
    limited = VersionedFileStore(contents, "acme", "shop", max_conflict_retries=2)
    contents.pending_conflicts["notes.txt"] = 5

    with pytest.raises(ConcurrencyConflict):
        limited.read_modify_write("notes.txt", lambda _current: "x", "Create notes")

    assert contents.pending_conflicts["notes.txt"] == 3


def test_delete_returns_false_when_absent(store: VersionedFileStore) -> None:
    assert store.delete("missing.txt", "Remove") is False
    assert store.delete("src/App.js", "Remove App") is True
    with pytest.raises(FileNotFound):
        store.read("src/App.js")


def test_snapshot_excludes_reserved_namespace(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    contents.external_edit(".prodev/tasks.json", "[]")

    paths = [item.path for item in store.snapshot()]

    assert paths == ["package.json", "src/App.js"]
    assert store.is_reserved(".prodev/tasks.json")
    assert not store.is_reserved(".prodevelop/x")


def test_max_conflict_retries_must_be_positive(contents: InMemoryContents) -> None:
    with pytest.raises(ValueError):
        VersionedFileStore(contents, "acme", "shop", max_conflict_retries=0)
