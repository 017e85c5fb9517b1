"""
Tests for the store implementations.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import pytest

from metarev_py.store import (
    BaseStore,
    ItemKind,
    ItemNotFoundError,
    StoreError,
    same_value,
)
from metarev_py.store.memory import MemoryStore
from metarev_py.store.sqlite import SqliteStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest) -> Generator[BaseStore, None, None]:
    """Fixture yielding each store implementation in turn."""
    if request.param == "memory":
        yield MemoryStore()
    else:
        with SqliteStore(":memory:") as sqlite_store:
            yield sqlite_store


def test_create_and_get_item(store: BaseStore) -> None:
    """Created items can be read back."""
    post = store.create_item(ItemKind.POST, title="Hello", content="World")
    fetched = store.get_item(post.id)
    assert fetched is not None
    assert fetched.kind == ItemKind.POST
    assert fetched.title == "Hello"
    assert fetched.content == "World"
    assert fetched.parent_id is None
    assert fetched.is_snapshot is False


def test_get_missing_item(store: BaseStore) -> None:
    """Unknown ids return None."""
    assert store.get_item(999) is None


def test_create_item_with_missing_parent(store: BaseStore) -> None:
    """Snapshots need an existing parent."""
    with pytest.raises(ItemNotFoundError):
        store.create_item(ItemKind.REVISION, parent_id=999)


def test_update_item(store: BaseStore) -> None:
    """Only the given fields change."""
    post = store.create_item(ItemKind.POST, title="a", content="b")
    updated = store.update_item(post.id, content="c")
    assert updated.title == "a"
    assert updated.content == "c"
    assert store.get_item(post.id).content == "c"  # type: ignore[union-attr]


def test_update_missing_item(store: BaseStore) -> None:
    with pytest.raises(ItemNotFoundError):
        store.update_item(999, title="x")


def test_revisions_newest_first_without_autosave(store: BaseStore) -> None:
    """revisions() lists revisions only, newest first."""
    post = store.create_item(ItemKind.POST)
    first = store.create_item(ItemKind.REVISION, parent_id=post.id)
    store.create_item(ItemKind.AUTOSAVE, parent_id=post.id)
    second = store.create_item(ItemKind.REVISION, parent_id=post.id)

    assert [r.id for r in store.revisions(post.id)] == [second.id, first.id]
    assert all(r.is_snapshot for r in store.revisions(post.id))


def test_get_autosave(store: BaseStore) -> None:
    post = store.create_item(ItemKind.POST)
    assert store.get_autosave(post.id) is None
    draft = store.create_item(ItemKind.AUTOSAVE, parent_id=post.id)
    found = store.get_autosave(post.id)
    assert found is not None
    assert found.id == draft.id


def test_metadata_multiple_values_in_order(store: BaseStore) -> None:
    """A key keeps every value in insertion order."""
    post = store.create_item(ItemKind.POST)
    for value in ["v1", "v2", "v3"]:
        store.add_metadata(post.id, "color", value)

    assert store.get_metadata(post.id, "color") == ["v1", "v2", "v3"]
    assert store.get_metadata(post.id, "color", single=True) == "v1"


def test_metadata_absent_key(store: BaseStore) -> None:
    """An absent key reads as an empty list, or an empty string when single."""
    post = store.create_item(ItemKind.POST)
    assert store.get_metadata(post.id, "missing") == []
    assert store.get_metadata(post.id, "missing", single=True) == ""


def test_metadata_empty_string_is_a_value(store: BaseStore) -> None:
    post = store.create_item(ItemKind.POST)
    store.add_metadata(post.id, "blank", "")
    assert store.get_metadata(post.id, "blank") == [""]
    assert store.metadata_keys(post.id) == ["blank"]


def test_metadata_composite_values(store: BaseStore) -> None:
    """Nested lists and dicts round-trip unchanged."""
    post = store.create_item(ItemKind.POST)
    value = {"a": ["1", "2", "3"], "b": "ok", "c": {"multi": ["a", "b"], "n": 3}}
    store.add_metadata(post.id, "nested", value)
    assert store.get_metadata(post.id, "nested") == [value]


def test_metadata_keys_first_insertion_order(store: BaseStore) -> None:
    post = store.create_item(ItemKind.POST)
    store.add_metadata(post.id, "b", 1)
    store.add_metadata(post.id, "a", 2)
    store.add_metadata(post.id, "b", 3)
    assert store.metadata_keys(post.id) == ["b", "a"]


def test_add_metadata_unknown_owner(store: BaseStore) -> None:
    with pytest.raises(ItemNotFoundError):
        store.add_metadata(999, "color", "red")


def test_delete_metadata_all_and_by_value(store: BaseStore) -> None:
    post = store.create_item(ItemKind.POST)
    for value in ["x", "y", "x"]:
        store.add_metadata(post.id, "k", value)

    assert store.delete_metadata(post.id, "k", "x") is True
    assert store.get_metadata(post.id, "k") == ["y"]
    assert store.delete_metadata(post.id, "k", "nope") is False
    assert store.delete_metadata(post.id, "k") is True
    assert store.get_metadata(post.id, "k") == []
    assert store.delete_metadata(post.id, "k") is False


def test_update_metadata(store: BaseStore) -> None:
    """update_metadata replaces all values, or only matching ones."""
    post = store.create_item(ItemKind.POST)
    store.update_metadata(post.id, "k", "first")
    assert store.get_metadata(post.id, "k") == ["first"]

    store.add_metadata(post.id, "k", "second")
    store.update_metadata(post.id, "k", "changed", prev_value="second")
    assert store.get_metadata(post.id, "k") == ["first", "changed"]

    store.update_metadata(post.id, "k", "ignored", prev_value="not-there")
    assert store.get_metadata(post.id, "k") == ["first", "changed"]

    store.update_metadata(post.id, "k", "only")
    assert store.get_metadata(post.id, "k") == ["only"]


def test_delete_item_removes_metadata(store: BaseStore) -> None:
    post = store.create_item(ItemKind.POST)
    store.add_metadata(post.id, "k", "v")
    assert store.delete_item(post.id) is True
    assert store.get_item(post.id) is None
    assert store.get_metadata(post.id, "k") == []
    assert store.delete_item(post.id) is False


def test_memory_store_returns_copies() -> None:
    """Mutating a returned value does not change what is stored."""
    store = MemoryStore()
    post = store.create_item(ItemKind.POST)
    store.add_metadata(post.id, "list", ["a"])
    store.get_metadata(post.id, "list")[0].append("b")
    assert store.get_metadata(post.id, "list") == [["a"]]


def test_sqlite_store_persists(tmp_path: Path) -> None:
    """Data written by one connection is visible to the next."""
    db_path = tmp_path / "nested" / "metarev.db"
    with SqliteStore(db_path) as store:
        post = store.create_item(ItemKind.POST, title="kept")
        store.add_metadata(post.id, "color", "red")
        store.add_metadata(post.id, "color", "")

    with SqliteStore(db_path) as store:
        fetched = store.get_item(post.id)
        assert fetched is not None
        assert fetched.title == "kept"
        assert store.get_metadata(post.id, "color") == ["red", ""]


def test_delete_item_removes_revisions_and_autosave(store: BaseStore) -> None:
    """Children go with their parent in every store."""
    post = store.create_item(ItemKind.POST)
    revision = store.create_item(ItemKind.REVISION, parent_id=post.id)
    draft = store.create_item(ItemKind.AUTOSAVE, parent_id=post.id)
    store.add_metadata(revision.id, "color", "red")

    assert store.delete_item(post.id) is True
    assert store.get_item(revision.id) is None
    assert store.get_item(draft.id) is None
    assert store.get_metadata(revision.id, "color") == []


@pytest.mark.parametrize(
    "value",
    [
        object(),
        float("nan"),
        float("inf"),
        (1, 2),
        {"a"},
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        {1: "int key"},
        ["nested", (1, 2)],
        {"nested": float("-inf")},
        2**64,
    ],
    ids=repr,
)
def test_store_rejects_values_that_cannot_round_trip(
    store: BaseStore, value: Any
) -> None:
    """Both stores refuse values JSON would silently change."""
    post = store.create_item(ItemKind.POST)
    with pytest.raises(StoreError):
        store.add_metadata(post.id, "bad", value)
    assert store.get_metadata(post.id, "bad") == []


def test_numeric_types_stay_distinct(store: BaseStore) -> None:
    """1, 1.0 and True are stored and read back as different values."""
    post = store.create_item(ItemKind.POST)
    for value in [1, 1.0, True, {"n": 1}, [False]]:
        store.add_metadata(post.id, "n", value)

    values = store.get_metadata(post.id, "n")
    assert [type(v) for v in values] == [int, float, bool, dict, list]
    assert type(values[3]["n"]) is int
    assert type(values[4][0]) is bool


def test_update_metadata_is_type_strict(store: BaseStore) -> None:
    post = store.create_item(ItemKind.POST)
    store.add_metadata(post.id, "flag", 1)

    store.update_metadata(post.id, "flag", True)
    assert same_value(store.get_metadata(post.id, "flag"), [True])

    # prev_value of 1 no longer matches the stored True.
    store.update_metadata(post.id, "flag", 2, prev_value=1)
    assert same_value(store.get_metadata(post.id, "flag"), [True])

    store.update_metadata(post.id, "flag", 1.0, prev_value=True)
    assert same_value(store.get_metadata(post.id, "flag"), [1.0])


def test_delete_metadata_by_value_is_type_strict(store: BaseStore) -> None:
    post = store.create_item(ItemKind.POST)
    store.add_metadata(post.id, "n", 1)
    store.add_metadata(post.id, "n", True)

    assert store.delete_metadata(post.id, "n", 1.0) is False
    assert store.delete_metadata(post.id, "n", True) is True
    assert same_value(store.get_metadata(post.id, "n"), [1])


@pytest.mark.parametrize(
    "a, b, expected",
    [
        (1, 1, True),
        (1, True, False),
        (1, 1.0, False),
        (0, False, False),
        ([1, "a"], [1, "a"], True),
        ([1], [True], False),
        ({"x": 1, "y": [2]}, {"y": [2], "x": 1}, True),
        ({"x": 1}, {"x": 1.0}, False),
        ([1, 2], [2, 1], False),
        ("", None, False),
    ],
)
def test_same_value(a: Any, b: Any, expected: bool) -> None:
    assert same_value(a, b) is expected
