"""
Tests for the tracked key registry.
"""

from typing import List

from metarev_py.keys import TrackedKeyRegistry


def test_empty_by_default() -> None:
    assert TrackedKeyRegistry().keys() == []


def test_track_static_keys() -> None:
    registry = TrackedKeyRegistry()
    registry.track("color", "size")
    assert registry.keys() == ["color", "size"]


def test_filters_run_in_registration_order() -> None:
    """Each filter sees the list produced by the previous ones."""
    registry = TrackedKeyRegistry()
    registry.track("a", "b")

    @registry.register
    def drop_a(keys: List[str]) -> List[str]:
        return [k for k in keys if k != "a"]

    registry.track("c")
    assert registry.keys() == ["b", "c"]


def test_duplicates_removed_preserving_order() -> None:
    registry = TrackedKeyRegistry()
    registry.track("x", "y")
    registry.track("y", "x", "z")
    assert registry.keys() == ["x", "y", "z"]


def test_recomputed_on_every_call() -> None:
    """Registration changes show up immediately."""
    registry = TrackedKeyRegistry()
    callback = registry.track("color")
    assert registry.keys() == ["color"]

    assert registry.unregister(callback) is True
    assert registry.keys() == []
    assert registry.unregister(callback) is False


def test_live_filter_state() -> None:
    """A filter backed by mutable state is re-read each time."""
    enabled: List[str] = []
    registry = TrackedKeyRegistry()
    registry.register(lambda keys: keys + enabled)

    assert registry.keys() == []
    enabled.append("mood")
    assert registry.keys() == ["mood"]


def test_filter_may_return_any_iterable() -> None:
    registry = TrackedKeyRegistry()
    registry.register(lambda keys: (k for k in ["g1", "g2"]))
    assert registry.keys() == ["g1", "g2"]


def test_clear() -> None:
    registry = TrackedKeyRegistry()
    registry.track("a")
    registry.clear()
    assert registry.keys() == []
