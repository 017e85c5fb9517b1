"""
Tracked key registration for MetaRev.

Collaborators register filter callbacks that contribute metadata keys to be
versioned. The key list is rebuilt from the callbacks on every call, so a
registration change takes effect on the next lifecycle event.
"""

from typing import Callable, Iterable, List

KeyFilter = Callable[[List[str]], Iterable[str]]


class TrackedKeyRegistry:
    """Ordered chain of key filters, applied to an empty default list."""

    def __init__(self) -> None:
        self._filters: List[KeyFilter] = []

    def register(self, callback: KeyFilter) -> KeyFilter:
        """
        Add a filter to the end of the chain.

        Args:
            callback: Receives the key list built so far and returns the new one

        Returns:
            The callback, so the method can be used as a decorator
        """
        self._filters.append(callback)
        return callback

    def track(self, *keys: str) -> KeyFilter:
        """Register a filter that appends *keys*. Returns it for unregister()."""
        static = list(keys)

        def _append(current: List[str]) -> List[str]:
            return current + static

        return self.register(_append)

    def unregister(self, callback: KeyFilter) -> bool:
        """Remove a registered filter. Returns False if it was not found."""
        try:
            self._filters.remove(callback)
        except ValueError:
            return False
        return True

    def clear(self) -> None:
        """Remove every registered filter."""
        self._filters.clear()

    def keys(self) -> List[str]:
        """Run the filter chain and return the de-duplicated key list."""
        current: List[str] = []
        for callback in self._filters:
            current = list(callback(list(current)))

        tracked: List[str] = []
        for key in current:
            if key not in tracked:
                tracked.append(key)
        return tracked
