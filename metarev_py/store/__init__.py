"""
Store package for MetaRev.

This module provides the base classes for host content stores in MetaRev.
A store persists items (posts, revisions, autosaves) and the ordered
key/value metadata attached to any of them.
"""

import abc
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional


class StoreError(Exception):
    """Base class for failures raised by a content store."""


class ItemNotFoundError(StoreError, KeyError):
    """Raised when an operation references an item id the store does not hold."""

    def __init__(self, item_id: int):
        super().__init__(item_id)
        self.item_id = item_id

    def __str__(self) -> str:
        return f"Item {self.item_id} not found"


_SCALAR_TYPES = (str, int, float, bool, type(None))

# Range orjson can encode without losing precision
_INT_MIN = -(2**63)
_INT_MAX = 2**64 - 1


def validate_value(value: Any) -> None:
    """
    Check that a metadata value survives a JSON round trip unchanged.

    Raises:
        StoreError: For tuples, sets, datetimes and other non-JSON types,
            non-finite floats, out-of-range integers and non-string dict keys
    """
    kind = type(value)
    if kind is list:
        for item in value:
            validate_value(item)
    elif kind is dict:
        for key, item in value.items():
            if type(key) is not str:
                raise StoreError(f"Metadata dict keys must be strings, got {key!r}")
            validate_value(item)
    elif kind not in _SCALAR_TYPES:
        raise StoreError(f"Unsupported metadata value type: {kind.__name__}")
    elif kind is float and not math.isfinite(value):
        raise StoreError(f"Non-finite float {value!r} cannot be stored")
    elif kind is int and not _INT_MIN <= value <= _INT_MAX:
        raise StoreError(f"Integer {value} is out of range")


def same_value(a: Any, b: Any) -> bool:
    """Type-strict equality: 1, 1.0 and True are three different values."""
    if type(a) is not type(b):
        return False
    if type(a) is list:
        return len(a) == len(b) and all(same_value(x, y) for x, y in zip(a, b))
    if type(a) is dict:
        return a.keys() == b.keys() and all(same_value(a[k], b[k]) for k in a)
    return a == b


class ItemKind(Enum):
    """Kinds of items held by a store."""

    POST = "post"
    REVISION = "revision"
    AUTOSAVE = "autosave"


@dataclass
class Item:
    """Represents a post or one of its point-in-time snapshots."""

    id: int
    kind: ItemKind
    parent_id: Optional[int] = None
    title: str = ""
    content: str = ""
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_snapshot(self) -> bool:
        """True for revisions and autosaves."""
        return self.kind in (ItemKind.REVISION, ItemKind.AUTOSAVE)


class BaseStore(abc.ABC):
    """Base class for content stores."""

    @abc.abstractmethod
    def create_item(
        self,
        kind: ItemKind,
        parent_id: Optional[int] = None,
        title: str = "",
        content: str = "",
    ) -> Item:
        """
        Create a new item.

        Args:
            kind: Kind of item to create
            parent_id: Owning post for revisions and autosaves
            title: Item title
            content: Item body

        Returns:
            The stored item
        """
        pass

    @abc.abstractmethod
    def get_item(self, item_id: int) -> Optional[Item]:
        """Return the item with *item_id*, or None."""
        pass

    @abc.abstractmethod
    def update_item(
        self,
        item_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Item:
        """
        Update the title and/or content of an item.

        Raises:
            ItemNotFoundError: If the item does not exist
        """
        pass

    @abc.abstractmethod
    def delete_item(self, item_id: int) -> bool:
        """
        Delete an item together with its metadata, its revisions and its
        autosave.

        Returns:
            True if the item existed, False otherwise
        """
        pass

    @abc.abstractmethod
    def revisions(self, parent_id: int) -> List[Item]:
        """List the revisions of a post, newest first. Autosaves are excluded."""
        pass

    @abc.abstractmethod
    def get_autosave(self, parent_id: int) -> Optional[Item]:
        """Return the autosave draft of a post, if one exists."""
        pass

    @abc.abstractmethod
    def get_metadata(self, owner_id: int, key: str, single: bool = False) -> Any:
        """
        Read the values stored under *key* for an owner.

        Args:
            owner_id: Item owning the metadata
            key: Metadata key
            single: Return only the first value

        Returns:
            List of values in insertion order, or with *single* the first value
            (an empty string when the key is absent)
        """
        pass

    @abc.abstractmethod
    def metadata_keys(self, owner_id: int) -> List[str]:
        """List the metadata keys set on an owner, in first-insertion order."""
        pass

    @abc.abstractmethod
    def add_metadata(self, owner_id: int, key: str, value: Any) -> None:
        """
        Append a value under *key*.

        Raises:
            ItemNotFoundError: If the owner does not exist
            StoreError: If the value cannot be stored exactly, see validate_value
        """
        pass

    @abc.abstractmethod
    def delete_metadata(self, owner_id: int, key: str, value: Any = None) -> bool:
        """
        Delete values stored under *key*.

        Args:
            owner_id: Item owning the metadata
            key: Metadata key
            value: Only delete entries equal to this value; all entries if None

        Returns:
            True if anything was deleted, False otherwise
        """
        pass

    def update_metadata(
        self, owner_id: int, key: str, value: Any, prev_value: Any = None
    ) -> None:
        """
        Set *key* to *value*.

        Without *prev_value* every existing value is replaced by a single
        entry. With *prev_value* only entries equal to it are replaced, in
        place, and nothing happens when none match. The value is added when
        the key is absent.
        """
        current = self.get_metadata(owner_id, key)
        if not current:
            self.add_metadata(owner_id, key, value)
            return

        if prev_value is None:
            if same_value(current, [value]):
                return
            self.delete_metadata(owner_id, key)
            self.add_metadata(owner_id, key, value)
            return

        if not any(same_value(v, prev_value) for v in current):
            return

        replaced = [value if same_value(v, prev_value) else v for v in current]
        self.delete_metadata(owner_id, key)
        for v in replaced:
            self.add_metadata(owner_id, key, v)
