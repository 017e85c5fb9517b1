"""
In-memory store implementation for MetaRev.

Keeps items and metadata in plain dictionaries. Used for tests and for
embedding the revisioning pipeline in a host that owns persistence itself.
"""

import copy
import itertools
import logging
from typing import Any, Dict, List, Optional, Tuple

from metarev_py.store import (
    BaseStore,
    Item,
    ItemKind,
    ItemNotFoundError,
    same_value,
    validate_value,
)

logger = logging.getLogger("metarev.store.memory")


class MemoryStore(BaseStore):
    """Dictionary-backed store."""

    def __init__(self) -> None:
        self._items: Dict[int, Item] = {}
        # owner id -> ordered list of (key, value) entries
        self._meta: Dict[int, List[Tuple[str, Any]]] = {}
        self._ids = itertools.count(1)

    def create_item(
        self,
        kind: ItemKind,
        parent_id: Optional[int] = None,
        title: str = "",
        content: str = "",
    ) -> Item:
        if parent_id is not None and parent_id not in self._items:
            raise ItemNotFoundError(parent_id)
        item = Item(
            id=next(self._ids),
            kind=kind,
            parent_id=parent_id,
            title=title,
            content=content,
        )
        self._items[item.id] = item
        self._meta[item.id] = []
        logger.debug(f"Created {kind.value} {item.id}")
        return copy.copy(item)

    def get_item(self, item_id: int) -> Optional[Item]:
        item = self._items.get(item_id)
        return copy.copy(item) if item else None

    def update_item(
        self,
        item_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Item:
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        if title is not None:
            item.title = title
        if content is not None:
            item.content = content
        return copy.copy(item)

    def delete_item(self, item_id: int) -> bool:
        if item_id not in self._items:
            return False
        children = [i.id for i in self._items.values() if i.parent_id == item_id]
        for child_id in children:
            self.delete_item(child_id)
        del self._items[item_id]
        self._meta.pop(item_id, None)
        logger.debug(f"Deleted item {item_id}")
        return True

    def revisions(self, parent_id: int) -> List[Item]:
        found = [
            copy.copy(item)
            for item in self._items.values()
            if item.parent_id == parent_id and item.kind == ItemKind.REVISION
        ]
        return sorted(found, key=lambda i: i.id, reverse=True)

    def get_autosave(self, parent_id: int) -> Optional[Item]:
        for item in self._items.values():
            if item.parent_id == parent_id and item.kind == ItemKind.AUTOSAVE:
                return copy.copy(item)
        return None

    def get_metadata(self, owner_id: int, key: str, single: bool = False) -> Any:
        values = [
            copy.deepcopy(v) for k, v in self._meta.get(owner_id, []) if k == key
        ]
        if single:
            return values[0] if values else ""
        return values

    def metadata_keys(self, owner_id: int) -> List[str]:
        keys: List[str] = []
        for k, _ in self._meta.get(owner_id, []):
            if k not in keys:
                keys.append(k)
        return keys

    def add_metadata(self, owner_id: int, key: str, value: Any) -> None:
        if owner_id not in self._items:
            raise ItemNotFoundError(owner_id)
        validate_value(value)
        self._meta[owner_id].append((key, copy.deepcopy(value)))

    def delete_metadata(self, owner_id: int, key: str, value: Any = None) -> bool:
        entries = self._meta.get(owner_id)
        if not entries:
            return False
        kept = [
            (k, v)
            for k, v in entries
            if not (k == key and (value is None or same_value(v, value)))
        ]
        deleted = len(kept) != len(entries)
        self._meta[owner_id] = kept
        return deleted
