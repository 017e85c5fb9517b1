"""
SQLite store implementation for MetaRev.

Persists items and their metadata in a single SQLite database. Metadata values
are serialized with orjson so that strings, numbers and nested lists/dicts
come back exactly as they were written, an empty string included.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Union

import orjson  # High-performance JSON serializer

from metarev_py.store import (
    BaseStore,
    Item,
    ItemKind,
    ItemNotFoundError,
    StoreError,
    same_value,
    validate_value,
)

logger = logging.getLogger("metarev.store.sqlite")

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    parent_id INTEGER REFERENCES items(id) ON DELETE CASCADE,
    title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_items_parent ON items(parent_id, kind);

CREATE TABLE IF NOT EXISTS item_meta (
    meta_id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id INTEGER NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    meta_key TEXT NOT NULL,
    meta_value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_item_meta_owner ON item_meta(owner_id, meta_key);
"""


def _encode(value: Any) -> str:
    validate_value(value)
    try:
        return orjson.dumps(value).decode("utf-8")
    except orjson.JSONEncodeError as e:
        raise StoreError(f"Cannot serialize metadata value {value!r}: {e}") from e


def _decode(raw: str) -> Any:
    return orjson.loads(raw)


class SqliteStore(BaseStore):
    """SQLite-backed store."""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        """
        Open (and if needed create) a store database.

        Args:
            db_path: Database file path, or ":memory:" for a throwaway store
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.db_path = str(Path(self.db_path).expanduser())

        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.commit()
        logger.debug(f"Opened store at {self.db_path}")

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._conn.close()

    def __enter__(self) -> "SqliteStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        return Item(
            id=row["id"],
            kind=ItemKind(row["kind"]),
            parent_id=row["parent_id"],
            title=row["title"],
            content=row["content"],
            created=datetime.fromisoformat(row["created_at"]),
        )

    def _exists(self, item_id: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM items WHERE id = ?", (item_id,)
        ).fetchone()
        return row is not None

    def create_item(
        self,
        kind: ItemKind,
        parent_id: Optional[int] = None,
        title: str = "",
        content: str = "",
    ) -> Item:
        if parent_id is not None and not self._exists(parent_id):
            raise ItemNotFoundError(parent_id)
        created = datetime.now(timezone.utc)
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO items (kind, parent_id, title, content, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (kind.value, parent_id, title, content, created.isoformat()),
            )
        item_id = cursor.lastrowid
        logger.debug(f"Created {kind.value} {item_id}")
        return Item(
            id=item_id,
            kind=kind,
            parent_id=parent_id,
            title=title,
            content=content,
            created=created,
        )

    def get_item(self, item_id: int) -> Optional[Item]:
        row = self._conn.execute(
            "SELECT * FROM items WHERE id = ?", (item_id,)
        ).fetchone()
        return self._row_to_item(row) if row else None

    def update_item(
        self,
        item_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Item:
        item = self.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        if title is not None:
            item.title = title
        if content is not None:
            item.content = content
        with self._conn:
            self._conn.execute(
                "UPDATE items SET title = ?, content = ? WHERE id = ?",
                (item.title, item.content, item_id),
            )
        return item

    def delete_item(self, item_id: int) -> bool:
        with self._conn:
            cursor = self._conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
        if cursor.rowcount:
            logger.debug(f"Deleted item {item_id}")
        return cursor.rowcount > 0

    def revisions(self, parent_id: int) -> List[Item]:
        rows = self._conn.execute(
            "SELECT * FROM items WHERE parent_id = ? AND kind = ? ORDER BY id DESC",
            (parent_id, ItemKind.REVISION.value),
        ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def get_autosave(self, parent_id: int) -> Optional[Item]:
        row = self._conn.execute(
            "SELECT * FROM items WHERE parent_id = ? AND kind = ? "
            "ORDER BY id DESC LIMIT 1",
            (parent_id, ItemKind.AUTOSAVE.value),
        ).fetchone()
        return self._row_to_item(row) if row else None

    def get_metadata(self, owner_id: int, key: str, single: bool = False) -> Any:
        rows = self._conn.execute(
            "SELECT meta_value FROM item_meta WHERE owner_id = ? AND meta_key = ? "
            "ORDER BY meta_id",
            (owner_id, key),
        ).fetchall()
        values = [_decode(row["meta_value"]) for row in rows]
        if single:
            return values[0] if values else ""
        return values

    def metadata_keys(self, owner_id: int) -> List[str]:
        rows = self._conn.execute(
            "SELECT meta_key, MIN(meta_id) AS first_id FROM item_meta "
            "WHERE owner_id = ? GROUP BY meta_key ORDER BY first_id",
            (owner_id,),
        ).fetchall()
        return [row["meta_key"] for row in rows]

    def add_metadata(self, owner_id: int, key: str, value: Any) -> None:
        if not self._exists(owner_id):
            raise ItemNotFoundError(owner_id)
        encoded = _encode(value)
        with self._conn:
            self._conn.execute(
                "INSERT INTO item_meta (owner_id, meta_key, meta_value) "
                "VALUES (?, ?, ?)",
                (owner_id, key, encoded),
            )

    def delete_metadata(self, owner_id: int, key: str, value: Any = None) -> bool:
        if value is None:
            with self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM item_meta WHERE owner_id = ? AND meta_key = ?",
                    (owner_id, key),
                )
            return cursor.rowcount > 0

        # Compare decoded values so dict key order does not matter and
        # 1, 1.0 and True stay distinct.
        rows = self._conn.execute(
            "SELECT meta_id, meta_value FROM item_meta "
            "WHERE owner_id = ? AND meta_key = ?",
            (owner_id, key),
        ).fetchall()
        doomed = [
            (row["meta_id"],)
            for row in rows
            if same_value(_decode(row["meta_value"]), value)
        ]
        if not doomed:
            return False
        with self._conn:
            self._conn.executemany("DELETE FROM item_meta WHERE meta_id = ?", doomed)
        return True
