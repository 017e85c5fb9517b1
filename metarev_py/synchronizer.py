"""
Metadata revision synchronizer for MetaRev.

Copies the values of tracked metadata keys between a post and its revisions
whenever the revisioning pipeline creates a revision, restores one, writes
an autosave, decides whether a revision is needed, or renders a preview.
"""

import logging
from typing import Any, List, Mapping

from metarev_py.keys import TrackedKeyRegistry
from metarev_py.lifecycle import RevisionListener
from metarev_py.store import BaseStore, Item, same_value

logger = logging.getLogger("metarev.synchronizer")


def _is_empty(value: Any) -> bool:
    """True for values an autosave should not store: None, "" and empty containers."""
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


class MetaRevisionSynchronizer(RevisionListener):
    """Versions tracked metadata keys alongside post revisions."""

    def __init__(self, store: BaseStore, registry: TrackedKeyRegistry):
        """
        Initialize the synchronizer.

        Args:
            store: Store holding posts, revisions and their metadata
            registry: Source of the tracked key list, re-read on every call
        """
        self.store = store
        self.registry = registry

    def tracked_keys(self) -> List[str]:
        """Return the metadata keys currently eligible for versioning."""
        return self.registry.keys()

    def _copy_metadata(self, source_id: int, target_id: int, key: str) -> int:
        """Append every value of *key* on the source to the target."""
        values = self.store.get_metadata(source_id, key)
        for value in values:
            self.store.add_metadata(target_id, key, value)
        return len(values)

    def on_snapshot_created(self, revision_id: int, parent_id: int) -> None:
        """Copy the parent's tracked metadata onto a freshly stored revision."""
        tracked = self.tracked_keys()
        if not tracked:
            return

        present = set(self.store.metadata_keys(parent_id))
        for key in tracked:
            if key not in present:
                continue
            copied = self._copy_metadata(parent_id, revision_id, key)
            logger.debug(
                f"Copied {copied} value(s) of '{key}' from {parent_id} "
                f"to revision {revision_id}"
            )

    def on_restore(self, post_id: int, revision_id: int) -> None:
        """
        Replace the post's tracked metadata with the values stored on a revision.

        Every tracked key is cleared on the post first, so a key the revision
        does not hold ends up absent on the post.
        """
        for key in self.tracked_keys():
            self.store.delete_metadata(post_id, key)
            restored = self._copy_metadata(revision_id, post_id, key)
            logger.debug(
                f"Restored {restored} value(s) of '{key}' on {post_id} "
                f"from revision {revision_id}"
            )

    def on_autosave(self, autosave_id: int, fields: Mapping[str, Any]) -> None:
        """
        Store submitted tracked fields on the autosave draft.

        A field whose value matches the stored one is left alone. A changed
        field replaces the stored value, or clears it when the new value is
        empty.
        """
        for key in self.tracked_keys():
            if key not in fields:
                continue
            incoming = fields[key]
            stored = self.store.get_metadata(autosave_id, key, single=True)
            if same_value(stored, incoming):
                continue

            self.store.delete_metadata(autosave_id, key)
            if _is_empty(incoming):
                logger.debug(f"Cleared '{key}' on autosave {autosave_id}")
                continue
            self.store.add_metadata(autosave_id, key, incoming)
            logger.debug(f"Updated '{key}' on autosave {autosave_id}")

    def has_changed(
        self, post_has_changed: bool, last_revision: Item, post: Item
    ) -> bool:
        """Report a change when any tracked key differs from the last revision."""
        if post_has_changed:
            return True

        for key in self.tracked_keys():
            # Ordered and type-strict: reordering values or turning 1 into
            # True counts as a change.
            current = self.store.get_metadata(post.id, key)
            if not same_value(current, self.store.get_metadata(last_revision.id, key)):
                logger.debug(
                    f"Tracked key '{key}' changed on {post.id} since "
                    f"revision {last_revision.id}"
                )
                return True
        return post_has_changed

    def preview_meta(self, value: Any, item: Item, key: str, single: bool) -> Any:
        """Read tracked keys from the autosave draft while previewing a post."""
        if item.is_snapshot or key not in self.tracked_keys():
            return value

        autosave = self.store.get_autosave(item.id)
        if autosave is None:
            return value

        return self.store.get_metadata(autosave.id, key, single)
