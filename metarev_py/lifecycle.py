"""
Revision lifecycle listener interface for MetaRev.

The revisioning pipeline calls one method per lifecycle event on every
registered listener. The defaults do nothing (or pass the value through), so
a listener only overrides the events it cares about.
"""

import abc
from typing import Any, Mapping

from metarev_py.store import Item


class RevisionListener(abc.ABC):
    """Base class for objects notified of revision lifecycle events."""

    def on_snapshot_created(self, revision_id: int, parent_id: int) -> None:
        """Called after a revision of *parent_id* has been stored."""
        pass

    def on_restore(self, post_id: int, revision_id: int) -> None:
        """Called after *post_id* has been restored from *revision_id*."""
        pass

    def on_autosave(self, autosave_id: int, fields: Mapping[str, Any]) -> None:
        """
        Called when an autosave draft is created or updated.

        Args:
            autosave_id: The autosave item
            fields: Decoded field values submitted with the draft
        """
        pass

    def has_changed(
        self, post_has_changed: bool, last_revision: Item, post: Item
    ) -> bool:
        """
        Decide whether a new revision is warranted.

        Args:
            post_has_changed: Verdict reached so far
            last_revision: Newest existing revision of the post
            post: The post being saved

        Returns:
            The (possibly upgraded) verdict
        """
        return post_has_changed

    def preview_meta(self, value: Any, item: Item, key: str, single: bool) -> Any:
        """Filter a metadata read made while rendering a preview of *item*."""
        return value
