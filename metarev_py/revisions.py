"""
Revisioning pipeline for MetaRev.

The RevisionManager owns the post lifecycle: saving posts, taking revisions,
restoring them, writing autosave drafts and answering preview reads. Each step
notifies the registered RevisionListener objects, which is how the metadata
synchronizer gets involved.
"""

import logging
import re
from typing import Any, Iterable, List, Mapping, Optional

from metarev_py.lifecycle import RevisionListener
from metarev_py.retention import RetentionEvaluator, RetentionPolicy
from metarev_py.store import BaseStore, Item, ItemKind, ItemNotFoundError

logger = logging.getLogger("metarev.revisions")

_SLASHED = re.compile(r"\\(.?)", re.DOTALL)


def unslash(value: Any) -> Any:
    """
    Remove one level of backslash escaping from submitted form values.

    Strings are unescaped; lists and dicts are unescaped recursively; any
    other value is returned unchanged.
    """
    if isinstance(value, str):
        return _SLASHED.sub(r"\1", value)
    if isinstance(value, list):
        return [unslash(v) for v in value]
    if isinstance(value, dict):
        return {k: unslash(v) for k, v in value.items()}
    return value


class RevisionManager:
    """Drives the revision lifecycle of posts held in a store."""

    def __init__(
        self,
        store: BaseStore,
        policy: Optional[RetentionPolicy] = None,
        listeners: Optional[Iterable[RevisionListener]] = None,
    ):
        """
        Initialize the manager.

        Args:
            store: Store holding posts, revisions and metadata
            policy: Retention policy; keeps every revision if not specified
            listeners: Listeners to notify of lifecycle events
        """
        self.store = store
        self.policy = policy or RetentionPolicy()
        self.listeners: List[RevisionListener] = list(listeners or [])

    def add_listener(self, listener: RevisionListener) -> None:
        """Register a listener for lifecycle events."""
        self.listeners.append(listener)

    def remove_listener(self, listener: RevisionListener) -> bool:
        """Unregister a listener. Returns False if it was not registered."""
        try:
            self.listeners.remove(listener)
        except ValueError:
            return False
        return True

    def _get_post(self, item_id: int) -> Item:
        item = self.store.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        if item.kind != ItemKind.POST:
            raise ValueError(f"Item {item_id} is a {item.kind.value}, not a post")
        return item

    def create_post(self, title: str = "", content: str = "") -> Item:
        """Create a new post. No revision is taken until the post is updated."""
        post = self.store.create_item(ItemKind.POST, title=title, content=content)
        logger.info(f"Created post {post.id}")
        return post

    def update_post(
        self,
        item_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Optional[Item]:
        """
        Update a post and take a revision of the result.

        Returns:
            The new revision, or None if no revision was needed
        """
        self._get_post(item_id)
        self.store.update_item(item_id, title=title, content=content)
        return self.save_revision(item_id)

    def save_revision(self, item_id: int) -> Optional[Item]:
        """
        Take a revision of a post if anything changed since the last one.

        Title and content are compared against the newest revision first;
        listeners may then upgrade a "no change" verdict.

        Returns:
            The new revision, or None if revisions are disabled or nothing changed
        """
        post = self._get_post(item_id)
        if not self.policy.enabled:
            logger.debug(f"Revisions disabled, not saving a revision of {item_id}")
            return None

        existing = self.store.revisions(item_id)
        if existing:
            last_revision = existing[0]
            post_has_changed = (
                post.title != last_revision.title
                or post.content != last_revision.content
            )
            for listener in self.listeners:
                post_has_changed = listener.has_changed(
                    post_has_changed, last_revision, post
                )
            if not post_has_changed:
                logger.debug(f"No changes to post {item_id}, skipping revision")
                return None

        revision = self.store.create_item(
            ItemKind.REVISION,
            parent_id=item_id,
            title=post.title,
            content=post.content,
        )
        for listener in self.listeners:
            listener.on_snapshot_created(revision.id, item_id)
        logger.info(f"Saved revision {revision.id} of post {item_id}")

        self._apply_retention(item_id)
        return revision

    def _apply_retention(self, item_id: int) -> None:
        evaluator = RetentionEvaluator(self.policy)
        _, to_forget = evaluator.evaluate(self.store.revisions(item_id))
        for revision_id in to_forget:
            self.store.delete_item(revision_id)
            logger.debug(f"Deleted revision {revision_id} of post {item_id}")

    def restore_revision(self, revision_id: int) -> Item:
        """
        Restore a post to the state stored in one of its revisions.

        Raises:
            ItemNotFoundError: If the revision or its post does not exist
            ValueError: If *revision_id* is not a revision

        Returns:
            The restored post
        """
        revision = self.store.get_item(revision_id)
        if revision is None:
            raise ItemNotFoundError(revision_id)
        if revision.kind != ItemKind.REVISION or revision.parent_id is None:
            raise ValueError(f"Item {revision_id} is not a revision")

        post_id = revision.parent_id
        self._get_post(post_id)
        self.store.update_item(
            post_id, title=revision.title, content=revision.content
        )
        for listener in self.listeners:
            listener.on_restore(post_id, revision_id)
        logger.info(f"Restored post {post_id} from revision {revision_id}")

        self.save_revision(post_id)
        return self._get_post(post_id)

    def autosave(
        self,
        item_id: int,
        fields: Optional[Mapping[str, Any]] = None,
        title: Optional[str] = None,
        content: Optional[str] = None,
        slashed: bool = False,
    ) -> Item:
        """
        Create or update the autosave draft of a post.

        Args:
            item_id: The post being edited
            fields: Submitted draft field values
            title: Draft title; the post's title if not specified
            content: Draft content; the post's content if not specified
            slashed: The field values still carry form transport escaping

        Returns:
            The autosave item
        """
        post = self._get_post(item_id)
        draft = self.store.get_autosave(item_id)
        if draft is None:
            draft = self.store.create_item(
                ItemKind.AUTOSAVE,
                parent_id=item_id,
                title=post.title if title is None else title,
                content=post.content if content is None else content,
            )
            logger.info(f"Created autosave {draft.id} of post {item_id}")
        else:
            draft = self.store.update_item(draft.id, title=title, content=content)
            logger.debug(f"Updated autosave {draft.id} of post {item_id}")

        decoded = dict(fields or {})
        if slashed:
            decoded = {key: unslash(value) for key, value in decoded.items()}

        for listener in self.listeners:
            listener.on_autosave(draft.id, decoded)
        return draft

    def get_meta(
        self, item_id: int, key: str, single: bool = False, preview: bool = False
    ) -> Any:
        """
        Read metadata of an item.

        Args:
            item_id: Owner of the metadata
            key: Metadata key
            single: Return only the first value
            preview: The read is made while rendering a preview of *item_id*
        """
        value = self.store.get_metadata(item_id, key, single)
        if not preview:
            return value

        item = self.store.get_item(item_id)
        if item is None:
            return value
        for listener in self.listeners:
            value = listener.preview_meta(value, item, key, single)
        return value
