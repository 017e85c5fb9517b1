"""
Revision retention for MetaRev.

This module provides functionality for parsing and evaluating the retention
policy that limits how many revisions are kept per post.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from metarev_py.store import Item

logger = logging.getLogger("metarev.retention")

UNLIMITED = -1


@dataclass
class RetentionPolicy:
    """Retention policy configuration."""

    # -1 keeps every revision, 0 disables revisions, N keeps the newest N
    max_revisions: int = UNLIMITED

    @property
    def enabled(self) -> bool:
        """True unless revisions are switched off entirely."""
        return self.max_revisions != 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetentionPolicy":
        """
        Create a RetentionPolicy from a dictionary.

        Args:
            data: Dictionary with policy configuration

        Returns:
            RetentionPolicy instance
        """
        if not isinstance(data, dict):
            return cls()

        value = data.get("max_revisions", UNLIMITED)
        if value is None:
            value = UNLIMITED
        try:
            max_revisions = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid max_revisions value: {value!r}")
            return cls()

        if max_revisions < UNLIMITED:
            max_revisions = UNLIMITED
        return cls(max_revisions=max_revisions)

class RetentionEvaluator:
    """Evaluates a retention policy against the revisions of a post."""

    def __init__(self, policy: RetentionPolicy):
        """
        Initialize the evaluator with a policy.

        Args:
            policy: Retention policy to use
        """
        self.policy = policy

    def evaluate(self, revisions: List[Item]) -> Tuple[List[int], List[int]]:
        """
        Evaluate the retention policy against a list of revisions.

        Args:
            revisions: Revisions of a single post, in any order

        Returns:
            Tuple of (revision_ids_to_keep, revision_ids_to_forget), newest first
        """
        if not revisions:
            return [], []

        # Newest first; ids grow with creation order
        ordered = sorted(revisions, key=lambda r: r.id, reverse=True)
        if self.policy.max_revisions == UNLIMITED:
            limit = len(ordered)
        else:
            limit = self.policy.max_revisions

        to_keep = [r.id for r in ordered[:limit]]
        to_forget = [r.id for r in ordered[limit:]]

        if to_forget:
            logger.info(
                f"Retention policy: keeping {len(to_keep)} revisions, "
                f"forgetting {len(to_forget)}"
            )

        return to_keep, to_forget
