"""
MetaRev - versioned post metadata for revisioned content.

Snapshot the fields that matter alongside every revision of a post.
"""

from importlib.metadata import version as _version

__version__ = _version("metarev")
