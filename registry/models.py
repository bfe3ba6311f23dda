"""
registry/models.py -- Domain dataclasses for packages, versions, and the feed.

These are pure data containers with zero logic. Queries, follow edges and
feed assembly live in registry/store.py.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Package:
    """A published package. id is None before the record is written."""

    name: str
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Version:
    """One published version of a package.

    created_at is the publish timestamp and drives feed ordering. The store
    fills it in on insert unless the caller supplies one (imports, tests).
    """

    package_id: int
    num: str
    id: Optional[int] = None
    created_at: str = ""
    yanked: bool = False


@dataclass
class VersionSummary:
    """One row of a user's update feed: a version joined to its package name."""

    id: int
    package: str
    num: str
    created_at: str
    yanked: bool = False


@dataclass
class FeedPage:
    versions: list[VersionSummary] = field(default_factory=list)
    more: bool = False
