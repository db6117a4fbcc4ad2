"""
Core data structures for the buckle download subsystem.

Releases and assets are ephemeral: they are parsed from the release index,
used for one resolution and discarded.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

Pathish = Union[str, Path]


@dataclass(frozen=True)
class Asset:
    """A single downloadable file attached to a release."""

    name: str
    """The filename of the asset"""

    download_url: str
    """Direct URL to download the asset"""


@dataclass
class Release:
    """Represents a software release from a repository."""

    tag_name: str
    """The release tag identifier (e.g., 'latest' or '2023-07-15')"""

    name: Optional[str] = None
    """Human readable release title"""

    target_commitish: Optional[str] = None
    """Commit (or branch) the release tag points at"""

    assets: List[Asset] = field(default_factory=list)
    """List of downloadable assets for this release"""

    @property
    def display_name(self) -> str:
        """The release title, or the tag when the release has no title."""
        return self.name or self.tag_name


@dataclass(frozen=True)
class Selection:
    """The outcome of resolving a version and artifact pattern."""

    release: Release
    """The chosen release"""

    asset: Asset
    """The asset holding the executable"""

    verbatim_assets: Dict[str, Asset] = field(default_factory=dict)
    """Side-artifacts of the chosen release keyed by file name"""

    identity: str = ""
    """Cache key for the release (commit id or display name)"""
