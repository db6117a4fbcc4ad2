"""
buckle Download Subsystem

Core Components:
- interfaces: Release, Asset and Selection data structures
- github_source: Release index client with on-disk snapshot
- resolver: Version and artifact pattern resolution
- files: Streaming download, decoding and atomic installation
- cache: Cache directory layout
- orchestrator: Pipeline tying the above together
"""

from .cache import CacheStore
from .github_source import GithubReleaseSource
from .interfaces import Asset, Release, Selection
from .orchestrator import ResolvedBinary, ensure_binary
from .resolver import expand_artifact_pattern, resolve_release_asset

__all__ = [
    # Interfaces
    "Release",
    "Asset",
    "Selection",
    # Core components
    "CacheStore",
    "GithubReleaseSource",
    "ResolvedBinary",
    "ensure_binary",
    "expand_artifact_pattern",
    "resolve_release_asset",
]
