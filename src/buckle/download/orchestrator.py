"""
Resolution pipeline: release index -> pattern resolution -> cache population.
"""

from dataclasses import dataclass
from pathlib import Path

import requests

from buckle.config import ArchiveConfig, GithubSource
from buckle.exceptions import ConfigurationError
from buckle.log_utils import logger
from buckle.platform_info import RuntimeFacts

from .cache import CacheStore
from .files import materialize_release
from .github_source import GithubReleaseSource
from .interfaces import Selection
from .resolver import resolve_release_asset


@dataclass(frozen=True)
class ResolvedBinary:
    """A binary present in the cache, ready to run."""

    path: Path
    entry_dir: Path
    selection: Selection


def ensure_binary(
    store: CacheStore,
    archive: ArchiveConfig,
    binary_name: str,
    version_pattern: str,
    facts: RuntimeFacts,
    session: requests.Session,
) -> ResolvedBinary:
    """
    Resolve `binary_name` from `archive` and make sure it is cached.

    Parameters:
        store (CacheStore): Cache to consult and populate.
        archive (ArchiveConfig): Archive providing the binary.
        binary_name (str): File name of the executable in the cache entry.
        version_pattern (str): Regular expression selecting the release.
        facts (RuntimeFacts): Host facts for artifact template expansion.
        session (requests.Session): HTTP session for index and asset requests.

    Returns:
        ResolvedBinary: The cached executable and the release it came from.
    """
    source = archive.source
    if isinstance(source, GithubSource):
        index = GithubReleaseSource(
            source, store.ensure_archive_dir(archive.name), session
        )
    else:
        raise ConfigurationError(f"Unsupported source for archive '{archive.name}'")

    selection = resolve_release_asset(
        index.get_releases(),
        source,
        version_pattern,
        archive.artifact_pattern,
        facts,
    )
    entry_dir = store.entry_dir(archive.name, selection.identity)
    path = materialize_release(
        session, selection, archive.package_type, entry_dir, binary_name
    )
    logger.debug("Using %s", path)
    return ResolvedBinary(path=path, entry_dir=entry_dir, selection=selection)
