"""
Version and artifact resolution.

Artifact patterns are templates: runtime tokens are substituted first, then
the expanded text is compiled as a regular expression and matched against
asset names.
"""

import re
from dataclasses import replace
from typing import Dict, Iterable, Optional, Sequence

from buckle.config import GithubSource
from buckle.constants import (
    COMMIT_ID_PATTERN,
    GITHUB_RELEASES_PAGE_TEMPLATE,
    TOKEN_ARCH,
    TOKEN_OS,
    TOKEN_TARGET,
    TOKEN_VERSION,
    VERBATIM_ARTIFACTS,
)
from buckle.exceptions import ArtifactNotFoundError, ConfigurationError
from buckle.log_utils import logger
from buckle.platform_info import RuntimeFacts

from .files import sanitize_path_component
from .interfaces import Asset, Release, Selection

COMMIT_ID_RX = re.compile(COMMIT_ID_PATTERN)


def expand_artifact_pattern(template: str, facts: RuntimeFacts, version: str) -> str:
    """
    Substitute %arch%, %os%, %target% and %version% in an artifact template.

    Substituted values are inserted literally, before any regular expression
    compilation.

    Parameters:
        template (str): Artifact template from configuration.
        facts (RuntimeFacts): Host architecture, OS and target triple.
        version (str): Display name of the release being considered.

    Returns:
        str: The expanded pattern.
    """
    return (
        template.replace(TOKEN_ARCH, facts.arch)
        .replace(TOKEN_OS, facts.os)
        .replace(TOKEN_TARGET, facts.target)
        .replace(TOKEN_VERSION, version)
    )


def _compile(pattern: str, what: str) -> "re.Pattern[str]":
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid {what} '{pattern}'", str(e)) from None


def release_identity(release: Release) -> str:
    """
    Return the cache key for a release.

    The commit id is used when the release points at one; branch names and other
    moving targets fall back to the release display name.
    """
    commitish = release.target_commitish
    if commitish and COMMIT_ID_RX.match(commitish):
        return commitish
    identity = sanitize_path_component(release.display_name)
    if identity is None:
        # Display names like "." or "a/b" are not usable as directory names.
        identity = sanitize_path_component(
            release.display_name.replace("/", "_").replace("\\", "_")
        )
    if identity is None:
        raise ArtifactNotFoundError(
            f"Release '{release.display_name}' has no usable identity"
        )
    return identity


def _split_assets(
    assets: Iterable[Asset], matcher: "re.Pattern[str]"
) -> tuple[Optional[Asset], Dict[str, Asset]]:
    chosen: Optional[Asset] = None
    verbatim: Dict[str, Asset] = {}
    for asset in assets:
        if asset.name in VERBATIM_ARTIFACTS:
            verbatim[asset.name] = asset
            continue
        if matcher.search(asset.name):
            chosen = asset
    return chosen, verbatim


def resolve_release_asset(
    releases: Sequence[Release],
    source: GithubSource,
    version_pattern: str,
    artifact_pattern: str,
    facts: RuntimeFacts,
) -> Selection:
    """
    Select the release and asset to install.

    Releases are scanned in listing order. Among releases whose display name
    matches `version_pattern`, every asset matching the expanded artifact pattern is a
    candidate; the last candidate encountered wins. Assets named like a verbatim
    side-artifact are collected separately and never chosen as the executable.

    Parameters:
        releases (Sequence[Release]): Releases in provider listing order.
        source (GithubSource): Provider, used for error messages.
        version_pattern (str): Regular expression matched against release display names.
        artifact_pattern (str): Artifact template (see expand_artifact_pattern).
        facts (RuntimeFacts): Values for the runtime tokens.

    Returns:
        Selection: The chosen release, asset, its verbatim side-artifacts and cache identity.

    Raises:
        ArtifactNotFoundError: If no release matches the version, or no matching release
            has an asset matching the artifact pattern.
        ConfigurationError: If either pattern is not a valid regular expression.
    """
    version_rx = _compile(version_pattern, "version pattern")
    releases_page = GITHUB_RELEASES_PAGE_TEMPLATE.format(
        owner=source.owner, repo=source.repo
    )

    matching = [r for r in releases if version_rx.search(r.display_name)]
    if not matching:
        raise ArtifactNotFoundError(
            f"{version_pattern} was not available from {source.provider}",
            provider=source.provider,
            pattern=version_pattern,
            details=f"Please check '{releases_page}' for available releases",
        )

    selection: Optional[Selection] = None
    attempted = []
    # Matching releases without an asset, listed after the current selection.
    skipped = []
    for release in matching:
        expanded = expand_artifact_pattern(
            artifact_pattern, facts, release.display_name
        )
        attempted.append(expanded)
        asset, verbatim = _split_assets(
            release.assets, _compile(expanded, "artifact pattern")
        )
        if asset is None:
            logger.debug(
                "Release %s has no asset matching %s", release.display_name, expanded
            )
            skipped.append(release.display_name)
            continue
        selection = Selection(release=release, asset=asset, verbatim_assets=verbatim)
        skipped = []

    if selection is None:
        raise ArtifactNotFoundError(
            f"No asset matching '{artifact_pattern}' in {source.provider} releases "
            f"matching '{version_pattern}'",
            provider=source.provider,
            pattern=artifact_pattern,
            details=f"Tried {', '.join(sorted(set(attempted)))}. The release format "
            f"may have changed upstream; please report it with a link to {releases_page}",
        )

    if skipped:
        logger.warning(
            "Release(s) %s match %s but have no asset matching %s; using %s instead.",
            ", ".join(skipped),
            version_pattern,
            artifact_pattern,
            selection.release.display_name,
        )

    identity = release_identity(selection.release)
    logger.debug(
        "Resolved %s %s -> %s (%s)",
        source.provider,
        version_pattern,
        selection.asset.name,
        identity,
    )
    return replace(selection, identity=identity)
