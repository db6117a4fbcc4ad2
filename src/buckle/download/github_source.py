"""
GitHub Release Source

This module fetches the release list of a GitHub repository and keeps a
verbatim snapshot of the last successful response next to the cached
binaries, so that repeated launches within the freshness window never touch
the network and a failed fetch can fall back to stale data.
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from buckle.config import GithubSource
from buckle.constants import (
    GITHUB_MAX_PER_PAGE,
    GITHUB_RELEASES_URL_TEMPLATE,
    RELEASES_CACHE_EXPIRY_HOURS,
    RELEASES_SNAPSHOT_FILE,
)
from buckle.exceptions import IndexUnavailableError
from buckle.log_utils import logger
from buckle.utils import make_github_api_request

from .files import atomic_write_bytes
from .interfaces import Asset, Release


class GithubReleaseSource:
    """
    Release index for one GitHub repository, backed by an on-disk snapshot.

    Lookup order:
    1. Snapshot younger than the freshness window: use it, no network call
    2. Otherwise fetch from the GitHub API and overwrite the snapshot
    3. On fetch failure fall back to the snapshot, however old
    4. With no snapshot either, raise IndexUnavailableError
    """

    def __init__(
        self,
        source: GithubSource,
        cache_dir: Path,
        session: requests.Session,
        expiry_seconds: float = RELEASES_CACHE_EXPIRY_HOURS * 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the GitHub release source.

        Parameters:
            source (GithubSource): Repository whose releases are listed.
            cache_dir (Path): Per-archive cache directory holding the snapshot.
            session (requests.Session): HTTP session used for the API call.
            expiry_seconds (float): Freshness window of the snapshot.
            clock (Callable[[], float]): Returns the current time as a Unix timestamp.
        """
        self.source = source
        self.cache_dir = Path(cache_dir)
        self.session = session
        self.expiry_seconds = expiry_seconds
        self.clock = clock

    @property
    def releases_url(self) -> str:
        return GITHUB_RELEASES_URL_TEMPLATE.format(
            owner=self.source.owner, repo=self.source.repo
        )

    @property
    def snapshot_path(self) -> Path:
        return self.cache_dir / RELEASES_SNAPSHOT_FILE

    def is_snapshot_fresh(self) -> bool:
        """
        Report whether the snapshot exists and was written within the freshness window.
        """
        try:
            mtime = self.snapshot_path.stat().st_mtime
        except OSError:
            return False
        return abs(self.clock() - mtime) < self.expiry_seconds

    def get_releases(self) -> List[Release]:
        """
        Return the repository's releases in the provider's listing order.

        Raises:
            IndexUnavailableError: If the API cannot be reached and no snapshot exists,
                or the snapshot cannot be parsed.
        """
        if self.is_snapshot_fresh():
            logger.debug("Using cached releases from %s", self.snapshot_path)
            return self._parse(self._read_snapshot())

        payload = self._fetch_from_api()
        if payload is not None:
            self._write_snapshot(payload)
            return self._parse(json.loads(payload))

        if self.snapshot_path.exists():
            logger.warning(
                "Could not refresh releases for %s, using cached data from %s",
                self.source.provider,
                self.snapshot_path,
            )
            return self._parse(self._read_snapshot())

        raise IndexUnavailableError(
            f"No release information available for {self.source.provider}",
            provider=self.source.provider,
            details=f"{self.releases_url} could not be fetched and no "
            f"{RELEASES_SNAPSHOT_FILE} is cached",
        )

    def _fetch_from_api(self) -> Optional[bytes]:
        """
        Fetch the raw release list body.

        Returns:
            Optional[bytes]: The response body when it is a JSON list, otherwise None.
        """
        try:
            response = make_github_api_request(
                self.session,
                self.releases_url,
                params={"per_page": GITHUB_MAX_PER_PAGE},
            )
            payload = response.content
            data = json.loads(payload)
        except requests.RequestException as exc:
            logger.debug("Error fetching releases from %s: %s", self.releases_url, exc)
            return None
        except ValueError as exc:
            logger.debug("Invalid JSON from %s: %s", self.releases_url, exc)
            return None

        if not isinstance(data, list):
            logger.debug(
                "Unexpected releases payload from %s: %s",
                self.releases_url,
                type(data).__name__,
            )
            return None

        logger.debug("Fetched %d releases from %s", len(data), self.releases_url)
        return payload

    def _read_snapshot(self) -> Any:
        try:
            return json.loads(self.snapshot_path.read_bytes())
        except (OSError, ValueError) as exc:
            raise IndexUnavailableError(
                f"Cached release information for {self.source.provider} is unreadable",
                provider=self.source.provider,
                details=f"{exc}; remove {self.snapshot_path} to refetch",
            ) from exc

    def _write_snapshot(self, payload: bytes) -> None:
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create cache directory {self.cache_dir}: {e}")
            return
        if not atomic_write_bytes(self.snapshot_path, payload):
            logger.warning("Could not cache releases at %s", self.snapshot_path)

    def _parse(self, releases_data: Any) -> List[Release]:
        if not isinstance(releases_data, list):
            raise IndexUnavailableError(
                f"Release information for {self.source.provider} is not a list",
                provider=self.source.provider,
            )

        releases: List[Release] = []
        for release_data in releases_data:
            if not isinstance(release_data, dict):
                logger.warning(
                    "Skipping malformed release entry from %s: expected dict, got %s",
                    self.source.provider,
                    type(release_data).__name__,
                )
                continue
            release = create_release_from_github_data(release_data)
            if release is not None:
                releases.append(release)
        return releases


def create_release_from_github_data(release_data: Dict[str, Any]) -> Optional[Release]:
    """
    Create a Release object from GitHub API release data.

    Parameters:
        release_data (Dict[str, Any]): Raw release data from the GitHub API.

    Returns:
        Optional[Release]: A Release populated with its well-formed assets, or None
            when the tag is missing.
    """
    tag_name = release_data.get("tag_name")
    if not isinstance(tag_name, str) or not tag_name.strip():
        logger.warning("Skipping release with missing or invalid tag_name")
        return None

    name = release_data.get("name")
    commitish = release_data.get("target_commitish")
    release = Release(
        tag_name=tag_name,
        name=name if isinstance(name, str) and name.strip() else None,
        target_commitish=commitish if isinstance(commitish, str) else None,
    )

    assets_data = release_data.get("assets")
    if not isinstance(assets_data, list):
        return release

    for asset_data in assets_data:
        if not isinstance(asset_data, dict):
            logger.warning("Skipping malformed asset for release %s", tag_name)
            continue
        asset_name = asset_data.get("name")
        download_url = asset_data.get("browser_download_url") or asset_data.get(
            "download_url"
        )
        if not isinstance(asset_name, str) or not asset_name.strip():
            logger.warning("Skipping asset with invalid name for release %s", tag_name)
            continue
        if not isinstance(download_url, str) or not download_url:
            logger.warning(
                "Skipping asset %s without download URL for release %s",
                asset_name,
                tag_name,
            )
            continue
        release.assets.append(Asset(name=asset_name, download_url=download_url))

    return release
