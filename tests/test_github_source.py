"""Tests for the GitHub release index and its on-disk snapshot."""

import json
import os

import pytest
import requests

from buckle.config import GithubSource
from buckle.download.github_source import (
    GithubReleaseSource,
    create_release_from_github_data,
)
from buckle.exceptions import IndexUnavailableError

pytestmark = pytest.mark.unit

API_URL = "https://api.github.com/repos/facebook/buck2/releases"
SOURCE = GithubSource("facebook", "buck2", "latest")
NOW = 1_700_000_000.0
HOUR = 3600


def _source(tmp_path, session, now=NOW):
    return GithubReleaseSource(SOURCE, tmp_path, session, clock=lambda: now)


def _age_snapshot(path, seconds):
    os.utime(path, (NOW - seconds, NOW - seconds))


class TestSnapshotFreshness:
    def test_missing_snapshot_is_stale(self, tmp_path, fake_session):
        assert not _source(tmp_path, fake_session).is_snapshot_fresh()

    @pytest.mark.parametrize(
        "age,fresh",
        [
            (0, True),
            (4 * HOUR - 1, True),
            (4 * HOUR, False),
            (4 * HOUR + 1, False),
            # Clock skew: snapshots from the future count by absolute distance
            (-(4 * HOUR - 1), True),
            (-(4 * HOUR + 1), False),
        ],
    )
    def test_freshness_window(
        self, tmp_path, fake_session, write_snapshot, age, fresh
    ):
        path = write_snapshot(tmp_path, b"[]")
        _age_snapshot(path, age)

        assert _source(tmp_path, fake_session).is_snapshot_fresh() is fresh


class TestGetReleases:
    def test_fresh_snapshot_skips_network(
        self, tmp_path, fake_session, write_snapshot, buck2_releases_payload
    ):
        path = write_snapshot(tmp_path, buck2_releases_payload)
        _age_snapshot(path, HOUR)

        releases = _source(tmp_path, fake_session).get_releases()

        assert [r.display_name for r in releases] == ["latest", "2024-01-15"]
        assert fake_session.calls == []

    def test_stale_snapshot_is_refreshed_verbatim(
        self,
        tmp_path,
        fake_session,
        fake_response,
        write_snapshot,
        buck2_releases_payload,
    ):
        path = write_snapshot(tmp_path, b"[]")
        _age_snapshot(path, 5 * HOUR)
        fake_session.routes[API_URL] = fake_response(buck2_releases_payload)

        releases = _source(tmp_path, fake_session).get_releases()

        assert len(releases) == 2
        assert fake_session.urls() == [API_URL]
        assert path.read_bytes() == buck2_releases_payload

    def test_missing_snapshot_is_written(
        self, tmp_path, fake_session, fake_response, buck2_releases_payload
    ):
        cache_dir = tmp_path / "buck2"
        fake_session.routes[API_URL] = fake_response(buck2_releases_payload)

        _source(cache_dir, fake_session).get_releases()

        assert (cache_dir / "releases.json").read_bytes() == buck2_releases_payload
        assert [p.name for p in cache_dir.iterdir()] == ["releases.json"]

    def test_fetch_failure_falls_back_to_stale_snapshot(
        self, tmp_path, fake_session, write_snapshot, buck2_releases_payload, mocker
    ):
        path = write_snapshot(tmp_path, buck2_releases_payload)
        _age_snapshot(path, 30 * 24 * HOUR)
        fake_session.routes[API_URL] = requests.ConnectionError("offline")
        mock_warning = mocker.patch("buckle.download.github_source.logger.warning")

        releases = _source(tmp_path, fake_session).get_releases()

        assert len(releases) == 2
        assert path.read_bytes() == buck2_releases_payload
        mock_warning.assert_called_once()

    @pytest.mark.parametrize(
        "body,status",
        [(b"not json", 200), (b'{"message": "Not Found"}', 200), (b"", 502)],
    )
    def test_bad_responses_fall_back_without_overwriting(
        self,
        tmp_path,
        fake_session,
        fake_response,
        write_snapshot,
        buck2_releases_payload,
        body,
        status,
    ):
        path = write_snapshot(tmp_path, buck2_releases_payload)
        _age_snapshot(path, 5 * HOUR)
        fake_session.routes[API_URL] = fake_response(body, status_code=status)

        releases = _source(tmp_path, fake_session).get_releases()

        assert len(releases) == 2
        assert path.read_bytes() == buck2_releases_payload

    def test_no_data_at_all(self, tmp_path, fake_session):
        fake_session.routes[API_URL] = requests.Timeout("timed out")

        with pytest.raises(IndexUnavailableError) as exc_info:
            _source(tmp_path, fake_session).get_releases()

        assert exc_info.value.provider == "facebook/buck2"
        assert not (tmp_path / "releases.json").exists()

    def test_unreadable_snapshot(self, tmp_path, fake_session, write_snapshot):
        write_snapshot(tmp_path, b"{corrupt")

        with pytest.raises(IndexUnavailableError, match="unreadable"):
            _source(tmp_path, fake_session).get_releases()

    def test_listing_order_is_preserved(
        self, tmp_path, fake_session, fake_response, release_entry
    ):
        payload = json.dumps(
            [release_entry(name, []) for name in ("c", "a", "b")]
        ).encode()
        fake_session.routes[API_URL] = fake_response(payload)

        releases = _source(tmp_path, fake_session).get_releases()

        assert [r.tag_name for r in releases] == ["c", "a", "b"]

    def test_malformed_entries_are_skipped(
        self, tmp_path, fake_session, write_snapshot, release_entry
    ):
        payload = json.dumps(
            ["bad-entry", {"name": "no tag"}, release_entry("ok", ["a"])]
        ).encode()
        write_snapshot(tmp_path, payload)

        releases = _source(tmp_path, fake_session).get_releases()

        assert [r.tag_name for r in releases] == ["ok"]


class TestCreateReleaseFromGithubData:
    def test_full_release(self):
        release = create_release_from_github_data(
            {
                "tag_name": "latest",
                "name": "Latest build",
                "target_commitish": "abc1234",
                "assets": [
                    {"name": "a", "browser_download_url": "https://x/a"},
                    {"name": "b", "download_url": "https://x/b"},
                ],
            }
        )

        assert release.display_name == "Latest build"
        assert release.target_commitish == "abc1234"
        assert [(a.name, a.download_url) for a in release.assets] == [
            ("a", "https://x/a"),
            ("b", "https://x/b"),
        ]

    def test_display_name_falls_back_to_tag(self):
        release = create_release_from_github_data({"tag_name": "v1", "name": "  "})
        assert release.display_name == "v1"
        assert release.assets == []

    def test_missing_tag(self):
        assert create_release_from_github_data({"name": "x"}) is None

    def test_malformed_assets_are_skipped(self):
        release = create_release_from_github_data(
            {
                "tag_name": "v1",
                "assets": [
                    "bad",
                    {"name": "", "browser_download_url": "https://x/a"},
                    {"name": "no-url"},
                    {"name": "ok", "browser_download_url": "https://x/ok"},
                ],
            }
        )
        assert [a.name for a in release.assets] == ["ok"]
