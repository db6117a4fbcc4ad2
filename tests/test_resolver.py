"""Tests for version and artifact pattern resolution."""

import pytest

from buckle.config import GithubSource
from buckle.download.interfaces import Asset, Release
from buckle.download.resolver import (
    expand_artifact_pattern,
    release_identity,
    resolve_release_asset,
)
from buckle.exceptions import ArtifactNotFoundError, ConfigurationError
from buckle.platform_info import RuntimeFacts

pytestmark = pytest.mark.unit

SOURCE = GithubSource("facebook", "buck2", "latest")
COMMIT = "0123456789abcdef0123456789abcdef01234567"


def _release(name, *asset_names, commitish=COMMIT, tag_name=None):
    return Release(
        tag_name=tag_name or name,
        name=name,
        target_commitish=commitish,
        assets=[Asset(n, f"https://example.com/{name}/{n}") for n in asset_names],
    )


class TestExpandArtifactPattern:
    def test_all_tokens(self, linux_facts):
        expanded = expand_artifact_pattern(
            "tool-%version%-%arch%-%os%-%target%.zst", linux_facts, "v1.2"
        )
        assert expanded == "tool-v1.2-x86_64-linux-x86_64-unknown-linux-musl.zst"

    def test_repeated_tokens(self, linux_facts):
        assert expand_artifact_pattern("%os%/%os%", linux_facts, "v") == "linux/linux"

    def test_no_tokens(self, linux_facts):
        assert expand_artifact_pattern("plain", linux_facts, "v") == "plain"


class TestResolveReleaseAsset:
    def test_default_buck2_selection(self, linux_facts):
        releases = [
            _release(
                "latest",
                "buck2-x86_64-unknown-linux-musl.zst",
                "buck2-aarch64-apple-darwin.zst",
                "prelude_hash",
            )
        ]

        selection = resolve_release_asset(
            releases, SOURCE, "latest", "buck2-%target%.zst", linux_facts
        )

        assert selection.asset.name == "buck2-x86_64-unknown-linux-musl.zst"
        assert selection.identity == COMMIT
        assert list(selection.verbatim_assets) == ["prelude_hash"]

    def test_version_is_a_search_pattern(self, linux_facts):
        """Version patterns match anywhere in the display name."""
        releases = [_release("2024-01-15", "tool"), _release("2024-02-01", "tool")]

        selection = resolve_release_asset(
            releases, SOURCE, "01-15", "tool", linux_facts
        )

        assert selection.release.display_name == "2024-01-15"

    def test_last_matching_candidate_wins(self, linux_facts):
        """Across releases and assets, the last match in listing order is chosen."""
        releases = [
            _release("v1", "tool-a", "tool-b", commitish="1111111"),
            _release("v2", "tool-c", "other", commitish="2222222"),
            _release("v3", "other", commitish="3333333"),
        ]

        selection = resolve_release_asset(releases, SOURCE, "^v", "tool", linux_facts)

        assert selection.asset.name == "tool-c"
        assert selection.identity == "2222222"

    def test_later_release_without_asset_warns(self, linux_facts, mocker):
        releases = [
            _release("v1", "tool", commitish="1111111"),
            _release("v2", "notes.txt", commitish="2222222"),
        ]
        mock_warning = mocker.patch("buckle.download.resolver.logger.warning")

        selection = resolve_release_asset(releases, SOURCE, "^v", "tool", linux_facts)

        assert selection.release.display_name == "v1"
        mock_warning.assert_called_once()
        assert mock_warning.call_args.args[1:] == ("v2", "^v", "tool", "v1")

    def test_earlier_release_without_asset_is_quiet(self, linux_facts, mocker):
        releases = [_release("v1", "notes.txt"), _release("v2", "tool")]
        mock_warning = mocker.patch("buckle.download.resolver.logger.warning")

        selection = resolve_release_asset(releases, SOURCE, "^v", "tool", linux_facts)

        assert selection.release.display_name == "v2"
        mock_warning.assert_not_called()

    def test_version_token_uses_release_display_name(self, linux_facts):
        releases = [_release("v1.0", "tool-v1.0"), _release("v2.0", "tool-v1.0")]

        selection = resolve_release_asset(
            releases, SOURCE, "^v", "tool-%version%$", linux_facts
        )

        assert selection.release.display_name == "v1.0"

    def test_verbatim_assets_come_from_chosen_release(self, linux_facts):
        releases = [
            _release("v1", "tool", "prelude_hash", commitish="1111111"),
            _release("v2", "tool", commitish="2222222"),
        ]

        selection = resolve_release_asset(releases, SOURCE, "^v", "tool", linux_facts)

        assert selection.release.display_name == "v2"
        assert selection.verbatim_assets == {}

    def test_verbatim_asset_never_chosen_as_executable(self, linux_facts):
        releases = [_release("v1", "prelude_hash")]

        with pytest.raises(ArtifactNotFoundError):
            resolve_release_asset(releases, SOURCE, "v1", "prelude", linux_facts)

    def test_no_matching_release(self, linux_facts):
        releases = [_release("2024-01-15", "tool")]

        with pytest.raises(ArtifactNotFoundError) as exc_info:
            resolve_release_asset(releases, SOURCE, "latest", "tool", linux_facts)

        error = exc_info.value
        assert error.message == "latest was not available from facebook/buck2"
        assert "https://github.com/facebook/buck2/releases" in error.details
        assert error.pattern == "latest"

    def test_no_matching_asset(self, linux_facts):
        releases = [_release("latest", "buck2-aarch64-apple-darwin.zst")]

        with pytest.raises(ArtifactNotFoundError) as exc_info:
            resolve_release_asset(
                releases, SOURCE, "latest", "buck2-%target%.zst", linux_facts
            )

        error = exc_info.value
        assert error.pattern == "buck2-%target%.zst"
        assert "buck2-x86_64-unknown-linux-musl.zst" in error.details

    def test_empty_release_list(self, linux_facts):
        with pytest.raises(ArtifactNotFoundError):
            resolve_release_asset([], SOURCE, "latest", "tool", linux_facts)

    def test_invalid_version_pattern(self, linux_facts):
        with pytest.raises(ConfigurationError, match="version pattern"):
            resolve_release_asset(
                [_release("v1", "tool")], SOURCE, "[", "tool", linux_facts
            )

    def test_invalid_artifact_pattern(self, linux_facts):
        with pytest.raises(ConfigurationError, match="artifact pattern"):
            resolve_release_asset(
                [_release("v1", "tool")], SOURCE, "v1", "tool(", linux_facts
            )

    def test_other_platform(self):
        facts = RuntimeFacts("aarch64", "darwin", "aarch64-apple-darwin")
        releases = [
            _release(
                "latest",
                "buck2-x86_64-unknown-linux-musl.zst",
                "buck2-aarch64-apple-darwin.zst",
            )
        ]

        selection = resolve_release_asset(
            releases, SOURCE, "latest", "buck2-%target%.zst", facts
        )

        assert selection.asset.name == "buck2-aarch64-apple-darwin.zst"


class TestReleaseIdentity:
    @pytest.mark.parametrize("commitish", ["abc1234", COMMIT, "ABCDEF0"])
    def test_commit_ids_are_used_verbatim(self, commitish):
        assert release_identity(_release("latest", commitish=commitish)) == commitish

    @pytest.mark.parametrize("commitish", ["main", "abc123", None, "g123456"])
    def test_moving_targets_use_display_name(self, commitish):
        assert release_identity(_release("2024-01-15", commitish=commitish)) == (
            "2024-01-15"
        )

    def test_separators_are_replaced(self):
        assert release_identity(_release("release/v1", commitish="main")) == (
            "release_v1"
        )

    def test_unusable_name(self):
        with pytest.raises(ArtifactNotFoundError):
            release_identity(_release("..", commitish=None))
