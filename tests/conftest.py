import json
from pathlib import Path

import platformdirs
import pytest
import requests

from buckle.platform_info import RuntimeFacts

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Use the fake_session fixture."
)

_ISOLATED_ENV_VARS = (
    "BUCKLE_CONFIG",
    "BUCKLE_BINARY",
    "BUCKLE_VERSION",
    "BUCKLE_HOME",
    "BUCKLE_CACHE",
    "BUCKLE_PRELUDE_CHECK",
    "BUCKLE_LOG_LEVEL",
    "USE_BUCK2_VERSION",
    "GITHUB_TOKEN",
)

BUCK2_COMMIT = "3c5f0e2a9b1d4e6f8a0b2c4d6e8f0a1b2c3d4e5f"
PRELUDE_COMMIT = "9f8e7d6c5b4a39281706f5e4d3c2b1a098765432"


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used across the buckle test suite.
    """
    config.addinivalue_line("markers", "unit: fast tests of a single module")
    config.addinivalue_line(
        "markers", "integration: tests that drive the full launch pipeline"
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.head = _block_network
    requests.Session.request = _block_network


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Clear buckle environment variables and point the platform cache directory at a temp dir.
    """
    for var in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    cache_dir = tmp_path_factory.mktemp("platform-cache")
    monkeypatch.setattr(
        platformdirs,
        "user_cache_dir",
        lambda *args, **_kwargs: str(cache_dir / (args[0] if args else "")),
    )


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, content=b"", status_code=200, headers=None, chunk_size=None):
        self.content = content
        self.status_code = status_code
        self.headers = headers or {}
        self.chunk_size = chunk_size
        self.closed = False

    def json(self):
        return json.loads(self.content)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=1):
        step = self.chunk_size or chunk_size
        for offset in range(0, len(self.content), step):
            yield self.content[offset : offset + step]

    def close(self):
        self.closed = True


class FakeSession:
    """
    Route GET requests to canned responses by URL and record every call.

    A route may be a FakeResponse, an exception instance to raise, or a callable
    returning either.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.headers = {}

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"No route for {url}")
        if callable(route) and not isinstance(route, FakeResponse):
            route = route()
        if isinstance(route, Exception):
            raise route
        return route

    def urls(self):
        return [url for url, _kwargs in self.calls]

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


@pytest.fixture
def fake_session():
    """Provide an empty FakeSession; tests add routes as needed."""
    return FakeSession()


@pytest.fixture
def linux_facts():
    return RuntimeFacts(
        arch="x86_64", os="linux", target="x86_64-unknown-linux-musl"
    )


def _make_release(
    name,
    assets,
    commitish=BUCK2_COMMIT,
    tag_name=None,
    base_url="https://github.com/facebook/buck2/releases/download",
):
    """Build a GitHub API release entry with one asset per name in `assets`."""
    tag = tag_name or name
    return {
        "tag_name": tag,
        "name": name,
        "target_commitish": commitish,
        "assets": [
            {
                "name": asset_name,
                "browser_download_url": f"{base_url}/{tag}/{asset_name}",
            }
            for asset_name in assets
        ],
    }


@pytest.fixture
def buck2_releases_payload():
    """Release listing for facebook/buck2 with a commit-pinned 'latest' release."""
    releases = [
        _make_release(
            "latest",
            [
                "buck2-x86_64-unknown-linux-musl.zst",
                "buck2-aarch64-apple-darwin.zst",
                "prelude_hash",
            ],
        ),
        _make_release(
            "2024-01-15",
            ["buck2-x86_64-unknown-linux-musl.zst"],
            commitish="main",
        ),
    ]
    return json.dumps(releases).encode("utf-8")


@pytest.fixture
def make_project(tmp_path):
    """
    Create a buck2 project directory with a root ``.buckconfig``.

    Returns a factory taking the prelude location (or None) and returning the root.
    """

    def _make(prelude="prelude", name="project"):
        root = tmp_path / name
        root.mkdir()
        lines = ["[cells]", "  root = .", ""]
        if prelude is not None:
            lines = ["[repositories]", "  root = .", f"  prelude = {prelude}", ""]
        (root / ".buckconfig").write_text("\n".join(lines), encoding="utf-8")
        return root

    return _make


@pytest.fixture
def release_entry():
    """Factory for GitHub API release entries."""
    return _make_release


@pytest.fixture
def write_snapshot():
    """Factory writing a releases.json snapshot into a directory."""
    return _write_snapshot


def _write_snapshot(directory: Path, payload: bytes) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "releases.json"
    path.write_bytes(payload)
    return path


@pytest.fixture
def fake_response():
    """The FakeResponse class, for building canned responses."""
    return FakeResponse


@pytest.fixture
def buck2_commit():
    return BUCK2_COMMIT


@pytest.fixture
def prelude_commit():
    return PRELUDE_COMMIT
