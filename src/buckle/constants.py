"""
Constants and configuration values for buckle.

This module contains all hardcoded values, URLs, timeouts, file names and
environment variable names used throughout the launcher.
"""

# GitHub API URLs
GITHUB_API_BASE = "https://api.github.com/repos"
GITHUB_RELEASES_URL_TEMPLATE = f"{GITHUB_API_BASE}/{{owner}}/{{repo}}/releases"
GITHUB_RELEASES_PAGE_TEMPLATE = "https://github.com/{owner}/{repo}/releases"
GITHUB_MAX_PER_PAGE = 100

# Network timeouts (in seconds): (connect, read)
GITHUB_API_TIMEOUT = (10, 30)
DOWNLOAD_TIMEOUT = (10, 60)
DEFAULT_CHUNK_SIZE = 64 * 1024

# Release index snapshot
RELEASES_SNAPSHOT_FILE = "releases.json"
RELEASES_CACHE_EXPIRY_HOURS = 4

# Cache layout
CACHE_DIR_NAME = "buckle"
EXECUTABLE_PERMISSIONS = 0o755
TEMP_FILE_PREFIX = ".tmp-"

# Side-artifacts copied byte-for-byte next to the executable
PRELUDE_HASH_FILE = "prelude_hash"
VERBATIM_ARTIFACTS = (PRELUDE_HASH_FILE,)

# Artifact template tokens
TOKEN_ARCH = "%arch%"
TOKEN_OS = "%os%"
TOKEN_TARGET = "%target%"
TOKEN_VERSION = "%version%"

# Release identities that look like commit ids are used verbatim as cache keys
COMMIT_ID_PATTERN = r"^[0-9a-fA-F]{7,40}$"

# Project layout markers
BUCKROOT_FILE = ".buckroot"
BUCKCONFIG_FILE = ".buckconfig"
BUCKVERSION_FILE = ".buckversion"
BUCKCONFIG_PRELUDE_SECTIONS = ("repositories", "cells")
BUCKCONFIG_PRELUDE_KEY = "prelude"

# Configuration files searched from the working directory upwards
CONFIG_FILE_NAMES = (".buckleconfig.yaml", ".buckleconfig.yml")

# Defaults
DEFAULT_BINARY_NAME = "buck2"
DEFAULT_VERSION_PATTERN = "latest"
DEFAULT_BUCK2_CONFIG = {
    "archives": {
        "buck2": {
            "source": {
                "github": {
                    "owner": "facebook",
                    "repo": "buck2",
                    "version": DEFAULT_VERSION_PATTERN,
                }
            },
            "artifact_pattern": "buck2-%target%.zst",
            "package_type": "zstd_single_file",
        }
    },
    "binaries": {"buck2": {"provided_by": "buck2"}},
}

# Environment variable names
LOG_LEVEL_ENV_VAR = "BUCKLE_LOG_LEVEL"
CONFIG_ENV_VAR = "BUCKLE_CONFIG"
BINARY_ENV_VAR = "BUCKLE_BINARY"
VERSION_ENV_VAR = "BUCKLE_VERSION"
LEGACY_BUCK2_VERSION_ENV_VAR = "USE_BUCK2_VERSION"
HOME_ENV_VARS = ("BUCKLE_HOME", "BUCKLE_CACHE")
PRELUDE_CHECK_ENV_VAR = "BUCKLE_PRELUDE_CHECK"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"

# Logging configuration
LOGGER_NAME = "buckle"
DEFAULT_LOG_LEVEL = "INFO"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
