"""
Configuration model and loading for buckle.

The configuration document maps named archives (where a release comes from,
how it is packaged, which asset to pick) and named binaries (which archive
provides them). Settings that steer a single run are layered from the
environment, an optional ``.buckleconfig.yaml`` and built-in defaults.
"""

import enum
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import platformdirs
import yaml

from buckle.constants import (
    BINARY_ENV_VAR,
    BUCKVERSION_FILE,
    CACHE_DIR_NAME,
    CONFIG_ENV_VAR,
    CONFIG_FILE_NAMES,
    DEFAULT_BINARY_NAME,
    DEFAULT_BUCK2_CONFIG,
    HOME_ENV_VARS,
    LEGACY_BUCK2_VERSION_ENV_VAR,
    PRELUDE_CHECK_ENV_VAR,
    VERSION_ENV_VAR,
)
from buckle.exceptions import ConfigFileError, ConfigurationError
from buckle.log_utils import logger


class PackageType(enum.Enum):
    """How a release asset encodes the executable."""

    SINGLE_FILE = "single_file"
    ZSTD_SINGLE_FILE = "zstd_single_file"


@dataclass(frozen=True)
class GithubSource:
    """Releases published on GitHub for ``owner/repo``."""

    owner: str
    repo: str
    version_pattern: str

    @property
    def provider(self) -> str:
        return f"{self.owner}/{self.repo}"


# Closed set of source kinds; add new kinds here and in every dispatch site.
ArchiveSource = Union[GithubSource]


@dataclass(frozen=True)
class ArchiveConfig:
    """An archive: where releases come from and how to pick an asset."""

    name: str
    source: ArchiveSource
    package_type: PackageType
    artifact_pattern: str


@dataclass(frozen=True)
class BinaryConfig:
    """A runnable binary and the archive that provides it."""

    name: str
    provided_by: str


@dataclass(frozen=True)
class BuckleConfig:
    """Top level configuration: archives and the binaries they provide."""

    archives: Dict[str, ArchiveConfig] = field(default_factory=dict)
    binaries: Dict[str, BinaryConfig] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BuckleConfig":
        """
        Build a configuration from a parsed document.

        Parameters:
            data (Mapping[str, Any]): Mapping with ``archives`` and ``binaries`` tables.

        Returns:
            BuckleConfig: The validated configuration.

        Raises:
            ConfigurationError: If a required key is missing or has the wrong shape.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Configuration must be a mapping")

        archives_data = data.get("archives")
        binaries_data = data.get("binaries")
        if not isinstance(archives_data, Mapping) or not archives_data:
            raise ConfigurationError("Configuration must declare at least one archive")
        if not isinstance(binaries_data, Mapping) or not binaries_data:
            raise ConfigurationError("Configuration must declare at least one binary")

        archives = {
            str(name): _parse_archive(str(name), entry)
            for name, entry in archives_data.items()
        }
        binaries = {}
        for name, entry in binaries_data.items():
            if not isinstance(entry, Mapping) or not entry.get("provided_by"):
                raise ConfigurationError(
                    f"Binary '{name}' must declare provided_by",
                )
            binaries[str(name)] = BinaryConfig(
                name=str(name), provided_by=str(entry["provided_by"])
            )

        return cls(archives=archives, binaries=binaries)

    @classmethod
    def buck2_latest(cls) -> "BuckleConfig":
        """Fallback configuration used when no document is supplied."""
        return cls.from_mapping(DEFAULT_BUCK2_CONFIG)

    def resolve_binary(
        self, binary_name: Optional[str]
    ) -> tuple[BinaryConfig, ArchiveConfig]:
        """
        Select the binary to run and the archive providing it.

        When `binary_name` is None the configuration must declare exactly one binary,
        which becomes the implicit default.

        Returns:
            tuple[BinaryConfig, ArchiveConfig]: The binary and its archive.

        Raises:
            ConfigurationError: If the binary is unknown, ambiguous, or its archive is missing.
        """
        if binary_name is None:
            if len(self.binaries) != 1:
                raise ConfigurationError(
                    "No binary requested and the configuration declares "
                    f"{len(self.binaries)} binaries",
                    details=f"Set {BINARY_ENV_VAR} to one of: "
                    + ", ".join(sorted(self.binaries)),
                )
            binary = next(iter(self.binaries.values()))
        else:
            binary = self.binaries.get(binary_name)
            if binary is None:
                raise ConfigurationError(
                    f"Binary '{binary_name}' is not configured",
                    details="Known binaries: " + ", ".join(sorted(self.binaries)),
                )

        archive = self.archives.get(binary.provided_by)
        if archive is None:
            raise ConfigurationError(
                f"Binary '{binary.name}' is provided by unknown archive "
                f"'{binary.provided_by}'"
            )
        return binary, archive


def _parse_archive(name: str, entry: Any) -> ArchiveConfig:
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"Archive '{name}' must be a mapping")

    source_data = entry.get("source")
    if not isinstance(source_data, Mapping) or len(source_data) != 1:
        raise ConfigurationError(
            f"Archive '{name}' must declare exactly one source kind"
        )
    kind, source_entry = next(iter(source_data.items()))
    if kind != "github":
        raise ConfigurationError(f"Archive '{name}' has unknown source kind '{kind}'")
    if not isinstance(source_entry, Mapping):
        raise ConfigurationError(f"Archive '{name}' github source must be a mapping")

    owner = source_entry.get("owner")
    repo = source_entry.get("repo")
    version = source_entry.get("version", source_entry.get("version_pattern"))
    if not owner or not repo or version is None:
        raise ConfigurationError(
            f"Archive '{name}' github source needs owner, repo and version"
        )
    source = GithubSource(
        owner=str(owner), repo=str(repo), version_pattern=str(version)
    )

    raw_package_type = entry.get("package_type")
    try:
        package_type = PackageType(raw_package_type)
    except ValueError:
        valid = ", ".join(p.value for p in PackageType)
        raise ConfigurationError(
            f"Archive '{name}' has unknown package_type '{raw_package_type}'",
            details=f"Expected one of: {valid}",
        ) from None

    artifact_pattern = entry.get("artifact_pattern")
    if not isinstance(artifact_pattern, str) or not artifact_pattern:
        raise ConfigurationError(f"Archive '{name}' must declare artifact_pattern")

    return ArchiveConfig(
        name=name,
        source=source,
        package_type=package_type,
        artifact_pattern=artifact_pattern,
    )


@dataclass(frozen=True)
class LauncherSettings:
    """Everything a single launcher run needs from configuration."""

    config: BuckleConfig
    cache_root: Path
    check_prelude: bool = True
    binary_name: Optional[str] = None
    version_override: Optional[str] = None
    config_path: Optional[Path] = None


def find_config_file(start: Path) -> Optional[Path]:
    """
    Return the nearest ``.buckleconfig.yaml`` in `start` or one of its ancestors.
    """
    for directory in (start, *start.parents):
        for file_name in CONFIG_FILE_NAMES:
            candidate = directory / file_name
            if candidate.is_file():
                return candidate
    return None


def _parse_document(text: str, origin: str) -> Dict[str, Any]:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Could not parse configuration from {origin}", str(e))
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigFileError(f"Configuration from {origin} must be a mapping")
    return document


def load_document(
    environ: Mapping[str, str], cwd: Path
) -> tuple[Dict[str, Any], Optional[Path]]:
    """
    Load the raw configuration document.

    An inline document in BUCKLE_CONFIG wins over a configuration file; with neither,
    an empty document is returned.

    Returns:
        tuple: (document, config_path) where config_path is None for inline or absent configuration.
    """
    inline = environ.get(CONFIG_ENV_VAR)
    if inline:
        logger.debug("Using inline configuration from %s", CONFIG_ENV_VAR)
        return _parse_document(inline, CONFIG_ENV_VAR), None

    config_path = find_config_file(cwd)
    if config_path is None:
        return {}, None

    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigFileError(f"Could not read {config_path}", str(e))
    logger.debug("Using configuration file %s", config_path)
    return _parse_document(text, str(config_path)), config_path


def _cache_root(environ: Mapping[str, str], document: Mapping[str, Any]) -> Path:
    for var in HOME_ENV_VARS:
        value = environ.get(var)
        if value:
            return Path(value).expanduser() / CACHE_DIR_NAME
    cache_dir = document.get("cache_dir")
    if cache_dir:
        return Path(str(cache_dir)).expanduser() / CACHE_DIR_NAME
    return Path(platformdirs.user_cache_dir(CACHE_DIR_NAME))


def _check_prelude(environ: Mapping[str, str], document: Mapping[str, Any]) -> bool:
    value = environ.get(PRELUDE_CHECK_ENV_VAR)
    if value is not None:
        return value.strip().upper() != "NO"
    configured = document.get("check_prelude")
    if configured is None:
        return True
    return bool(configured)


def _binary_from_argv0(argv0: Optional[str], config: BuckleConfig) -> Optional[str]:
    if not argv0:
        return None
    name = Path(argv0).name
    if name.lower().endswith(".exe"):
        name = name[:-4]
    return name if name in config.binaries else None


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    argv0: Optional[str] = None,
) -> LauncherSettings:
    """
    Resolve launcher settings from the environment, configuration file and defaults.

    Parameters:
        environ (Optional[Mapping[str, str]]): Environment to read; defaults to os.environ.
        cwd (Optional[Path]): Directory to start the configuration search from.
        argv0 (Optional[str]): Program name; selects the binary when it names a configured one.

    Returns:
        LauncherSettings: Settings for this run.
    """
    environ = os.environ if environ is None else environ
    cwd = Path.cwd() if cwd is None else cwd

    document, config_path = load_document(environ, cwd)
    if "archives" in document or "binaries" in document:
        config = BuckleConfig.from_mapping(document)
    else:
        config = BuckleConfig.buck2_latest()

    binary_name = environ.get(BINARY_ENV_VAR) or _binary_from_argv0(argv0, config)
    version = environ.get(VERSION_ENV_VAR) or document.get("version")

    return LauncherSettings(
        config=config,
        cache_root=_cache_root(environ, document),
        check_prelude=_check_prelude(environ, document),
        binary_name=binary_name,
        version_override=str(version) if version else None,
        config_path=config_path,
    )


def resolve_version_pattern(
    settings: LauncherSettings,
    binary: BinaryConfig,
    archive: ArchiveConfig,
    environ: Mapping[str, str],
    project_root: Optional[Path],
) -> str:
    """
    Pick the version pattern for this run.

    An explicit override wins. For buck2 the legacy USE_BUCK2_VERSION variable and
    the deprecated ``.buckversion`` file at the project root are honored next;
    otherwise the archive's configured pattern is used.

    Raises:
        ConfigurationError: If the chosen pattern is not a valid regular expression.
    """
    pattern = settings.version_override
    if pattern is None and binary.name == DEFAULT_BINARY_NAME:
        pattern = environ.get(LEGACY_BUCK2_VERSION_ENV_VAR)
        if pattern is None and project_root is not None:
            buckversion = project_root / BUCKVERSION_FILE
            if buckversion.is_file():
                logger.warning(
                    "Reading buck2 version from deprecated %s, please use a "
                    ".buckleconfig.yaml file instead",
                    buckversion,
                )
                try:
                    pattern = buckversion.read_text(encoding="utf-8").strip()
                except OSError as e:
                    raise ConfigFileError(f"Could not read {buckversion}", str(e))
    if not pattern:
        pattern = archive.source.version_pattern

    try:
        re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(
            f"Invalid version pattern '{pattern}' for {binary.name}", str(e)
        ) from None
    return pattern
