"""
Launcher: pick the binary, make sure it is cached, check the prelude and
hand the process over to it.
"""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

import requests

from buckle.config import LauncherSettings, load_settings, resolve_version_pattern
from buckle.download.cache import CacheStore
from buckle.download.orchestrator import ResolvedBinary, ensure_binary
from buckle.log_utils import logger
from buckle.platform_info import RuntimeFacts, detect_runtime_facts
from buckle.prelude import (
    PreludeCheckResult,
    PreludeStatus,
    check_prelude,
    find_project_root,
    read_prelude_path,
)
from buckle.utils import create_session


@dataclass(frozen=True)
class LaunchPlan:
    """Everything decided before handing over to the binary."""

    binary_path: Path
    resolved: ResolvedBinary
    prelude: PreludeCheckResult
    project_root: Optional[Path] = None


def _check_prelude(
    store: CacheStore,
    resolved: ResolvedBinary,
    project_root: Optional[Path],
) -> PreludeCheckResult:
    if project_root is None:
        return PreludeCheckResult(
            PreludeStatus.NOT_APPLICABLE, reason="no buck2 project root found"
        )
    prelude_path = read_prelude_path(project_root)
    if prelude_path is None:
        return PreludeCheckResult(
            PreludeStatus.NOT_APPLICABLE, reason="no prelude configured"
        )
    expected = store.read_prelude_hash(resolved.entry_dir)
    return check_prelude(project_root, prelude_path, expected)


def prepare_launch(
    settings: LauncherSettings,
    environ: Mapping[str, str],
    cwd: Path,
    session: requests.Session,
    facts: RuntimeFacts,
) -> LaunchPlan:
    """
    Resolve, cache and validate the binary to run.

    The project root is computed once here and passed to every step that needs it.

    Returns:
        LaunchPlan: Path of the executable plus the prelude check outcome.
    """
    binary, archive = settings.config.resolve_binary(settings.binary_name)
    project_root = find_project_root(cwd)
    version_pattern = resolve_version_pattern(
        settings, binary, archive, environ, project_root
    )

    store = CacheStore(settings.cache_root)
    resolved = ensure_binary(
        store, archive, binary.name, version_pattern, facts, session
    )
    binary_path = store.verify_executable(resolved.path)

    if settings.check_prelude:
        prelude = _check_prelude(store, resolved, project_root)
    else:
        prelude = PreludeCheckResult(
            PreludeStatus.NOT_APPLICABLE, reason="prelude check disabled"
        )

    return LaunchPlan(
        binary_path=binary_path,
        resolved=resolved,
        prelude=prelude,
        project_root=project_root,
    )


def exec_binary(binary_path: Path, args: Sequence[str]) -> int:
    """
    Replace this process with `binary_path`, passing `args` through.

    On Windows, where exec cannot keep the console attached, the binary runs as a
    child with inherited streams and its exit status is returned.
    """
    argv = [str(binary_path), *args]
    logger.debug("Executing %s", " ".join(argv))
    if os.name == "nt":
        return subprocess.run(argv, check=False).returncode
    os.execv(argv[0], argv)
    return 0  # pragma: no cover


def run(
    argv: Sequence[str],
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
) -> int:
    """
    Launch the configured binary with the arguments following argv[0].
    """
    environ = os.environ if environ is None else environ
    cwd = Path.cwd() if cwd is None else cwd
    settings = load_settings(environ, cwd, argv[0] if argv else None)
    logger.debug("Configuration: %s", settings.config_path or "built-in defaults")
    logger.debug("Cache root: %s", settings.cache_root)

    with create_session() as session:
        plan = prepare_launch(
            settings, environ, cwd, session, detect_runtime_facts()
        )
    return exec_binary(plan.binary_path, argv[1:])
