"""
Prelude consistency check.

Releases that publish a ``prelude_hash`` pin the prelude commit they were
built against. When the project keeps its prelude as a git submodule, the
submodule's checked-out commit is compared with that hash and a warning is
printed on mismatch. The check never blocks the launch.
"""

import configparser
import enum
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from buckle.constants import (
    BUCKCONFIG_FILE,
    BUCKCONFIG_PRELUDE_KEY,
    BUCKCONFIG_PRELUDE_SECTIONS,
    BUCKROOT_FILE,
)
from buckle.log_utils import logger

GitRunner = Callable[[Sequence[str], Path], Optional[str]]

GITLINK_MODE = "160000"


class PreludeStatus(enum.Enum):
    CONSISTENT = "consistent"
    MISMATCHED = "mismatched"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class PreludeCheckResult:
    """Outcome of a prelude check; hashes are None when not applicable."""

    status: PreludeStatus
    prelude_path: Optional[Path] = None
    actual_hash: Optional[str] = None
    expected_hash: Optional[str] = None
    reason: Optional[str] = None

    @property
    def remedy(self) -> Optional[str]:
        if self.status is not PreludeStatus.MISMATCHED:
            return None
        return (
            f"cd {self.prelude_path} && git fetch && git checkout {self.expected_hash}"
        )


def _not_applicable(reason: str) -> PreludeCheckResult:
    logger.debug("Skipping prelude check: %s", reason)
    return PreludeCheckResult(PreludeStatus.NOT_APPLICABLE, reason=reason)


def find_project_root(start: Path) -> Optional[Path]:
    """
    Find the buck2 project root for `start`.

    The highest ancestor containing ``.buckconfig`` is the root, unless a
    ``.buckroot`` is found first, which stops the search at that directory.
    """
    root = None
    for directory in (start, *start.parents):
        if (directory / BUCKROOT_FILE).exists():
            return directory
        if (directory / BUCKCONFIG_FILE).exists():
            root = directory
    return root


def read_prelude_path(project_root: Path) -> Optional[str]:
    """
    Return the prelude location declared in the root ``.buckconfig``.

    Unreadable or unparsable configuration yields None; buck2 itself will report a
    better error than we can.
    """
    parser = configparser.ConfigParser(
        strict=False, interpolation=None, inline_comment_prefixes=("#", ";")
    )
    try:
        text = (project_root / BUCKCONFIG_FILE).read_text(encoding="utf-8")
        # .buckconfig indents keys under their section; configparser would read
        # indented lines as value continuations.
        parser.read_string("\n".join(line.strip() for line in text.splitlines()))
    except (OSError, UnicodeDecodeError, configparser.Error) as e:
        logger.debug("Could not parse %s: %s", project_root / BUCKCONFIG_FILE, e)
        return None

    for section in BUCKCONFIG_PRELUDE_SECTIONS:
        if parser.has_option(section, BUCKCONFIG_PRELUDE_KEY):
            value = parser.get(section, BUCKCONFIG_PRELUDE_KEY).strip()
            if value:
                return value
    return None


def run_git(args: Sequence[str], cwd: Path) -> Optional[str]:
    """
    Run a git command and return its stripped stdout, or None if it fails.
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except (subprocess.SubprocessError, FileNotFoundError, OSError) as e:
        logger.debug("git %s failed: %s", " ".join(args), e)
        return None
    if result.returncode != 0:
        logger.debug("git %s exited with %d", " ".join(args), result.returncode)
        return None
    return result.stdout.strip()


def _is_gitlink(staged: Optional[str], path: str) -> bool:
    """Report whether `ls-files --stage` output records `path` itself as a gitlink."""
    for line in (staged or "").splitlines():
        meta, _, entry_path = line.partition("\t")
        fields = meta.split()
        if entry_path == path and fields and fields[0] == GITLINK_MODE:
            return True
    return False


def check_prelude(
    project_root: Path,
    prelude_path: str,
    expected_hash: Optional[str],
    git: GitRunner = run_git,
) -> PreludeCheckResult:
    """
    Compare the prelude submodule's checked-out commit with the expected hash.

    Parameters:
        project_root (Path): buck2 project root.
        prelude_path (str): Prelude location relative to the project root.
        expected_hash (Optional[str]): Hash published with the cached release.
        git (GitRunner): Runs git commands; returns stdout or None on failure.

    Returns:
        PreludeCheckResult: CONSISTENT or MISMATCHED when the prelude is a checked-out
            submodule, NOT_APPLICABLE otherwise. A mismatch is also logged as a warning.
    """
    if not expected_hash:
        return _not_applicable("no expected prelude hash is cached")

    absolute_prelude = (project_root / prelude_path).resolve()

    toplevel = git(["rev-parse", "--show-toplevel"], project_root)
    if not toplevel:
        return _not_applicable(f"{project_root} is not in a git work tree")
    workdir = Path(toplevel).resolve()

    try:
        relative = absolute_prelude.relative_to(workdir)
    except ValueError:
        logger.warning(
            "%s indicates the prelude should be located at %s which is not "
            "within this git repo.",
            project_root / BUCKCONFIG_FILE,
            absolute_prelude,
        )
        return _not_applicable("prelude is outside the git work tree")

    staged = git(["ls-files", "--stage", "--", relative.as_posix()], workdir)
    if not _is_gitlink(staged, relative.as_posix()):
        return _not_applicable(f"{relative.as_posix()} is not a git submodule")

    if not absolute_prelude.is_dir():
        return _not_applicable("prelude submodule is not checked out")
    # An uninitialized submodule is an empty directory; git would answer for
    # the superproject instead.
    submodule_top = git(["rev-parse", "--show-toplevel"], absolute_prelude)
    if not submodule_top or Path(submodule_top).resolve() != absolute_prelude:
        return _not_applicable("prelude submodule is not checked out")
    actual_hash = git(["rev-parse", "HEAD"], absolute_prelude)
    if not actual_hash:
        return _not_applicable("prelude submodule has no checked out commit")

    if actual_hash == expected_hash:
        logger.debug("Prelude at %s matches %s", absolute_prelude, expected_hash)
        return PreludeCheckResult(
            PreludeStatus.CONSISTENT,
            prelude_path=absolute_prelude,
            actual_hash=actual_hash,
            expected_hash=expected_hash,
        )

    result = PreludeCheckResult(
        PreludeStatus.MISMATCHED,
        prelude_path=absolute_prelude,
        actual_hash=actual_hash,
        expected_hash=expected_hash,
    )
    logger.warning(
        "Git submodule for prelude (%s) is not the expected %s.",
        actual_hash,
        expected_hash,
    )
    logger.warning(result.remedy)
    return result
