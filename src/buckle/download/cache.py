"""
Cache layout for buckle.

    <cache_root>/<archive>/releases.json
    <cache_root>/<archive>/<release identity>/<binary>
    <cache_root>/<archive>/<release identity>/prelude_hash

Directories are created on demand and never locked; concurrent runs for the
same release may both download, and the last rename wins.
"""

import os
import stat
from pathlib import Path
from typing import Optional

from buckle.constants import PRELUDE_HASH_FILE
from buckle.exceptions import CacheCorruptedError, CacheWriteFailedError
from buckle.log_utils import logger

from .files import sanitize_path_component


class CacheStore:
    """Directory-per-release cache rooted at `cache_root`."""

    def __init__(self, cache_root: Path):
        self.cache_root = Path(cache_root)

    def archive_dir(self, archive_name: str) -> Path:
        """Directory holding the release snapshot and entries of one archive."""
        return self.cache_root / _component(archive_name, "archive name")

    def entry_dir(self, archive_name: str, identity: str) -> Path:
        return self.archive_dir(archive_name) / _component(identity, "release identity")

    def binary_path(self, archive_name: str, identity: str, binary_name: str) -> Path:
        return self.entry_dir(archive_name, identity) / _component(
            binary_name, "binary name"
        )

    def ensure_archive_dir(self, archive_name: str) -> Path:
        """
        Create the archive directory if needed.

        Raises:
            CacheWriteFailedError: If the directory cannot be created.
        """
        path = self.archive_dir(archive_name)
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise CacheWriteFailedError(
                f"Could not create cache directory {path}",
                path=str(path),
                details=str(e),
            ) from e
        return path

    def read_prelude_hash(self, entry_dir: Path) -> Optional[str]:
        """
        Return the stripped prelude hash stored in a cache entry, if readable.
        """
        path = entry_dir / PRELUDE_HASH_FILE
        try:
            value = path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("No usable prelude hash at %s: %s", path, e)
            return None
        return value or None

    def verify_executable(self, binary_path: Path) -> Path:
        """
        Check that a cached binary is a regular, executable file.

        Raises:
            CacheCorruptedError: If the binary is missing, not a file, or not executable on POSIX.
        """
        corrupted = CacheCorruptedError(
            "The buckle cache is corrupted",
            path=str(binary_path.parent),
            details=f"Suggested fix is to remove {binary_path.parent}",
        )
        try:
            st = binary_path.stat()
        except OSError:
            raise corrupted from None
        if not stat.S_ISREG(st.st_mode):
            raise corrupted
        if os.name != "nt" and not st.st_mode & 0o111:
            raise corrupted
        return binary_path


def _component(value: str, what: str) -> str:
    safe = sanitize_path_component(value)
    if safe is None:
        raise CacheWriteFailedError(f"Unsafe {what} for cache path: {value!r}")
    return safe
