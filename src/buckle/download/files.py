"""
File Operations for the buckle download subsystem.

This module streams release assets into the cache. The executable is always
decoded into a temporary file in its final directory and renamed into place
once complete, so an interrupted or failed run never leaves a partial
executable at the canonical path.
"""

import os
import tempfile
from pathlib import Path
from typing import Iterable, Iterator, Optional

import requests
import zstandard

from buckle.config import PackageType
from buckle.constants import (
    DEFAULT_CHUNK_SIZE,
    DOWNLOAD_TIMEOUT,
    EXECUTABLE_PERMISSIONS,
    TEMP_FILE_PREFIX,
)
from buckle.exceptions import (
    CacheWriteFailedError,
    DecodeFailedError,
    DownloadFailedError,
)
from buckle.log_utils import logger

from .interfaces import Asset, Pathish, Selection


def sanitize_path_component(component: Optional[str]) -> Optional[str]:
    """
    Validate and sanitize a single filesystem path component.

    Trims surrounding whitespace and returns the cleaned component if it is a safe, relative path segment. Returns None when the input is None or when the component is unsafe: empty after trimming, "." or "..", absolute, containing a null byte, or containing a path separator.

    Parameters:
        component (Optional[str]): The candidate path component to validate and sanitize.

    Returns:
        Optional[str]: The trimmed, safe component string, or `None` if the component is unsafe or `None`.
    """
    if component is None:
        return None

    sanitized = component.strip()
    if not sanitized or sanitized in {".", ".."}:
        return None

    if os.path.isabs(sanitized):
        return None

    if "\x00" in sanitized:
        return None

    for separator in (os.sep, os.altsep, "/", "\\"):
        if separator and separator in sanitized:
            return None

    return sanitized


def atomic_write_bytes(file_path: Pathish, data: bytes) -> bool:
    """
    Write data to a file atomically by writing to a temporary file and atomically replacing the target on success.

    Parameters:
        file_path (Pathish): Destination file path to be written.
        data (bytes): Content to write.

    Returns:
        bool: `True` if the temporary write and atomic replace succeeded, `False` on any error.
    """
    try:
        temp_fd, temp_path = tempfile.mkstemp(
            dir=os.path.dirname(file_path), prefix=TEMP_FILE_PREFIX
        )
    except OSError as e:
        logger.error(f"Could not create temporary file for {file_path}: {e}")
        return False

    try:
        with os.fdopen(temp_fd, "wb") as temp_f:
            temp_f.write(data)
        os.replace(temp_path, file_path)
    except OSError as e:
        logger.error(f"Could not write to {file_path}: {e}")
        return False
    finally:
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                pass
    return True


def _open_stream(session: requests.Session, url: str) -> requests.Response:
    try:
        response = session.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise DownloadFailedError(
            f"Failed to download {url}", url=url, status_code=status, details=str(e)
        ) from e
    except requests.RequestException as e:
        raise DownloadFailedError(
            f"Failed to download {url}", url=url, details=str(e)
        ) from e
    return response


def _iter_chunks(response: requests.Response, url: str) -> Iterator[bytes]:
    try:
        for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
            if chunk:
                yield chunk
    except requests.RequestException as e:
        raise DownloadFailedError(
            f"Download of {url} was interrupted", url=url, details=str(e)
        ) from e


def fetch_bytes(session: requests.Session, url: str) -> bytes:
    """
    Download a small asset fully into memory.

    Raises:
        DownloadFailedError: On any network or HTTP error.
    """
    response = _open_stream(session, url)
    try:
        return b"".join(_iter_chunks(response, url))
    finally:
        response.close()


def decode_stream(
    chunks: Iterable[bytes], package_type: PackageType, out, url: str
) -> int:
    """
    Write the decoded payload of `chunks` to the binary file object `out`.

    Parameters:
        chunks (Iterable[bytes]): Raw payload chunks as downloaded.
        package_type (PackageType): Encoding of the payload.
        out: Writable binary file object.
        url (str): Source URL, used in error messages.

    Returns:
        int: Number of decoded bytes written.

    Raises:
        DecodeFailedError: If the payload is not valid for `package_type`.
    """
    written = 0
    if package_type is PackageType.SINGLE_FILE:
        for chunk in chunks:
            out.write(chunk)
            written += len(chunk)
        return written

    if package_type is PackageType.ZSTD_SINGLE_FILE:
        return _decode_zstd(chunks, out, url)

    raise DecodeFailedError(f"Unsupported package type {package_type!r}", url=url)


def _decode_zstd(chunks: Iterable[bytes], out, url: str) -> int:
    """
    Decode every frame of a zstd stream into `out`.

    A decompression object stops at the end of its frame, so a fresh one is
    started for any bytes that follow. The stream must hold at least one frame
    and must not end inside a frame.
    """
    dctx = zstandard.ZstdDecompressor()
    decompressor = dctx.decompressobj()
    written = 0
    frames = 0
    in_frame = False
    try:
        for chunk in chunks:
            while chunk:
                data = decompressor.decompress(chunk)
                if data:
                    out.write(data)
                    written += len(data)
                if decompressor.eof:
                    frames += 1
                    in_frame = False
                    chunk = decompressor.unused_data
                    decompressor = dctx.decompressobj()
                else:
                    in_frame = True
                    chunk = b""
    except zstandard.ZstdError as e:
        raise DecodeFailedError(
            f"{url} is not a valid zstd stream", url=url, details=str(e)
        ) from e
    if in_frame or frames == 0:
        raise DecodeFailedError(
            f"{url} ended before the zstd frame was complete", url=url
        )
    return written


def _make_executable(path: str) -> None:
    if os.name == "nt":
        return
    os.chmod(path, EXECUTABLE_PERMISSIONS)


def install_executable(
    session: requests.Session,
    asset: Asset,
    package_type: PackageType,
    dest_path: Path,
) -> Path:
    """
    Stream, decode and atomically install an executable at `dest_path`.

    The payload is decoded into a temporary file in the destination directory, flushed,
    marked executable and renamed over `dest_path`. On any failure the temporary file is
    removed and `dest_path` is left untouched.

    Raises:
        DownloadFailedError: On network errors, including mid-stream.
        DecodeFailedError: If the payload does not decode.
        CacheWriteFailedError: On file system errors, including the final rename.
    """
    dest_dir = dest_path.parent
    try:
        temp_file = tempfile.NamedTemporaryFile(
            dir=dest_dir, prefix=TEMP_FILE_PREFIX, delete=False
        )
    except OSError as e:
        raise CacheWriteFailedError(
            f"Could not create temporary file in {dest_dir}",
            path=str(dest_dir),
            details=str(e),
        ) from e

    temp_path = temp_file.name
    try:
        response = _open_stream(session, asset.download_url)
        try:
            with temp_file:
                written = decode_stream(
                    _iter_chunks(response, asset.download_url),
                    package_type,
                    temp_file,
                    asset.download_url,
                )
                temp_file.flush()
                os.fsync(temp_file.fileno())
        finally:
            response.close()
        logger.debug("Decoded %d bytes from %s", written, asset.download_url)
        _make_executable(temp_path)
        os.replace(temp_path, dest_path)
    except OSError as e:
        raise CacheWriteFailedError(
            f"Could not install {dest_path}", path=str(dest_path), details=str(e)
        ) from e
    finally:
        temp_file.close()
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError as e:
                logger.debug("Could not remove temporary file %s: %s", temp_path, e)

    return dest_path


def write_verbatim_artifacts(
    session: requests.Session, assets: Iterable[Asset], dest_dir: Path
) -> list[Path]:
    """
    Copy side-artifacts byte-for-byte into `dest_dir`, each under its asset name.

    Raises:
        DownloadFailedError: If an artifact cannot be downloaded.
        CacheWriteFailedError: If an artifact cannot be written.
    """
    written = []
    for asset in assets:
        path = dest_dir / asset.name
        data = fetch_bytes(session, asset.download_url)
        try:
            path.write_bytes(data)
        except OSError as e:
            raise CacheWriteFailedError(
                f"Could not write {path}", path=str(path), details=str(e)
            ) from e
        logger.debug("Stored %s (%d bytes)", path, len(data))
        written.append(path)
    return written


def materialize_release(
    session: requests.Session,
    selection: Selection,
    package_type: PackageType,
    dest_dir: Path,
    binary_name: str,
) -> Path:
    """
    Ensure the selected release's executable is present in `dest_dir`.

    If the executable already exists nothing is downloaded. Otherwise the verbatim
    side-artifacts are written first and the executable is installed last, so the
    executable never appears without its metadata.

    Parameters:
        session (requests.Session): HTTP session for downloads.
        selection (Selection): Resolved release and assets.
        package_type (PackageType): Encoding of the executable asset.
        dest_dir (Path): Cache entry directory.
        binary_name (str): File name of the executable inside `dest_dir`.

    Returns:
        Path: Path of the executable.
    """
    binary_path = dest_dir / binary_name
    if binary_path.exists():
        logger.debug("Skipped: %s (already cached)", binary_path)
        return binary_path

    try:
        os.makedirs(dest_dir, exist_ok=True)
    except OSError as e:
        raise CacheWriteFailedError(
            f"Could not create cache directory {dest_dir}",
            path=str(dest_dir),
            details=str(e),
        ) from e

    logger.info(
        "Fetching %s %s into %s",
        binary_name,
        selection.release.display_name,
        dest_dir,
    )
    write_verbatim_artifacts(session, selection.verbatim_assets.values(), dest_dir)
    return install_executable(session, selection.asset, package_type, binary_path)
