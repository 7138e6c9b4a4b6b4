"""
File Operations for the inspection pipeline

This module provides the archive fetcher (atomic download) and the archive
extractor (streaming, whitelist-based tar extraction), plus the path checks
both rely on.
"""

import os
import re
import shutil
import tarfile
import time
import zlib
from pathlib import Path
from typing import List, Optional, Pattern, Union

import requests

from systemaddons.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_REQUEST_TIMEOUT,
    PARTIAL_DOWNLOAD_SUFFIX,
)
from systemaddons.exceptions import (
    ExtractionError,
    FileSystemError,
    PathValidationError,
    ProtocolError,
    TransportError,
)
from systemaddons.log_utils import logger

from .interfaces import Pathish


def sanitize_path_component(component: Optional[str], label: str = "path") -> str:
    """
    Validate a single filesystem path component.

    Trims surrounding whitespace and returns the cleaned component if it is a
    safe, relative path segment.

    Parameters:
        component (Optional[str]): The candidate path component.
        label (str): Name of the component, used in error messages.

    Returns:
        str: The trimmed, safe component.

    Raises:
        PathValidationError: If the component is missing, empty, `.` or `..`,
            absolute, contains a null byte, or contains a path separator.
    """
    sanitized = (component or "").strip()
    unsafe = (
        not sanitized
        or sanitized in {".", ".."}
        or os.path.isabs(sanitized)
        or "\x00" in sanitized
        or any(sep and sep in sanitized for sep in (os.sep, os.altsep))
    )
    if unsafe:
        raise PathValidationError(
            f"Unsafe {label} component", path=component, details=repr(component)
        )
    return sanitized


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


def is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory references, or null bytes, `False` otherwise.
    """
    if not member_name or member_name.startswith(("/", "\\")):
        return False
    if "\x00" in member_name:
        return False
    normalized = os.path.normpath(member_name)
    if os.path.isabs(normalized) or normalized == "..":
        return False
    if normalized.startswith(f"..{os.sep}"):
        return False
    if os.altsep and normalized.startswith(f"..{os.altsep}"):
        return False
    return True


def safe_extract_path(extract_dir: Pathish, member_name: str) -> str:
    """
    Resolve a safe absolute extraction path and prevent directory traversal.

    Parameters:
        extract_dir (Pathish): Base directory intended for extraction.
        member_name (str): Member path from the archive.

    Returns:
        str: Absolute, normalized path inside extract_dir.

    Raises:
        ValueError: If the resolved path is outside extract_dir.
    """
    real_extract_dir = os.path.realpath(extract_dir)
    normalized_path = os.path.realpath(os.path.join(real_extract_dir, member_name))
    if not _is_within_base(real_extract_dir, normalized_path):
        raise ValueError(
            f"Unsafe extraction path '{member_name}' is outside base '{extract_dir}'"
        )
    return normalized_path


def _remove_quietly(path: str) -> None:
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e_rm:
            logger.warning(f"Error removing partial file {path}: {e_rm}")


def download_archive(
    url: str,
    destination: Pathish,
    session: requests.Session,
    timeout: Optional[float] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Path:
    """
    Download a release archive so that only complete files carry the final name.

    Streams the response body into `destination + ".part"` and renames it to
    `destination` once the whole body was written. The partial file is
    removed on any failure. There is no retry and no resume.

    Parameters:
        url (str): The archive URL.
        destination (Pathish): Final filesystem path of the archive.
        session (requests.Session): HTTP session used for the request.
        timeout (Optional[float]): Request timeout in seconds.
        chunk_size (int): Streaming chunk size in bytes.

    Returns:
        Path: The final path of the downloaded archive.

    Raises:
        TransportError: On connection or transfer failure.
        ProtocolError: If the response status is not a success.
        FileSystemError: If the local file cannot be written or renamed.
    """
    final_path = os.fspath(destination)
    part_path = f"{final_path}{PARTIAL_DOWNLOAD_SUFFIX}"
    logger.debug(f"Attempting to download {url} to temp path: {part_path}")
    start_time = time.time()
    response = None
    downloaded_bytes = 0
    try:
        parent_dir = os.path.dirname(final_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)
        response = session.get(
            url, stream=True, timeout=timeout or DEFAULT_REQUEST_TIMEOUT
        )
        if not 200 <= response.status_code < 300:
            raise ProtocolError(
                "Could not download release archive",
                url=url,
                status_code=response.status_code,
                details=f"HTTP {response.status_code}",
            )

        with open(part_path, "wb") as file:
            for chunk in response.iter_content(chunk_size=chunk_size):
                if chunk:
                    file.write(chunk)
                    downloaded_bytes += len(chunk)

        os.replace(part_path, final_path)
    except requests.RequestException as exc:
        _remove_quietly(part_path)
        raise TransportError(
            "Network error downloading release archive", url=url, details=str(exc)
        ) from exc
    except OSError as exc:
        _remove_quietly(part_path)
        raise FileSystemError(
            "File I/O error while downloading release archive",
            path=final_path,
            details=str(exc),
        ) from exc
    except ProtocolError:
        _remove_quietly(part_path)
        raise
    finally:
        if response is not None:
            response.close()

    elapsed = time.time() - start_time
    size_mb = downloaded_bytes / (1024 * 1024)
    if size_mb >= 1.0:
        logger.info(f"Downloaded: {os.path.basename(final_path)} ({size_mb:.1f} MB)")
    else:
        logger.info(
            f"Downloaded: {os.path.basename(final_path)} ({downloaded_bytes} bytes)"
        )
    logger.debug("Download elapsed time: %.2fs for %s", elapsed, url)
    return Path(final_path)


def extract_archive(
    archive_path: Pathish,
    include_pattern: Union[str, Pattern[str]],
    output_dir: Pathish,
) -> List[Path]:
    """
    Extract whitelisted entries of a compressed tar archive.

    The archive is read as a stream (gzip, bzip2 and xz are detected
    automatically). Regular-file entries whose name matches `include_pattern`
    (regular expression search) are written to `output_dir/<entry name>` with
    their permission bits; all other entries are skipped without being read.
    Entries whose name would escape `output_dir` are skipped with a warning.

    Parameters:
        archive_path (Pathish): Path of the compressed tar archive.
        include_pattern (Union[str, Pattern[str]]): Entry name whitelist.
        output_dir (Pathish): Destination directory.

    Returns:
        List[Path]: Materialized paths in archive order.

    Raises:
        ExtractionError: If the archive is malformed or an entry cannot be
            written. No partial result is returned.
    """
    pattern = re.compile(include_pattern) if isinstance(include_pattern, str) else include_pattern
    extracted: List[Path] = []

    try:
        with tarfile.open(os.fspath(archive_path), mode="r|*") as archive:
            for member in archive:
                if not pattern.search(member.name):
                    continue
                if not member.isfile():
                    logger.debug(f"Skipping non-file archive entry {member.name}")
                    continue
                if not is_safe_archive_member(member.name):
                    logger.warning(
                        "Skipping unsafe archive member %s (possible traversal)",
                        member.name,
                    )
                    continue
                try:
                    extract_path = safe_extract_path(output_dir, member.name)
                except ValueError as e:
                    logger.warning(f"Skipping unsafe extraction path: {e}")
                    continue

                os.makedirs(os.path.dirname(extract_path), exist_ok=True)
                source = archive.extractfile(member)
                if source is None:
                    continue
                with source, open(extract_path, "wb") as target:
                    shutil.copyfileobj(source, target)
                if os.name != "nt":
                    os.chmod(extract_path, member.mode & 0o777)

                extracted.append(Path(extract_path))
                logger.debug(f"Extracted {member.name} to {extract_path}")
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        raise ExtractionError(
            "Error extracting release archive",
            archive_path=os.fspath(archive_path),
            details=str(exc),
        ) from exc

    return extracted
