"""
Release inspection.

Turns a discovered Release into a ReleaseInfo: download the archive (once),
extract the build metadata and addon packages into a scratch directory,
parse them, and ask the update catalog which addon versions it offers.
"""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

import requests

from systemaddons.constants import (
    ADDON_ARCHIVE_EXTENSION,
    DEFAULT_EXTRACT_PATTERN,
    SCRATCH_DIR_PREFIX,
)
from systemaddons.exceptions import FileSystemError, MetadataMissingError
from systemaddons.log_utils import logger

from .catalog import UpdateCatalogClient
from .files import download_archive, extract_archive, sanitize_path_component
from .interfaces import Pathish, Release, ReleaseInfo, SystemAddon
from .metadata import apply_build_metadata, parse_addon_manifest


class ReleaseInspector:
    """
    Inspects one release at a time; safe to share between worker threads.
    """

    def __init__(
        self,
        session: requests.Session,
        catalog: UpdateCatalogClient,
        download_dir: Pathish,
        extract_pattern: str = DEFAULT_EXTRACT_PATTERN,
        timeout: Optional[float] = None,
    ):
        self.session = session
        self.catalog = catalog
        self.download_dir = Path(download_dir)
        self.extract_pattern = extract_pattern
        self.timeout = timeout

    def local_path(self, release: Release) -> Path:
        """
        Return the cache path `download_dir/target/locale/filename` of an archive.

        Raises:
            PathValidationError: If a component is not a safe path segment.
        """
        return (
            self.download_dir
            / sanitize_path_component(release.target, "target")
            / sanitize_path_component(release.locale, "locale")
            / sanitize_path_component(release.filename, "filename")
        )

    def fetch(self, release: Release) -> Path:
        """Download the release archive unless it is already cached."""
        path = self.local_path(release)
        if path.exists():
            logger.debug(f"Using cached archive {path}")
            return path
        logger.info(f"Download release {release.url}")
        return download_archive(release.url, path, self.session, timeout=self.timeout)

    def inspect(self, release: Release) -> ReleaseInfo:
        """
        Build the merged record for a release.

        Returns:
            ReleaseInfo: The release with build metadata applied, its builtin
            addons in archive order, and the offered updates.

        Raises:
            PathValidationError: If the release names an unsafe path.
            FileSystemError: If the archive or scratch directory cannot be created.
            TransportError, ProtocolError: If the download fails.
            ExtractionError: If the archive cannot be read.
            MetadataMissingError: If the archive carries no usable metadata file.
            ManifestMissingError, CorruptedArchiveError: If an addon package
                is broken.
            CatalogUnavailableError, DecodeError: If the catalog query fails.
        """
        archive_path = self.fetch(release)

        builtins: List[SystemAddon] = []
        metadata_found = False
        try:
            scratch = tempfile.TemporaryDirectory(prefix=SCRATCH_DIR_PREFIX)
        except OSError as exc:
            raise FileSystemError(
                "Could not create scratch directory",
                path=tempfile.gettempdir(),
                details=str(exc),
            ) from exc
        with scratch as scratch_dir:
            extracted = extract_archive(archive_path, self.extract_pattern, scratch_dir)
            for path in extracted:
                if path.name.endswith(ADDON_ARCHIVE_EXTENSION):
                    builtins.append(parse_addon_manifest(path))
                else:
                    release = apply_build_metadata(release, path)
                    metadata_found = True

        if not metadata_found:
            raise MetadataMissingError(
                "Could not read metadata",
                archive_path=os.fspath(archive_path),
                details="no metadata file in archive",
            )

        updates = self.catalog.fetch_updates(release, builtins)
        return ReleaseInfo(
            release=release, builtins=tuple(builtins), updates=tuple(updates)
        )
