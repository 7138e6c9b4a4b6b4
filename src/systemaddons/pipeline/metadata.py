"""
Build metadata and addon manifest parsers.

Release archives carry an `application.ini` with the build identifier and
source repository, and one `.xpi` package per bundled system addon. Each
package is a zip archive whose `install.rdf` describes the addon.
"""

import dataclasses
import re
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional

from systemaddons.constants import (
    ADDON_MANIFEST_NAME,
    NIGHTLY_CHANNEL_NAME,
    NIGHTLY_REPOSITORY_NAME,
)
from systemaddons.exceptions import (
    CorruptedArchiveError,
    ManifestMissingError,
    MetadataMissingError,
)
from systemaddons.log_utils import logger

from .interfaces import Pathish, Release, SystemAddon

BUILD_ID_RX = re.compile(r"^BuildID=(.+?)\s*$", re.MULTILINE)
SOURCE_REPOSITORY_RX = re.compile(r"^SourceRepository=.+mozilla-(.+?)/?\s*$", re.MULTILINE)

RDF_NAMESPACE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
EM_NAMESPACE = "http://www.mozilla.org/2004/em-rdf#"


@dataclass(frozen=True)
class BuildMetadata:
    build_id: str
    channel: str


def parse_build_metadata(text: str) -> BuildMetadata:
    """
    Extract the build identifier and channel from application.ini content.

    The channel is the repository name suffix after `mozilla-` in the
    `SourceRepository` URL; `central` is reported as `nightly`.

    Raises:
        MetadataMissingError: If either field is absent.
    """
    build_match = BUILD_ID_RX.search(text)
    repo_match = SOURCE_REPOSITORY_RX.search(text)
    if build_match is None or repo_match is None:
        raise MetadataMissingError("Could not read metadata")

    channel = repo_match.group(1)
    if channel == NIGHTLY_REPOSITORY_NAME:
        channel = NIGHTLY_CHANNEL_NAME
    return BuildMetadata(build_id=build_match.group(1), channel=channel)


def apply_build_metadata(release: Release, path: Pathish) -> Release:
    """
    Read a metadata file and return a copy of `release` carrying its values.

    Raises:
        MetadataMissingError: If the file cannot be read or lacks the fields.
    """
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError as exc:
        raise MetadataMissingError(
            "Could not read metadata", archive_path=str(path), details=str(exc)
        ) from exc

    try:
        metadata = parse_build_metadata(text)
    except MetadataMissingError as exc:
        raise MetadataMissingError(
            "Could not read metadata",
            archive_path=str(path),
            details="BuildID or SourceRepository missing",
        ) from exc

    logger.debug(
        f"Build metadata for {release.filename}: build {metadata.build_id}, channel {metadata.channel}"
    )
    return dataclasses.replace(
        release, build_id=metadata.build_id, channel=metadata.channel
    )


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _manifest_field(description: ET.Element, name: str) -> Optional[str]:
    """Read an em:<name> value from a child element or an attribute."""
    for child in description:
        if _local_name(child.tag) == name and child.text and child.text.strip():
            return child.text.strip()
    value = description.get(f"{{{EM_NAMESPACE}}}{name}")
    return value.strip() if value else None


def parse_install_manifest(data: bytes, source: str = ADDON_MANIFEST_NAME) -> SystemAddon:
    """
    Extract the addon id and version from install.rdf content.

    Only the top-level RDF Description is considered, so ids of nested
    target application descriptions are never picked up.

    Raises:
        CorruptedArchiveError: If the document is not well-formed XML.
        ManifestMissingError: If the description, id or version is missing.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise CorruptedArchiveError(
            "Invalid install manifest", archive_path=source, details=str(exc)
        ) from exc

    description = next(
        (child for child in root if _local_name(child.tag) == "Description"), None
    )
    if description is None:
        raise ManifestMissingError(
            "Install manifest has no description", archive_path=source
        )

    addon_id = _manifest_field(description, "id")
    version = _manifest_field(description, "version")
    if not addon_id or not version:
        raise ManifestMissingError(
            "Install manifest lacks id or version", archive_path=source
        )
    return SystemAddon(id=addon_id, version=version)


def parse_addon_manifest(path: Pathish) -> SystemAddon:
    """
    Read the install manifest of an addon package.

    Parameters:
        path (Pathish): Path of the `.xpi` package (a zip archive).

    Returns:
        SystemAddon: The addon id and version.

    Raises:
        ManifestMissingError: If the package has no install.rdf entry.
        CorruptedArchiveError: If the package or the manifest is malformed.
    """
    source = str(path)
    try:
        with zipfile.ZipFile(path, "r") as package:
            try:
                data = package.read(ADDON_MANIFEST_NAME)
            except KeyError as exc:
                raise ManifestMissingError(
                    f"Cannot find {ADDON_MANIFEST_NAME}", archive_path=source
                ) from exc
    except (zipfile.BadZipFile, OSError) as exc:
        raise CorruptedArchiveError(
            "Invalid addon package", archive_path=source, details=str(exc)
        ) from exc

    addon = parse_install_manifest(data, source=source)
    logger.debug(f"Addon {addon.id} {addon.version} in {source}")
    return addon
