"""
Core data structures for the systemaddons-versions pipeline.

This module defines the values exchanged between discovery, inspection and
publication. Every value is immutable: the inspection step builds new
instances instead of mutating the ones it received.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from systemaddons.constants import UNKNOWN_VALUE

Pathish = Union[str, Path]


@dataclass(frozen=True)
class FileEntry:
    """A leaf file of a directory listing."""

    name: str
    """The file name, relative to the listing URL"""

    last_modified: str = ""
    """Last modification timestamp as reported by the listing service"""

    size: int = 0
    """File size in bytes"""


@dataclass(frozen=True)
class ListingNode:
    """One directory node of the release tree."""

    prefixes: List[str] = field(default_factory=list)
    """Sub-directory names, each ending with a slash (e.g., '52.0/')"""

    files: List[FileEntry] = field(default_factory=list)
    """Files stored directly in this directory"""


@dataclass(frozen=True)
class Release:
    """A discovered release archive."""

    url: str
    """Canonical URL of the release archive"""

    version: str
    """Release version (e.g., '52.0')"""

    target: str
    """Build target (e.g., 'linux-x86_64')"""

    locale: str
    """Locale of the build (e.g., 'en-US')"""

    filename: str
    """Archive file name"""

    build_id: str = UNKNOWN_VALUE
    """Build identifier, known once the build metadata was read"""

    channel: str = UNKNOWN_VALUE
    """Release channel, known once the build metadata was read"""

    def to_dict(self) -> Dict[str, str]:
        """Serialize to the record layout used by the store."""
        return {
            "url": self.url,
            "buildId": self.build_id,
            "version": self.version,
            "target": self.target,
            "lang": self.locale,
            "channel": self.channel,
            "filename": self.filename,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Release":
        """Build a Release from a stored record's `release` mapping."""
        return cls(
            url=str(data.get("url", "")),
            version=str(data.get("version", "")),
            target=str(data.get("target", "")),
            locale=str(data.get("lang", "")),
            filename=str(data.get("filename", "")),
            build_id=str(data.get("buildId", UNKNOWN_VALUE)),
            channel=str(data.get("channel", UNKNOWN_VALUE)),
        )


@dataclass(frozen=True)
class SystemAddon:
    """An addon identifier and version, either bundled or offered as an update."""

    id: str
    version: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "version": self.version}


@dataclass(frozen=True)
class ReleaseInfo:
    """The merged record published for one release."""

    release: Release
    """The release with build metadata applied"""

    builtins: Tuple[SystemAddon, ...] = ()
    """Addons bundled in the archive, in archive order"""

    updates: Tuple[SystemAddon, ...] = ()
    """Addon versions the update catalog offers for this release"""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the record layout used by the store."""
        return {
            "release": self.release.to_dict(),
            "builtins": [addon.to_dict() for addon in self.builtins],
            "updates": [addon.to_dict() for addon in self.updates],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReleaseInfo":
        """
        Build a ReleaseInfo from a stored record.

        Missing or null addon lists are treated as empty.
        """

        def _addons(items: Any) -> Tuple[SystemAddon, ...]:
            return tuple(
                SystemAddon(id=str(item.get("id", "")), version=str(item.get("version", "")))
                for item in (items or [])
                if isinstance(item, dict)
            )

        return cls(
            release=Release.from_dict(data.get("release") or {}),
            builtins=_addons(data.get("builtins")),
            updates=_addons(data.get("updates")),
        )
