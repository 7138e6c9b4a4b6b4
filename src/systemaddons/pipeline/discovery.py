"""
Release discovery.

Walks the release tree of the delivery service, nightly channels first and
then `releases/<version>/<target>/<locale>/<file>`, yielding each archive
that passes the selection policy.
"""

from typing import Iterator, Optional, Sequence

from systemaddons.config import SelectionPolicy, WalkErrorPolicy
from systemaddons.constants import NIGHTLY_DIR_TEMPLATE, RELEASES_DIR
from systemaddons.exceptions import RemoteServiceError
from systemaddons.log_utils import logger
from systemaddons.utils import ensure_trailing_slash

from .channels import CancellationToken
from .interfaces import ListingNode, Release
from .listing import ListingClient


class NoNightlyReleaseError(RemoteServiceError):
    """Raised when a nightly directory holds no archive matching the policy."""


class ReleaseWalker:
    """
    Depth-first walker over the delivery service's release tree.

    Listing nodes are fetched one at a time and never cached; each call of
    `iter_releases` walks the tree again.
    """

    def __init__(
        self,
        listing: ListingClient,
        policy: SelectionPolicy,
        root_url: str,
        nightly_channels: Sequence[str] = (),
        min_version: str = "",
        error_policy: WalkErrorPolicy = WalkErrorPolicy.ABORT,
    ):
        """
        Parameters:
            listing (ListingClient): Client used for every directory fetch.
            policy (SelectionPolicy): Version, target, locale and file filters.
            root_url (str): Root of the release tree.
            nightly_channels (Sequence[str]): Nightly repositories to inspect;
                the first one is required to yield a release.
            min_version (str): Low-water-mark; release versions that compare
                lower or equal (as plain strings) are skipped. Empty disables it.
            error_policy (WalkErrorPolicy): Reaction to failures below the
                releases root.
        """
        self.listing = listing
        self.policy = policy
        self.root_url = ensure_trailing_slash(root_url)
        self.nightly_channels = tuple(nightly_channels)
        self.min_version = min_version
        self.error_policy = error_policy

    def _fetch(self, url: str, token: Optional[CancellationToken]) -> ListingNode:
        if token is not None:
            token.raise_if_cancelled("release discovery")
        return self.listing.fetch(url)

    def _fetch_branch(
        self, url: str, token: Optional[CancellationToken]
    ) -> Optional[ListingNode]:
        """Fetch a node below the releases root, honouring the error policy."""
        try:
            return self._fetch(url, token)
        except RemoteServiceError as exc:
            if self.error_policy is WalkErrorPolicy.SKIP:
                logger.warning(f"Skipping {url}: {exc}")
                return None
            raise

    def nightly_release(
        self, channel: str, token: Optional[CancellationToken] = None
    ) -> Release:
        """
        Return the first archive of a nightly channel matching the policy.

        Raises:
            NoNightlyReleaseError: If no file of the directory matches.
            RemoteServiceError: If the directory listing cannot be fetched.
        """
        url = self.root_url + NIGHTLY_DIR_TEMPLATE.format(channel=channel)
        node = self._fetch(url, token)
        pattern = self.policy.nightly_filename_pattern()
        for entry in node.files:
            match = pattern.search(entry.name)
            if match is None:
                continue
            return Release(
                url=url + entry.name,
                version=match.group("version"),
                target=match.group("target"),
                locale=match.group("locale"),
                filename=entry.name,
                channel=channel,
            )
        raise NoNightlyReleaseError("Could not find nightly release", url=url)

    def _iter_nightly(self, token: Optional[CancellationToken]) -> Iterator[Release]:
        for index, channel in enumerate(self.nightly_channels):
            try:
                release = self.nightly_release(channel, token)
            except RemoteServiceError as exc:
                if index == 0:
                    raise
                logger.warning(f"No {channel} nightly release found: {exc}")
                continue
            logger.debug(f"Found nightly release {release.filename}")
            yield release

    def _iter_versions(self, token: Optional[CancellationToken]) -> Iterator[str]:
        root = self._fetch(self.root_url + RELEASES_DIR, token)
        for prefix in root.prefixes:
            version = prefix.rstrip("/")
            if not self.policy.accepts_version(version):
                continue
            if self.min_version and version <= self.min_version:
                logger.debug(f"Skipping {version}, already published")
                continue
            yield version

    def iter_releases(self, token: Optional[CancellationToken] = None) -> Iterator[Release]:
        """
        Yield every release archive matching the selection policy.

        Parameters:
            token (Optional[CancellationToken]): Checked before every listing
                fetch; a fired token ends the walk with a CancellationError.

        Yields:
            Release: Discovered releases, with build id and channel unknown
            except for nightly releases, which carry their channel name.

        Raises:
            RemoteServiceError: On a listing failure the error policy does not
                absorb.
            CancellationError: When the token fires.
        """
        yield from self._iter_nightly(token)

        releases_url = self.root_url + RELEASES_DIR
        for version in self._iter_versions(token):
            version_url = f"{releases_url}{version}/"
            targets = self._fetch_branch(version_url, token)
            if targets is None:
                continue
            for target_prefix in targets.prefixes:
                target = target_prefix.rstrip("/")
                if not self.policy.accepts_target(target):
                    continue
                target_url = f"{version_url}{target}/"
                locales = self._fetch_branch(target_url, token)
                if locales is None:
                    continue
                for locale_prefix in locales.prefixes:
                    locale = locale_prefix.rstrip("/")
                    if not self.policy.accepts_locale(locale):
                        continue
                    locale_url = f"{target_url}{locale}/"
                    files = self._fetch_branch(locale_url, token)
                    if files is None:
                        continue
                    for entry in files.files:
                        if not self.policy.accepts_filename(entry.name):
                            continue
                        yield Release(
                            url=locale_url + entry.name,
                            version=version,
                            target=target,
                            locale=locale,
                            filename=entry.name,
                        )
