"""
Update Catalog Client

Queries the update service for the system addon versions it currently offers
to a given build. The service URL is a template whose placeholders are
filled from the release attributes.
"""

import xml.etree.ElementTree as ET
from typing import List, Optional, Sequence

import requests

from systemaddons.constants import CATALOG_DEFAULT_VALUE, DEFAULT_REQUEST_TIMEOUT
from systemaddons.exceptions import (
    CatalogUnavailableError,
    DecodeError,
    TransportError,
)
from systemaddons.log_utils import logger
from systemaddons.utils import default_headers

from .interfaces import Release, SystemAddon


def build_catalog_url(url_template: str, release: Release) -> str:
    """
    Substitute the release attributes into an update catalog URL template.

    The operating system version and distribution placeholders are always
    filled with "default". Each placeholder is replaced once.
    """
    substitutions = (
        ("{VERSION}", release.version),
        ("{BUILD_ID}", release.build_id),
        ("{BUILD_TARGET}", release.target),
        ("{LOCALE}", release.locale),
        ("{CHANNEL}", release.channel),
        ("{OS_VERSION}", CATALOG_DEFAULT_VALUE),
        ("{DISTRIBUTION}", CATALOG_DEFAULT_VALUE),
        ("{DISTRIBUTION_VERSION}", CATALOG_DEFAULT_VALUE),
    )
    url = url_template
    for placeholder, value in substitutions:
        url = url.replace(placeholder, value, 1)
    return url


def parse_catalog(url: str, body: bytes) -> List[SystemAddon]:
    """
    Parse an update catalog document.

    Expected layout::

        <updates>
          <addons>
            <addon id="flyweb@mozilla.org" version="1.0" URL="..." .../>
          </addons>
        </updates>

    Raises:
        DecodeError: If the body is not an `<updates>` XML document.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise DecodeError(
            "Update catalog is not valid XML", url=url, details=str(exc)
        ) from exc
    if root.tag != "updates":
        raise DecodeError(
            "Unexpected update catalog document", url=url, details=f"root <{root.tag}>"
        )
    return [
        SystemAddon(id=addon.get("id", ""), version=addon.get("version", ""))
        for addon in root.findall("./addons/addon")
    ]


class UpdateCatalogClient:
    """Fetches the system addon updates offered for a release."""

    def __init__(
        self,
        url_template: str,
        session: requests.Session,
        timeout: Optional[float] = None,
    ):
        self.url_template = url_template
        self.session = session
        self.timeout = timeout or DEFAULT_REQUEST_TIMEOUT

    def build_url(self, release: Release) -> str:
        return build_catalog_url(self.url_template, release)

    def fetch_updates(
        self, release: Release, builtins: Sequence[SystemAddon] = ()
    ) -> List[SystemAddon]:
        """
        Fetch the updates the catalog offers for `release`.

        Parameters:
            release (Release): A release whose build metadata was applied.
            builtins (Sequence[SystemAddon]): Addons bundled in the release;
                only logged.

        Returns:
            List[SystemAddon]: Offered addon versions, in document order.

        Raises:
            TransportError: On connection or transfer failure.
            CatalogUnavailableError: If the response status is not a success.
            DecodeError: If the body is not a valid catalog document.
        """
        url = self.build_url(release)
        logger.info(f"Fetch updates info {url}")
        if builtins:
            logger.debug(
                "Builtins for %s: %s",
                release.filename,
                ", ".join(f"{a.id}@{a.version}" for a in builtins),
            )

        try:
            response = self.session.get(
                url,
                headers=default_headers("application/xml"),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(
                "Could not fetch updates list", url=url, details=str(exc)
            ) from exc

        if not 200 <= response.status_code < 300:
            raise CatalogUnavailableError(
                "Could not fetch updates list",
                url=url,
                status_code=response.status_code,
                details=f"HTTP {response.status_code}",
            )

        return parse_catalog(url, response.content)
