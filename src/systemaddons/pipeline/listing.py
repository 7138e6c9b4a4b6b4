"""
Directory Listing Client

Fetches one node of the remote release tree. The listing service answers
every directory URL with a JSON document of sub-directory prefixes and files.
"""

from typing import Any, List, Optional

import requests

from systemaddons.constants import DEFAULT_REQUEST_TIMEOUT
from systemaddons.exceptions import DecodeError, ProtocolError, TransportError
from systemaddons.log_utils import logger
from systemaddons.utils import default_headers

from .interfaces import FileEntry, ListingNode


def _parse_file_entry(url: str, raw: Any) -> FileEntry:
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
        raise DecodeError(
            "Malformed file entry in listing", url=url, details=repr(raw)[:200]
        )
    size = raw.get("size", 0)
    if size is None:
        size = 0
    if not isinstance(size, int) or isinstance(size, bool):
        raise DecodeError(
            "Malformed file size in listing", url=url, details=repr(size)[:200]
        )
    last_modified = raw.get("last_modified") or ""
    if not isinstance(last_modified, str):
        raise DecodeError(
            "Malformed modification date in listing",
            url=url,
            details=repr(last_modified)[:200],
        )
    return FileEntry(name=raw["name"], last_modified=last_modified, size=size)


def parse_listing(url: str, payload: Any) -> ListingNode:
    """
    Validate a decoded listing document and convert it to a ListingNode.

    Missing `prefixes` or `files` keys are treated as empty lists.

    Parameters:
        url (str): The listing URL, used in error messages.
        payload (Any): The decoded JSON document.

    Returns:
        ListingNode: The parsed directory node.

    Raises:
        DecodeError: If the document does not match the listing schema.
    """
    if not isinstance(payload, dict):
        raise DecodeError(
            "Listing response is not a JSON object",
            url=url,
            details=type(payload).__name__,
        )

    prefixes = payload.get("prefixes") or []
    files = payload.get("files") or []
    if not isinstance(prefixes, list) or not all(isinstance(p, str) for p in prefixes):
        raise DecodeError("Listing prefixes must be a list of strings", url=url)
    if not isinstance(files, list):
        raise DecodeError("Listing files must be a list", url=url)

    entries: List[FileEntry] = [_parse_file_entry(url, raw) for raw in files]
    return ListingNode(prefixes=list(prefixes), files=entries)


class ListingClient:
    """
    Fetches directory nodes from the listing service.

    Each call issues exactly one GET request; results are never cached.
    """

    def __init__(
        self,
        session: requests.Session,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the listing client.

        Parameters:
            session (requests.Session): HTTP session used for all requests.
            timeout (Optional[float]): Request timeout in seconds.
        """
        self.session = session
        self.timeout = timeout or DEFAULT_REQUEST_TIMEOUT

    def fetch(self, url: str) -> ListingNode:
        """
        Fetch and parse one directory node.

        Parameters:
            url (str): Directory URL, normally ending with a slash.

        Returns:
            ListingNode: Prefixes and files of the directory.

        Raises:
            TransportError: On connection or transfer failure.
            ProtocolError: If the response status is not a success.
            DecodeError: If the body is not a valid listing document.
        """
        logger.debug(f"Fetch releases list {url}")
        try:
            response = self.session.get(
                url,
                headers=default_headers("application/json"),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(
                "Could not fetch release list", url=url, details=str(exc)
            ) from exc

        if not 200 <= response.status_code < 300:
            raise ProtocolError(
                "Could not fetch release list",
                url=url,
                status_code=response.status_code,
                details=f"HTTP {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodeError(
                "Release list is not valid JSON", url=url, details=str(exc)
            ) from exc

        return parse_listing(url, payload)
