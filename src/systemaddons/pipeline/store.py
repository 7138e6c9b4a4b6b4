"""
Remote record store (Kinto) access.

The store keeps one record per release, keyed by a digest of the release URL.
`KintoStore` wraps the HTTP API; `Publisher` adds per-run deduplication on top
of the store's conditional create.
"""

import enum
import hashlib
from typing import Any, Dict, List, Optional, Set

import requests

from systemaddons.constants import (
    DEFAULT_KINTO_BUCKET,
    DEFAULT_KINTO_COLLECTION,
    DEFAULT_REQUEST_TIMEOUT,
    HTTP_CREATED,
    HTTP_PRECONDITION_FAILED,
    KINTO_NEXT_PAGE_HEADER,
)
from systemaddons.exceptions import (
    DecodeError,
    ProtocolError,
    PublishError,
    TransportError,
)
from systemaddons.log_utils import logger
from systemaddons.utils import default_headers

from .interfaces import ReleaseInfo


def record_id_for_url(url: str) -> str:
    """
    Compute the store record identifier for a release URL.

    The MD5 hex digest keeps identifiers stable across runs and equal to
    those of records already in the store.
    """
    return hashlib.md5(url.encode("utf-8")).hexdigest()


def _records_from_body(url: str, response: requests.Response) -> List[Dict[str, Any]]:
    try:
        body = response.json()
    except ValueError as exc:
        raise DecodeError(
            "Store response is not valid JSON", url=url, details=str(exc)
        ) from exc
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise DecodeError("Store response has no data list", url=url)
    return [record for record in body["data"] if isinstance(record, dict)]


class KintoStore:
    """
    Client for the Kinto collection holding release records.
    """

    def __init__(
        self,
        server_url: str,
        session: requests.Session,
        auth_header: Optional[str] = None,
        bucket: str = DEFAULT_KINTO_BUCKET,
        collection: str = DEFAULT_KINTO_COLLECTION,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the store client.

        Parameters:
            server_url (str): Kinto server root (e.g., 'https://host/v1').
            session (requests.Session): HTTP session used for all requests.
            auth_header (Optional[str]): Authorization header value for writes.
            bucket (str): Bucket name.
            collection (str): Collection name.
            timeout (Optional[float]): Request timeout in seconds.
        """
        self.server_url = server_url.rstrip("/")
        self.session = session
        self.auth_header = auth_header
        self.bucket = bucket
        self.collection = collection
        self.timeout = timeout or DEFAULT_REQUEST_TIMEOUT

    @property
    def records_url(self) -> str:
        return (
            f"{self.server_url}/buckets/{self.bucket}"
            f"/collections/{self.collection}/records"
        )

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            response = self.session.get(
                url,
                params=params,
                headers=default_headers("application/json"),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(
                "Could not read remote data", url=url, details=str(exc)
            ) from exc
        if not 200 <= response.status_code < 300:
            raise ProtocolError(
                "Could not read remote data",
                url=url,
                status_code=response.status_code,
                details=f"HTTP {response.status_code}",
            )
        return response

    def latest_version(self, channel: Optional[str] = None) -> str:
        """
        Return the highest release version already published.

        Records are sorted by `release.version` descending (a string sort on
        the server), optionally restricted to one channel.

        Parameters:
            channel (Optional[str]): Only consider records of this channel.

        Returns:
            str: The version, or an empty string when no record exists.

        Raises:
            TransportError: On connection or transfer failure.
            ProtocolError: If the response status is not a success.
            DecodeError: If the body is not a record list.
        """
        params: Dict[str, Any] = {"_sort": "-release.version", "_limit": 1}
        if channel:
            params["release.channel"] = channel
        url = self.records_url
        response = self._get(url, params=params)
        records = _records_from_body(url, response)
        if not records:
            logger.debug("No published release found in store")
            return ""
        release = records[0].get("release")
        if not isinstance(release, dict) or not isinstance(release.get("version"), str):
            raise DecodeError("Latest record has no release version", url=url)
        return release["version"]

    def list_records(self, channel: Optional[str] = None) -> List[ReleaseInfo]:
        """
        Return every stored record sorted by release version.

        Follows the store's pagination links until the last page.
        """
        params: Optional[Dict[str, Any]] = {"_sort": "release.version"}
        if channel:
            params["release.channel"] = channel
        url: Optional[str] = self.records_url
        infos: List[ReleaseInfo] = []
        while url:
            response = self._get(url, params=params)
            infos.extend(ReleaseInfo.from_dict(r) for r in _records_from_body(url, response))
            url = response.headers.get(KINTO_NEXT_PAGE_HEADER)
            # Next-Page links already carry the query string
            params = None
        return infos

    def create_record(self, info: ReleaseInfo) -> bool:
        """
        Create the record for a release unless it already exists.

        Issues a PUT guarded by `If-None-Match: *`.

        Returns:
            bool: `True` if the record was created, `False` if it already existed.

        Raises:
            TransportError: On connection or transfer failure.
            PublishError: If the store answers with any other status.
        """
        record_id = record_id_for_url(info.release.url)
        url = f"{self.records_url}/{record_id}"
        headers = default_headers("application/json")
        headers["Content-Type"] = "application/json"
        headers["If-None-Match"] = "*"
        if self.auth_header:
            headers["Authorization"] = self.auth_header

        logger.debug(f"Publish release info to {url}")
        try:
            response = self.session.put(
                url,
                json={"data": info.to_dict()},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(
                "Could not publish release info", url=url, details=str(exc)
            ) from exc

        if response.status_code == HTTP_CREATED:
            return True
        if response.status_code == HTTP_PRECONDITION_FAILED:
            return False
        raise PublishError(
            "Could not publish release info",
            url=url,
            status_code=response.status_code,
            details=f"HTTP {response.status_code}",
        )


class PublishOutcome(enum.Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    DUPLICATE = "duplicate"


class Publisher:
    """
    Publishes release records, at most one write per record id and run.

    Not thread-safe; the orchestrator calls it from a single thread.
    """

    def __init__(self, store: KintoStore):
        self.store = store
        self._seen: Set[str] = set()

    def publish(self, info: ReleaseInfo) -> PublishOutcome:
        """
        Publish a release record idempotently.

        A record id already handled during this run is skipped without a
        network call; otherwise a conditional create is issued, where both
        "created" and "already exists" count as success.

        Raises:
            TransportError: On connection or transfer failure.
            PublishError: If the store rejects the record.
        """
        record_id = record_id_for_url(info.release.url)
        if record_id in self._seen:
            logger.debug(f"Skipping duplicate record {record_id}")
            return PublishOutcome.DUPLICATE
        self._seen.add(record_id)

        try:
            created = self.store.create_record(info)
        except Exception:
            self._seen.discard(record_id)
            raise

        release = info.release
        label = f"{release.version} {release.target} {release.locale} ({release.channel})"
        if created:
            logger.info(f"Published release info for {label}")
            return PublishOutcome.CREATED
        logger.info(f"Release info already published for {label}")
        return PublishOutcome.ALREADY_EXISTS
