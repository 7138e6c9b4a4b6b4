# src/systemaddons/utils.py
import importlib.metadata
import threading
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry  # type: ignore

from systemaddons.constants import APP_NAME, PACKAGE_DISTRIBUTION_NAME
from systemaddons.log_utils import logger

# Cache for the User-Agent string to avoid repeated metadata lookups
_USER_AGENT_CACHE: Optional[str] = None
_user_agent_lock = threading.Lock()


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `systemaddons-versions/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    with _user_agent_lock:
        if _USER_AGENT_CACHE is None:
            try:
                app_version = importlib.metadata.version(PACKAGE_DISTRIBUTION_NAME)
            except importlib.metadata.PackageNotFoundError:
                app_version = "unknown"

            _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def get_package_version() -> str:
    """Return the installed package version, or `unknown` when not installed."""
    try:
        return importlib.metadata.version(PACKAGE_DISTRIBUTION_NAME)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def default_headers(accept: Optional[str] = None) -> Dict[str, str]:
    """
    Build the headers sent with every request.

    Parameters:
        accept (Optional[str]): Value for the Accept header, omitted when None.

    Returns:
        Dict[str, str]: Header mapping with the User-Agent and optional Accept.
    """
    headers = {"User-Agent": get_user_agent()}
    if accept:
        headers["Accept"] = accept
    return headers


def create_session(pool_size: int = 10) -> requests.Session:
    """
    Create a requests Session shared by the pipeline's HTTP clients.

    Requests are issued exactly once: the mounted adapter disables urllib3
    retries so connection failures surface immediately as
    `requests.ConnectionError`. The connection pool is sized for the number of
    concurrent inspector workers.

    Parameters:
        pool_size (int): Maximum number of pooled connections per host.

    Returns:
        requests.Session: A configured session.
    """
    session = requests.Session()
    retry_strategy: Retry = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(
        max_retries=retry_strategy,
        pool_connections=pool_size,
        pool_maxsize=pool_size,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(default_headers())
    logger.debug(f"Created HTTP session with pool size {pool_size}")
    return session


def ensure_trailing_slash(url: str) -> str:
    """Return `url` with exactly one trailing slash appended when missing."""
    return url if url.endswith("/") else f"{url}/"
