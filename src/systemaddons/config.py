# src/systemaddons/config.py
"""
Configuration loading and validation.

Configuration is read from a YAML file (by default in the platformdirs user
config directory), overlaid with environment variables, and converted into an
immutable `PipelineSettings` value that is handed to the pipeline components.
"""

import enum
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Pattern, Tuple

import platformdirs
import yaml

from systemaddons.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_AUS_URL,
    DEFAULT_DELIVERY_URL,
    DEFAULT_DOWNLOAD_DIR_NAME,
    DEFAULT_EXTRACT_PATTERN,
    DEFAULT_FILE_PATTERN,
    DEFAULT_KINTO_AUTH,
    DEFAULT_KINTO_BUCKET,
    DEFAULT_KINTO_COLLECTION,
    DEFAULT_KINTO_URL,
    DEFAULT_LATEST_CHANNEL,
    DEFAULT_LOCALE_PATTERN,
    DEFAULT_NIGHTLY_CHANNELS,
    DEFAULT_PRODUCT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TARGET_PATTERN,
    DEFAULT_VERSION_PATTERN,
    DEFAULT_WALK_ERROR_POLICY,
    DEFAULT_WORKER_COUNT,
    ENV_OVERRIDE_KEYS,
    WALK_POLICY_ABORT,
    WALK_POLICY_SKIP,
)
from systemaddons.exceptions import ConfigFileError, ConfigValidationError
from systemaddons.log_utils import logger

CONFIG_DIR = platformdirs.user_config_dir(APP_NAME)
CONFIG_FILE = os.path.join(CONFIG_DIR, CONFIG_FILE_NAME)


class WalkErrorPolicy(enum.Enum):
    """How discovery reacts to a listing failure below the release root."""

    ABORT = WALK_POLICY_ABORT
    SKIP = WALK_POLICY_SKIP


def _compile(key: str, pattern: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigValidationError(
            f"Invalid regular expression for {key}", key=key, details=str(exc)
        ) from exc


@dataclass(frozen=True)
class SelectionPolicy:
    """
    Regular expressions selecting which releases are discovered.

    Each predicate uses `re.search`, so patterns match anywhere unless they
    are anchored.
    """

    version_pattern: str = DEFAULT_VERSION_PATTERN
    target_pattern: str = DEFAULT_TARGET_PATTERN
    locale_pattern: str = DEFAULT_LOCALE_PATTERN
    file_pattern: str = DEFAULT_FILE_PATTERN
    product: str = DEFAULT_PRODUCT
    _compiled: Tuple[Pattern[str], ...] = field(
        init=False, repr=False, compare=False, default=()
    )

    def __post_init__(self) -> None:
        compiled = (
            _compile("VERSION_PATTERN", self.version_pattern),
            _compile("TARGET_PATTERN", self.target_pattern),
            _compile("LOCALE_PATTERN", self.locale_pattern),
            _compile("FILE_PATTERN", self.file_pattern),
        )
        object.__setattr__(self, "_compiled", compiled)
        # Fails early when the combined nightly pattern does not compile
        self.nightly_filename_pattern()

    def accepts_version(self, version: str) -> bool:
        return self._compiled[0].search(version) is not None

    def accepts_target(self, target: str) -> bool:
        return self._compiled[1].search(target) is not None

    def accepts_locale(self, locale: str) -> bool:
        return self._compiled[2].search(locale) is not None

    def accepts_filename(self, filename: str) -> bool:
        return self._compiled[3].search(filename) is not None

    def nightly_filename_pattern(self) -> Pattern[str]:
        """
        Pattern for nightly archive names such as
        `firefox-55.0a1.en-US.linux-x86_64.tar.bz2`.

        Captures the `version`, `locale` and `target` named groups.
        """
        pattern = (
            f"{re.escape(self.product)}-(?P<version>.+)"
            f"\\.(?P<locale>{self.locale_pattern})"
            f"\\.(?P<target>{self.target_pattern}){self.file_pattern}"
        )
        return _compile("NIGHTLY_PATTERN", pattern)


@dataclass(frozen=True)
class PipelineSettings:
    """Everything the pipeline needs, resolved and validated."""

    delivery_url: str = DEFAULT_DELIVERY_URL
    aus_url: str = DEFAULT_AUS_URL
    kinto_url: str = DEFAULT_KINTO_URL
    kinto_auth: Optional[str] = DEFAULT_KINTO_AUTH
    kinto_bucket: str = DEFAULT_KINTO_BUCKET
    kinto_collection: str = DEFAULT_KINTO_COLLECTION
    latest_channel: Optional[str] = DEFAULT_LATEST_CHANNEL
    selection: SelectionPolicy = field(default_factory=SelectionPolicy)
    nightly_channels: Tuple[str, ...] = DEFAULT_NIGHTLY_CHANNELS
    extract_pattern: str = DEFAULT_EXTRACT_PATTERN
    worker_count: int = DEFAULT_WORKER_COUNT
    download_dir: Path = field(
        default_factory=lambda: Path(
            platformdirs.user_cache_dir(APP_NAME), DEFAULT_DOWNLOAD_DIR_NAME
        )
    )
    walk_error_policy: WalkErrorPolicy = WalkErrorPolicy(DEFAULT_WALK_ERROR_POLICY)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]] = None) -> "PipelineSettings":
        """
        Build settings from a configuration mapping.

        Keys are the uppercase names used in the YAML file; missing keys take
        their defaults.

        Raises:
            ConfigValidationError: If a value has the wrong type or range.
        """
        config = dict(config or {})

        def _str(key: str, default: str) -> str:
            value = config.get(key)
            if value is None or value == "":
                return default
            if not isinstance(value, str):
                raise ConfigValidationError(f"{key} must be a string", key=key)
            return value

        def _optional_str(key: str, default: Optional[str]) -> Optional[str]:
            if key not in config:
                return default
            value = config[key]
            if value is None or value == "":
                return None
            if not isinstance(value, str):
                raise ConfigValidationError(f"{key} must be a string", key=key)
            return value

        worker_count = config.get("WORKER_COUNT", DEFAULT_WORKER_COUNT)
        if isinstance(worker_count, bool) or not isinstance(worker_count, int) or worker_count < 1:
            raise ConfigValidationError(
                "WORKER_COUNT must be a positive integer",
                key="WORKER_COUNT",
                details=repr(worker_count),
            )

        timeout = config.get("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigValidationError(
                "REQUEST_TIMEOUT must be a positive number",
                key="REQUEST_TIMEOUT",
                details=repr(timeout),
            )

        channels = config.get("NIGHTLY_CHANNELS", list(DEFAULT_NIGHTLY_CHANNELS))
        if channels is None:
            channels = []
        if isinstance(channels, str):
            channels = [channels]
        if not isinstance(channels, (list, tuple)) or not all(
            isinstance(c, str) and c for c in channels
        ):
            raise ConfigValidationError(
                "NIGHTLY_CHANNELS must be a list of channel names",
                key="NIGHTLY_CHANNELS",
            )

        policy_name = _str("WALK_ERROR_POLICY", DEFAULT_WALK_ERROR_POLICY).lower()
        try:
            walk_error_policy = WalkErrorPolicy(policy_name)
        except ValueError as exc:
            raise ConfigValidationError(
                "WALK_ERROR_POLICY must be 'abort' or 'skip'",
                key="WALK_ERROR_POLICY",
                details=policy_name,
            ) from exc

        extract_pattern = _str("EXTRACT_PATTERN", DEFAULT_EXTRACT_PATTERN)
        _compile("EXTRACT_PATTERN", extract_pattern)

        selection = SelectionPolicy(
            version_pattern=_str("VERSION_PATTERN", DEFAULT_VERSION_PATTERN),
            target_pattern=_str("TARGET_PATTERN", DEFAULT_TARGET_PATTERN),
            locale_pattern=_str("LOCALE_PATTERN", DEFAULT_LOCALE_PATTERN),
            file_pattern=_str("FILE_PATTERN", DEFAULT_FILE_PATTERN),
            product=_str("PRODUCT", DEFAULT_PRODUCT),
        )

        kwargs: Dict[str, Any] = {}
        download_dir = config.get("DOWNLOAD_DIR")
        if download_dir:
            kwargs["download_dir"] = Path(os.path.expanduser(str(download_dir)))

        return cls(
            delivery_url=_str("DELIVERY_URL", DEFAULT_DELIVERY_URL),
            aus_url=_str("AUS_URL", DEFAULT_AUS_URL),
            kinto_url=_str("KINTO_URL", DEFAULT_KINTO_URL),
            kinto_auth=_optional_str("KINTO_AUTH", DEFAULT_KINTO_AUTH),
            kinto_bucket=_str("KINTO_BUCKET", DEFAULT_KINTO_BUCKET),
            kinto_collection=_str("KINTO_COLLECTION", DEFAULT_KINTO_COLLECTION),
            latest_channel=_optional_str("LATEST_CHANNEL", DEFAULT_LATEST_CHANNEL),
            selection=selection,
            nightly_channels=tuple(channels),
            extract_pattern=extract_pattern,
            worker_count=worker_count,
            walk_error_policy=walk_error_policy,
            request_timeout=float(timeout),
            **kwargs,
        )


def apply_env_overrides(
    config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Overlay service URLs and credentials from the environment.

    Returns:
        Dict[str, Any]: A new mapping; the input is left untouched.
    """
    environ = os.environ if environ is None else environ
    merged = dict(config)
    for key in ENV_OVERRIDE_KEYS:
        value = environ.get(key)
        if value is not None:
            logger.debug(f"Using {key} from environment")
            merged[key] = value
    return merged


def load_config(
    path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Load the YAML configuration and apply environment overrides.

    If `path` is None the platformdirs-managed CONFIG_FILE is used; a missing
    default file simply yields the defaults, while a missing explicit file is
    an error.

    Raises:
        ConfigFileError: If the file cannot be read, is not valid YAML, or
            does not contain a mapping.
    """
    config_path = path or CONFIG_FILE
    config: Dict[str, Any] = {}

    if os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigFileError(
                f"Could not read configuration file {config_path}", details=str(exc)
            ) from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigFileError(
                f"Configuration file {config_path} must contain a mapping"
            )
        config = loaded
        logger.debug(f"Loaded configuration from {config_path}")
    elif path:
        raise ConfigFileError(f"Configuration file not found: {config_path}")
    else:
        logger.debug(f"No configuration file at {config_path}; using defaults")

    return apply_env_overrides(config, environ)
