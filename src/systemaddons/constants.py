"""
Constants and configuration defaults for systemaddons-versions.

This module contains the default URLs, selection patterns, timeouts, and other
constants used throughout the application.
"""

# Application identity
APP_NAME = "systemaddons-versions"
PACKAGE_DISTRIBUTION_NAME = "systemaddons-versions"

# Remote services
DEFAULT_DELIVERY_URL = "https://archive.mozilla.org/pub/firefox/"
DEFAULT_AUS_URL = (
    "https://aus5.mozilla.org/update/3/SystemAddons/{VERSION}/{BUILD_ID}/"
    "{BUILD_TARGET}/{LOCALE}/{CHANNEL}/{OS_VERSION}/{DISTRIBUTION}/"
    "{DISTRIBUTION_VERSION}/update.xml"
)
DEFAULT_KINTO_URL = "https://kinto-ota.dev.mozaws.net/v1"
DEFAULT_KINTO_AUTH = "Basic dXNlcjpwYXNz"  # user:pass
DEFAULT_KINTO_BUCKET = "systemaddons"
DEFAULT_KINTO_COLLECTION = "versions"
# Only records of this channel set the low-water-mark; nightly versions
# such as "57.0a1" sort above unpublished dated releases.
DEFAULT_LATEST_CHANNEL = "beta"

# Release tree layout
NIGHTLY_DIR_TEMPLATE = "nightly/latest-mozilla-{channel}/"
RELEASES_DIR = "releases/"
DEFAULT_NIGHTLY_CHANNELS = ("central", "aurora")
DEFAULT_PRODUCT = "firefox"

# Selection policy defaults (regular expressions, matched with re.search)
DEFAULT_VERSION_PATTERN = r"^[5-9][0-9]"
DEFAULT_TARGET_PATTERN = r"linux-.+"
DEFAULT_LOCALE_PATTERN = r"en-US"
DEFAULT_FILE_PATTERN = r"\.tar\.(gz|bz2)$"

# Archive inspection
DEFAULT_EXTRACT_PATTERN = r"(application\.ini|browser/features/.+\.xpi)$"
ADDON_ARCHIVE_EXTENSION = ".xpi"
ADDON_MANIFEST_NAME = "install.rdf"
SCRATCH_DIR_PREFIX = "systemaddons-versions-"
PARTIAL_DOWNLOAD_SUFFIX = ".part"
DEFAULT_DOWNLOAD_DIR_NAME = "archives"

# Placeholder values for update catalog URLs
UNKNOWN_VALUE = "unknown"
CATALOG_DEFAULT_VALUE = "default"
NIGHTLY_REPOSITORY_NAME = "central"
NIGHTLY_CHANNEL_NAME = "nightly"

# Pipeline settings
DEFAULT_WORKER_COUNT = 10
CHANNEL_CAPACITY = 1
CHANNEL_POLL_INTERVAL = 0.05  # seconds
WALK_POLICY_ABORT = "abort"
WALK_POLICY_SKIP = "skip"
DEFAULT_WALK_ERROR_POLICY = WALK_POLICY_ABORT

# Network settings (in seconds / bytes)
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_CHUNK_SIZE = 8192

# HTTP status codes the store treats as success for conditional creates
HTTP_CREATED = 201
HTTP_PRECONDITION_FAILED = 412

# Kinto pagination header
KINTO_NEXT_PAGE_HEADER = "Next-Page"

# Configuration file names
CONFIG_FILE_NAME = "systemaddons-versions.yaml"

# Environment variables that override configuration file values
ENV_OVERRIDE_KEYS = ("DELIVERY_URL", "AUS_URL", "KINTO_URL", "KINTO_AUTH")

# Logging configuration
LOGGER_NAME = "systemaddons"
LOG_FILE_NAME = "systemaddons-versions.log"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "SYSTEMADDONS_LOG_LEVEL"
