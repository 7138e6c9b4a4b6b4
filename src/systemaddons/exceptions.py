"""
Custom exceptions for systemaddons-versions.

This module defines domain-specific exceptions that categorize failures of the
discovery, inspection and publication pipeline. None of them are retried:
every error is fatal to the task that raised it.
"""


class SystemAddonsError(Exception):
    """
    Base exception for all systemaddons-versions errors.

    All custom exceptions inherit from this class to allow for easy catching
    of all application-specific errors.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(SystemAddonsError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Configuration file parsing errors
    - Invalid selection patterns
    - Invalid numeric or policy values
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when configuration file cannot be read or parsed."""

    pass


class ConfigValidationError(ConfigurationError):
    """
    Exception raised when configuration validation fails.

    Attributes:
        key: The configuration key holding the invalid value.
    """

    def __init__(
        self, message: str, key: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.key = key


# =============================================================================
# Remote Service Errors
# =============================================================================


class RemoteServiceError(SystemAddonsError):
    """
    Base exception for failures talking to a remote service.

    Attributes:
        url: The URL that was being requested when the error occurred.
        status_code: The HTTP status code returned, if a response was received.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        """
        Initialize the remote service exception.

        Args:
            message: The primary error message.
            url: The URL that was being requested.
            status_code: The HTTP status code, when a response was received.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class TransportError(RemoteServiceError):
    """
    Exception raised for network-level failures.

    This includes connection failures, DNS errors, timeouts and transfers
    interrupted before the full body was received.
    """

    pass


class ProtocolError(RemoteServiceError):
    """Exception raised when a service answers with an unexpected HTTP status."""

    pass


class DecodeError(RemoteServiceError):
    """Exception raised when a response body does not have the expected shape."""

    pass


class CatalogUnavailableError(ProtocolError):
    """Exception raised when the update catalog answers with a non-success status."""

    pass


class PublishError(ProtocolError):
    """Exception raised when the store rejects a record for a reason other than already-exists."""

    pass


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(SystemAddonsError):
    """
    Exception raised for local file system failures.

    Attributes:
        path: The file path that caused the error.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


class PathValidationError(FileSystemError):
    """Exception raised when a path component fails security validation."""

    pass


# =============================================================================
# Archive Errors
# =============================================================================


class ArchiveError(SystemAddonsError):
    """
    Exception raised for archive-related errors.

    Attributes:
        archive_path: Path to the problematic archive or extracted file.
    """

    def __init__(
        self,
        message: str,
        archive_path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.archive_path = archive_path


class CorruptedArchiveError(ArchiveError):
    """Exception raised when an archive or a document inside it is malformed."""

    pass


class ExtractionError(ArchiveError):
    """Exception raised when release archive extraction fails."""

    pass


class MetadataMissingError(ArchiveError):
    """Exception raised when build metadata cannot be found in a release."""

    pass


class ManifestMissingError(ArchiveError):
    """Exception raised when an addon package carries no usable install manifest."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class CancellationError(SystemAddonsError):
    """
    Exception raised by a task that stopped because the pipeline was cancelled.

    The error that caused the cancellation is reported separately.
    """

    pass
