"""
Custom exceptions for buckle.

Every fallible step of the launch pipeline raises one of these rather than
exiting; only the console entry point decides how to abort.
"""


class BuckleError(Exception):
    """
    Base exception for all buckle errors.

    All custom exceptions in buckle inherit from this class so the entry
    point can catch application errors in one place.
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


class ConfigurationError(BuckleError):
    """
    Exception raised when configuration is invalid or ambiguous.

    This includes:
    - Missing or malformed archive/binary entries
    - Unknown binaries or archives
    - Invalid version or artifact regular expressions
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when a configuration document cannot be read or parsed."""

    pass


class UnsupportedPlatformError(ConfigurationError):
    """Exception raised when no target triple is known for this machine."""

    pass


# =============================================================================
# Release Index / Resolution Errors
# =============================================================================


class IndexUnavailableError(BuckleError):
    """
    Exception raised when neither fresh nor stale release data is available.

    Attributes:
        provider: The ``owner/repo`` whose release list was requested.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.provider = provider


class ArtifactNotFoundError(BuckleError):
    """
    Exception raised when no release or asset matches the configured patterns.

    Attributes:
        provider: The ``owner/repo`` that was searched.
        pattern: The version or artifact pattern that matched nothing.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        pattern: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.provider = provider
        self.pattern = pattern


# =============================================================================
# Fetch / Extraction Errors
# =============================================================================


class DownloadFailedError(BuckleError):
    """
    Exception raised when an asset cannot be downloaded.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
        status_code: The HTTP status code, when the server answered.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class DecodeFailedError(BuckleError):
    """
    Exception raised when a payload is not valid for its declared package type.

    Attributes:
        url: The URL the payload came from.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url


class CacheWriteFailedError(BuckleError):
    """
    Exception raised for file system errors while populating the cache.

    This includes directory creation, writing, permission changes and the
    final rename into place.

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


class CacheCorruptedError(BuckleError):
    """
    Exception raised when a cache entry exists but holds no usable executable.

    Attributes:
        path: The cache directory the user should remove.
        remedy: A shell command that repairs the cache.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path
        self.remedy = f"rm -rf {path}" if path else None
