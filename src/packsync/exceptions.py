"""
Custom exceptions for packsync.

Every failure that aborts a reconciliation run is raised as a subclass of
PacksyncError carrying enough context (path, URL, digests) to diagnose it.
"""


class PacksyncError(Exception):
    """
    Base exception for all packsync errors.

    All custom exceptions in packsync inherit from this class so callers can
    catch every application-specific failure at once.
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


class ConfigurationError(PacksyncError):
    """Exception raised when configuration is invalid or missing."""

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or written."""

    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(PacksyncError):
    """
    Exception raised when a value fails validation.

    Attributes:
        field: The name of the field that failed validation.
        value: The value that failed validation.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value


class DigestFormatError(ValidationError):
    """Exception raised when a digest is not a 64-character SHA-256 hex string."""

    pass


class PathValidationError(ValidationError):
    """Exception raised when a manifest entry name is unsafe to use as a path component."""

    pass


class ManifestError(PacksyncError):
    """
    Exception raised when a manifest document cannot be parsed.

    This includes:
    - Invalid JSON
    - Missing or mistyped fields
    - Duplicate names within one directory
    - Malformed digests or unsafe names
    """

    pass


# =============================================================================
# Fetch Errors
# =============================================================================


class FetchError(PacksyncError):
    """
    Exception raised when a file cannot be fetched.

    Attributes:
        url: The source URL that was being fetched.
        status_code: The HTTP status code, when the server answered.
        retry_count: Number of retries made before giving up.
        is_retryable: Whether the failure was a transient transport failure.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        retry_count: int = 0,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code
        self.retry_count = retry_count
        self.is_retryable = is_retryable


class IntegrityError(FetchError):
    """
    Exception raised when downloaded bytes do not match the manifest digest.

    Attributes:
        path: Destination path the bytes were meant for.
        expected: Digest declared by the manifest.
        actual: Digest of the bytes actually received.
    """

    def __init__(
        self,
        url: str,
        path: str,
        expected: str,
        actual: str,
    ) -> None:
        super().__init__(
            f"Digest mismatch for {url}",
            url=url,
            details=f"expected {expected}, found {actual}",
        )
        self.path = path
        self.expected = expected
        self.actual = actual


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(PacksyncError):
    """
    Exception raised for local file system failures.

    This includes failures to list, create, read, write or delete entries
    inside the managed directory.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


# =============================================================================
# Registry Errors
# =============================================================================


class RegistryError(PacksyncError):
    """Base exception for packs list lookups."""

    pass


class PackNotFoundError(RegistryError):
    """Exception raised when a pack id is not present in the packs list."""

    pass


class FeaturedPackError(RegistryError):
    """Exception raised when the featured pack cannot be resolved."""

    pass


class FeaturedPackUnspecifiedError(FeaturedPackError):
    """The packs list does not name a featured pack."""

    pass


class FeaturedPackInvalidError(FeaturedPackError):
    """The packs list names a featured pack that it does not contain."""

    pass
