"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class AsuCliError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(AsuCliError):
    """Raised for issues related to configuration loading or validation."""


class BuildRequestError(AsuCliError):
    """Raised when a build submission or status poll fails in transport or decoding."""

    def __init__(self, message: str):
        super().__init__(f"asu request: {message}")


class BuildFailedError(AsuCliError):
    """Raised when the build service reports a terminal failure status."""

    def __init__(self, detail: str, status: int):
        self.detail = detail
        self.status = status
        super().__init__(f"build failed: {detail} (status {status})")


class DownloadError(AsuCliError):
    """Raised when an image download fails in transport or on disk."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(f"download {name}: {message}")


class ChecksumMismatchError(DownloadError):
    """Raised when a downloaded file does not match its expected SHA-256 digest."""

    def __init__(self, name: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(name, f"expected sha256:{expected}, got sha256:{actual}")


class OutputExistsError(AsuCliError):
    """Raised instead of overwriting an image or metadata file that already exists."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"output file already exists: {path}")


class TaskCancelledError(AsuCliError):
    """
    Raised when a task observes the cancellation signal.

    Kept apart from the other errors so the orchestrator does not count it
    as a new failure cause.
    """

    def __init__(self, message: str = "canceled"):
        super().__init__(message)


class MetadataWriteError(AsuCliError):
    """Raised when the build metadata file cannot be written."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"save result {path}: {message}")
