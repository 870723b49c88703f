"""Exceptions raised by the storage client."""


class StorageError(Exception):
    """Base class for all storage client errors."""


class RequestFailed(StorageError):
    """The server answered a request with a non-success status.

    Attributes:
        status: HTTP status code of the response.
        body: Raw response body text, kept for diagnosis.
    """

    def __init__(self, message: str, status: int, body: str = "") -> None:
        """Initialize the error.

        Args:
            message: Human readable summary.
            status: HTTP status code of the failing response.
            body: Raw response body text.
        """
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        return f"{self.args[0]} (HTTP {self.status})"


class UploadFailed(RequestFailed):
    """A simple upload or a chunk upload was rejected by the server."""

    def __init__(
        self, message: str, status: int, body: str = "", offset: int = 0
    ) -> None:
        """Initialize the error.

        Args:
            message: Human readable summary.
            status: HTTP status code of the failing response.
            body: Raw response body text.
            offset: Bytes acknowledged by the server before the failure.
        """
        super().__init__(message, status, body)
        self.offset = offset


class SessionStartFailed(RequestFailed):
    """The resumable session could not be negotiated.

    Raised for a non-success response, and for a success response that does
    not carry a usable upload URL or chunk granularity.
    """


class AlreadyStarted(StorageError):
    """start() was called on a task that is no longer pending."""


class InvalidReference(StorageError, ValueError):
    """A locator could not be parsed, or the operation needs a non-root path."""
