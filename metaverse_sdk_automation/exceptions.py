"""Exception classes for the automation client."""


class AutomationError(Exception):
    """Base error for the automation client."""


class ConfigError(AutomationError):
    """Raised when the effective configuration is invalid."""


class ProjectError(AutomationError):
    """Raised when the project, plugin or project version cannot be resolved."""


class ArchiveError(AutomationError):
    """Raised when packing or unpacking a plugin archive fails."""


class UploadError(AutomationError):
    """Base error for a single file transfer."""


class ConstructionError(UploadError):
    """Raised before any network I/O when a transfer cannot be framed.

    Covers malformed envelopes, invalid descriptors or targets and file stat
    failures.
    """


class TransportError(UploadError):
    """Raised when the HTTP connection or request body write fails."""


class ServerError(UploadError):
    """Raised when the server answers with a status code of 400 or above."""

    def __init__(self, status_code: int, body: str, action: str = "upload a file"):
        """Initialize ServerError with the response details.

        Args:
            status_code: HTTP status code returned by the server.
            body: Response body text, kept verbatim for diagnostics.
            action: Short description of the failed operation.
        """
        super().__init__(
            f"failed to {action}, status code: {status_code}, content: {body}"
        )
        self.status_code = status_code
        self.body = body


class ProducerError(UploadError):
    """Raised when the body producer fails while streaming file bytes."""


class ApiResponseError(AutomationError):
    """Raised when an API response body cannot be decoded."""
