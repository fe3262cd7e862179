"""Custom exception hierarchy for transcript-uploader.

All application exceptions inherit from :class:`UploaderError`, which
carries an optional ``service_name`` so error handlers can identify which
remote endpoint (e.g. "upload", "task", "store") caused the failure.

The hierarchy follows the stages of an upload run:

    UploaderError  (base -- catch-all for any uploader error)
    +-- ServiceUnavailableError  (remote service down / unreachable)
    +-- UploadError              (raw transcript + media upload)
    +-- ParameterError           (parameter negotiation)
    +-- ProcessingError          (server-side processing task)
    +-- DeleteError              (transcript deletion)
    +-- OrchestrationError       (run preconditions / entry guards)
    |   +-- NothingToDoError
    |   +-- EntryBusyError
    +-- ConfigurationError       (startup / missing config)

Per-entry errors (upload, parameter, processing, delete) are caught by the
orchestrators and recorded on the entry; only orchestration and
configuration errors reach the caller of a run.
"""


class UploaderError(Exception):
    """Base exception for all transcript-uploader errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``service_name``.  ``__str__`` prefixes the service name in brackets,
    e.g. ``[upload] Request timed out``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        service_name: str | None = None,
    ) -> None:
        self._message = message
        self._service_name = service_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def service_name(self) -> str | None:
        return self._service_name

    def __str__(self) -> str:
        if self._service_name:
            return f"[{self._service_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Remote service errors
# ---------------------------------------------------------------------------

class ServiceUnavailableError(UploaderError):
    """Raised when the ingestion service is unreachable or answers garbage."""

    def __init__(
        self,
        message: str = "Ingestion service is unavailable",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


class UploadError(UploaderError):
    """Raised when the raw transcript/media upload is rejected."""

    def __init__(
        self,
        message: str = "Transcript upload failed",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


class ParameterError(UploaderError):
    """Raised when submitting upload parameters fails."""

    def __init__(
        self,
        message: str = "Parameter submission failed",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


class ProcessingError(UploaderError):
    """Raised when a server-side processing task cannot be queried or fails."""

    def __init__(
        self,
        message: str = "Server-side processing failed",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


class DeleteError(UploaderError):
    """Raised when deleting a transcript from the service fails."""

    def __init__(
        self,
        message: str = "Transcript deletion failed",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class OrchestrationError(UploaderError):
    """Raised when a run cannot start or an entry is in the wrong state."""

    def __init__(
        self,
        message: str = "Run orchestration failed",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


class NothingToDoError(OrchestrationError):
    """Raised when a run is requested but no entry qualifies for it."""

    def __init__(
        self,
        message: str = "There is nothing to do",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


class EntryBusyError(OrchestrationError):
    """Raised when an entry already has an upload or deletion in flight."""

    def __init__(
        self,
        message: str = "Entry already has an operation in flight",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)


class ConfigurationError(UploaderError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        service_name: str | None = None,
    ) -> None:
        super().__init__(message=message, service_name=service_name)
