"""Utility modules for transcript-uploader.

- **errors** -- Domain-specific exception hierarchy rooted at UploaderError;
  each run stage raises its own subclass so orchestrators can record
  per-entry failures without broad ``except Exception`` blocks.
- **concurrency** -- semaphore-bounded ``gather`` for look-ups that may overlap.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from transcript_uploader.utils.concurrency import throttled_gather
from transcript_uploader.utils.errors import (
    ConfigurationError,
    DeleteError,
    EntryBusyError,
    NothingToDoError,
    OrchestrationError,
    ParameterError,
    ProcessingError,
    ServiceUnavailableError,
    UploadError,
    UploaderError,
)
from transcript_uploader.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "DeleteError",
    "EntryBusyError",
    "NothingToDoError",
    "OrchestrationError",
    "ParameterError",
    "ProcessingError",
    "ServiceUnavailableError",
    "UploadError",
    "UploaderError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
