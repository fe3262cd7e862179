"""Public interface definitions for external services.

The remote corpus-management service is accessed exclusively through
:class:`IIngestionService`.  The concrete HTTP adapter is built in
``transcript_uploader/pipeline/session.py`` (``build_session``) and
injected into the orchestrators; tests inject mocks instead.
"""

from transcript_uploader.interfaces.ingestion_service import (
    IIngestionService,
    UploadProgressCallback,
)

__all__ = ["IIngestionService", "UploadProgressCallback"]
