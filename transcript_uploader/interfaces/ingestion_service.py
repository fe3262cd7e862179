"""Abstract base class for the remote corpus ingestion service.

Defines the contract the orchestrators use to move transcripts and media
into the corpus-management service, negotiate ingestion parameters, follow
server-side processing tasks and remove transcripts again.  The adapter
pattern keeps every call-site transport-agnostic: the HTTP adapter lives
in ``transcript_uploader/providers/ingestion/`` and tests inject mocks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from transcript_uploader.models.entry import FileRef
from transcript_uploader.models.service import (
    FormatDescriptor,
    MediaTrack,
    Parameter,
    ParameterResult,
    RemoteTranscript,
    TaskStatus,
    UploadResult,
)

# Upload progress callback: (bytes_sent, bytes_total)
UploadProgressCallback = Callable[[int, int], None]


# Concrete implementation: HttpIngestionProvider
# Located in: transcript_uploader/providers/ingestion/
class IIngestionService(ABC):
    """Contract for the corpus ingestion service.

    Every operation is async.  Failures are reported by raising the
    matching :mod:`transcript_uploader.utils.errors` subclass; transport
    failures raise ``ServiceUnavailableError``.
    """

    # ------------------------------------------------------------------
    # Vocabulary
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_valid_corpora(self) -> list[str]:
        """Return the corpus names transcripts may be filed under, default first."""

    @abstractmethod
    async def list_valid_transcript_types(self) -> list[str]:
        """Return the valid transcript types, default first."""

    @abstractmethod
    async def list_tracks(self) -> list[MediaTrack]:
        """Return the media tracks defined on the service."""

    @abstractmethod
    async def list_deserializers(self) -> list[FormatDescriptor]:
        """Return descriptors of every transcript format the service can parse."""

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    @abstractmethod
    async def check_transcript_exists(self, transcript_id: str) -> RemoteTranscript | None:
        """Look up a transcript by id.

        Returns
        -------
        RemoteTranscript or None
            The transcript's corpus, episode and type, or ``None`` when the
            service has no transcript with that id.
        """

    @abstractmethod
    async def upload_transcript(
        self,
        transcript: FileRef,
        media: dict[str, list[FileRef]],
        is_update: bool,
        on_progress: UploadProgressCallback | None = None,
    ) -> UploadResult:
        """Upload a transcript and its media, starting an ingestion.

        Parameters
        ----------
        transcript:
            The transcript file.
        media:
            Media files keyed by track suffix.
        is_update:
            ``True`` when the transcript already exists and is being updated.
        on_progress:
            Called with ``(sent, total)`` byte counts as the body is sent.

        Raises
        ------
        UploadError
            If the service rejects the upload.
        """

    @abstractmethod
    async def submit_parameters(
        self, upload_id: str, parameters: list[Parameter]
    ) -> ParameterResult:
        """Submit parameter values for an upload, finishing the ingestion.

        Raises
        ------
        ParameterError
            If the service rejects the parameters.
        """

    @abstractmethod
    async def cancel_upload(self, upload_id: str) -> None:
        """Release an upload whose parameters will never be submitted."""

    @abstractmethod
    async def poll_status(self, task_id: str) -> TaskStatus | None:
        """Return the status of a processing task, or ``None`` if it is gone."""

    @abstractmethod
    async def cancel_task(self, task_id: str) -> TaskStatus | None:
        """Ask the service to cancel a processing task."""

    @abstractmethod
    async def delete_transcript(self, transcript_id: str) -> list[str]:
        """Delete a transcript, returning the service's messages.

        Raises
        ------
        DeleteError
            If the service refuses or fails to delete the transcript.
        """

    async def close(self) -> None:
        """Release any underlying connections.  Default: no-op."""
