"""The Entry model: one logical unit of ingestion.

An Entry groups a transcript file with the media recorded alongside it,
the structural metadata (corpus, episode, transcript type) it will be
filed under, and the mutable state of its current upload or deletion.

Unlike the frozen value types in :mod:`transcript_uploader.models.service`,
entries are mutable: the classifier, the existence resolver and the
orchestrators update them in place as files arrive and remote calls
complete.  Mutation always happens on the event-loop thread; the
one-operation-per-entry rule is enforced explicitly through
:meth:`Entry.begin_operation`.
"""

from __future__ import annotations

import asyncio
import mimetypes
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from transcript_uploader.models.service import FormatDescriptor, Parameter
from transcript_uploader.utils.errors import EntryBusyError

DEFAULT_TRACK = ""


class EntryState(str, Enum):  # noqa: UP042
    """Processing states of an entry.

    Upload path:   QUEUED → UPLOADING → PARAMETERS_PENDING →
                   PARAMETERS_SUBMITTED → PROCESSING → DONE
    Deletion path: DELETING → DELETED
    FAILED, CANCELLED and SKIPPED end an attempt early.
    """

    QUEUED = "QUEUED"
    UPLOADING = "UPLOADING"
    PARAMETERS_PENDING = "PARAMETERS_PENDING"
    PARAMETERS_SUBMITTED = "PARAMETERS_SUBMITTED"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    SKIPPED = "SKIPPED"
    DELETING = "DELETING"
    DELETED = "DELETED"


# States in which an entry occupies the single sequential upload slot.
UPLOAD_SLOT_STATES = frozenset(
    {EntryState.UPLOADING, EntryState.PARAMETERS_PENDING, EntryState.PARAMETERS_SUBMITTED}
)


class Operation(str, Enum):  # noqa: UP042
    """Kinds of operation that can be in flight for an entry."""

    UPLOAD = "upload"
    DELETE = "delete"


class FileRef(BaseModel):
    """A local file handed to the uploader."""

    model_config = ConfigDict(frozen=True)

    path: Path
    name: str
    # Declared media type; ``None`` when it cannot be determined.
    media_type: str | None = None
    size: int | None = None

    @classmethod
    def from_path(cls, path: Path | str, media_type: str | None = None) -> FileRef:
        """Describe *path*, guessing its media type from the name when not given."""
        path = Path(path)
        if media_type is None:
            media_type, _ = mimetypes.guess_type(path.name)
        size = path.stat().st_size if path.is_file() else None
        return cls(path=path, name=path.name, media_type=media_type, size=size)

    @property
    def extension(self) -> str:
        """Lower-cased extension including the dot, or ``""``."""
        return Path(self.name).suffix.lower()


def strip_extension(file_name: str) -> str:
    """Remove the last extension from *file_name* (``a.b.eaf`` → ``a.b``)."""
    if not file_name:
        return ""
    stem, dot, _ = file_name.rpartition(".")
    return stem if dot else file_name


class Entry(BaseModel):
    """One transcript plus its media, metadata and processing state."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    transcript_file: FileRef | None = None
    # Remote transcript id; the transcript's file name.
    transcript_id: str | None = None
    format_descriptor: FormatDescriptor | None = None
    corpus: str | None = None
    episode: str | None = None
    transcript_type: str | None = None
    # track suffix -> files, in the order they were added
    media: dict[str, list[FileRef]] = Field(default_factory=dict)
    # None until the existence check has answered.
    exists: bool | None = None
    state: EntryState = EntryState.QUEUED
    status: str = ""
    errors: list[str] = Field(default_factory=list)
    progress: float = 0.0
    upload_id: str | None = None
    parameters: list[Parameter] | None = None
    # document id -> processing task id
    processing_handles: dict[str, str] | None = None

    _operation: Operation | None = PrivateAttr(default=None)
    _poll_task: asyncio.Task | None = PrivateAttr(default=None)

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def add_media(self, file: FileRef, track_suffix: str = DEFAULT_TRACK) -> None:
        self.media.setdefault(track_suffix, []).append(file)

    def assign_track(self, file_name: str, track_suffix: str) -> None:
        """Move the media file called *file_name* to another track.

        Raises
        ------
        KeyError
            If the entry has no media file with that name.
        """
        for suffix, files in self.media.items():
            for file in files:
                if file.name == file_name:
                    if suffix == track_suffix:
                        return
                    files.remove(file)
                    if not files:
                        del self.media[suffix]
                    self.add_media(file, track_suffix)
                    return
        raise KeyError(file_name)

    def media_file_names(self) -> list[str]:
        return [file.name for files in self.media.values() for file in files]

    def media_extensions(self) -> list[str]:
        extensions: list[str] = []
        for files in self.media.values():
            for file in files:
                extension = file.extension.lstrip(".")
                if extension not in extensions:
                    extensions.append(extension)
        return extensions

    # ------------------------------------------------------------------
    # Processing state
    # ------------------------------------------------------------------

    @property
    def has_transcript(self) -> bool:
        return self.transcript_file is not None

    @property
    def active_operation(self) -> Operation | None:
        return self._operation

    @property
    def poll_task(self) -> asyncio.Task | None:
        return self._poll_task

    @poll_task.setter
    def poll_task(self, task: asyncio.Task | None) -> None:
        self._poll_task = task

    @property
    def is_processing(self) -> bool:
        """``True`` while server-side processing is being polled."""
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def is_locked(self) -> bool:
        """``True`` once an upload has begun; metadata and files are then frozen."""
        return self._operation is not None or self.upload_id is not None or self.is_processing

    def begin_operation(self, operation: Operation) -> None:
        """Claim the entry for *operation*.

        Raises
        ------
        EntryBusyError
            If another upload or deletion is already in flight.
        """
        if self._operation is not None:
            raise EntryBusyError(
                f"{self.id}: {self._operation.value} already in progress"
            )
        self._operation = operation

    def end_operation(self) -> None:
        self._operation = None

    def update_progress(self, value: float) -> None:
        """Raise progress to *value* (clamped to 0–100); never lowers it."""
        value = max(0.0, min(100.0, value))
        if value > self.progress:
            self.progress = value

    def record_error(self, message: str) -> None:
        self.errors.append(message)

    def reset_attempt(self) -> None:
        """Clear status, errors and progress before a new attempt.

        Entries whose previous attempt did not complete also lose their
        stale upload id so they are uploaded again.
        """
        if self.state in (EntryState.FAILED, EntryState.CANCELLED, EntryState.SKIPPED) or (
            self.errors and self.state is not EntryState.PROCESSING
        ):
            self.upload_id = None
            self.parameters = None
            self.processing_handles = None
        self.status = ""
        self.errors = []
        self.progress = 0.0
        if self.upload_id is None:
            self.state = EntryState.QUEUED

    def mark_deleted(self) -> None:
        self.exists = False
        self.upload_id = None
        self.parameters = None
        self.processing_handles = None
        self.state = EntryState.DELETED
        self.progress = 100.0
