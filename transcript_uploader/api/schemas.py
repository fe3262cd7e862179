"""Pydantic request/response schemas for the uploader's local HTTP API.

Request schemas end with ``Request``, response schemas with ``Response``.
FastAPI validates request bodies against them and serialises responses
through them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from transcript_uploader.models.entry import Entry, EntryState
from transcript_uploader.models.service import Parameter


class EntryResponse(BaseModel):
    """One entry as shown to API clients."""

    id: str
    transcript: str | None = None
    format: str | None = None
    # track suffix -> media file names
    media: dict[str, list[str]] = Field(default_factory=dict)
    corpus: str | None = None
    episode: str | None = None
    transcript_type: str | None = None
    exists: bool | None = None
    state: EntryState
    status: str = ""
    errors: list[str] = Field(default_factory=list)
    progress: float = 0.0
    upload_id: str | None = None
    parameters: list[Parameter] | None = None
    awaiting_review: bool = False
    processing: bool = False

    @classmethod
    def from_entry(cls, entry: Entry, awaiting_review: bool = False) -> EntryResponse:
        return cls(
            id=entry.id,
            transcript=entry.transcript_file.name if entry.transcript_file else None,
            format=entry.format_descriptor.name if entry.format_descriptor else None,
            media={
                suffix: [file.name for file in files] for suffix, files in entry.media.items()
            },
            corpus=entry.corpus,
            episode=entry.episode,
            transcript_type=entry.transcript_type,
            exists=entry.exists,
            state=entry.state,
            status=entry.status,
            errors=list(entry.errors),
            progress=round(entry.progress, 1),
            upload_id=entry.upload_id,
            parameters=entry.parameters,
            awaiting_review=awaiting_review,
            processing=entry.is_processing,
        )


class EntryListResponse(BaseModel):
    entries: list[EntryResponse]
    running: bool = False


class AddPathsRequest(BaseModel):
    """Local files or directories to add to the session."""

    paths: list[str] = Field(..., min_length=1)


class UpdateEntryRequest(BaseModel):
    """User edits to an entry; omitted fields are left unchanged."""

    corpus: str | None = None
    episode: str | None = Field(default=None, min_length=1)
    transcript_type: str | None = None
    # media file name -> track suffix
    tracks: dict[str, str] | None = None


class ClearEntriesRequest(BaseModel):
    existing: bool = True
    new: bool = True


class ClearEntriesResponse(BaseModel):
    removed: int
    remaining: int


class ParametersRequest(BaseModel):
    """Parameter values confirmed by the user, keyed by parameter name."""

    values: dict[str, Any] = Field(default_factory=dict)


class StartUploadRequest(BaseModel):
    # None keeps the configured mode.
    batch_mode: bool | None = None


class RunResponse(BaseModel):
    status: str
    entries: int


class ActionResponse(BaseModel):
    status: str
    entry_id: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    running: bool
    entries: int
    service: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
