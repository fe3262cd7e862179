"""FastAPI routes for driving an upload session over HTTP.

The session lives on ``app.state.session`` (created at startup in
``transcript_uploader.main``) and is resolved per request through the
``Annotated[..., Depends(...)]`` pattern.

Endpoint                                   Method  Description
─────────────────────────────────────────────────────────────────────
/api/v1/entries                            GET     List entries
/api/v1/entries                            POST    Add files / directories
/api/v1/entries/clear                      POST    Remove existing and/or new entries
/api/v1/entries/{id}                       PATCH   Edit corpus, episode, type, tracks
/api/v1/entries/{id}                       DELETE  Remove an entry
/api/v1/entries/{id}/parameters            POST    Confirm parameters under review
/api/v1/entries/{id}/skip                  POST    Skip an entry under review
/api/v1/entries/{id}/cancel-processing     POST    Stop an entry's server processing
/api/v1/upload                             POST    Start an upload run
/api/v1/delete                             POST    Start a deletion run
/api/v1/cancel                             POST    Cancel the current run
/api/v1/report                             GET     CSV report download
/api/v1/health                             GET     Health check

Run preconditions (nothing to do, run already going, busy entry) surface
as HTTP 409 via the error handlers in :mod:`transcript_uploader.api.middleware`.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from transcript_uploader.api.schemas import (
    ActionResponse,
    AddPathsRequest,
    ClearEntriesRequest,
    ClearEntriesResponse,
    EntryListResponse,
    EntryResponse,
    HealthResponse,
    ParametersRequest,
    RunResponse,
    StartUploadRequest,
    UpdateEntryRequest,
)
from transcript_uploader.models.entry import Entry
from transcript_uploader.pipeline.session import UploadSession
from transcript_uploader.services.report_generator import report_file_name
from transcript_uploader.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"


def _get_session(request: Request) -> UploadSession:
    """Return the upload session from application state."""
    return request.app.state.session


SessionDep = Annotated[UploadSession, Depends(_get_session)]


def _entry_response(session: UploadSession, entry: Entry) -> EntryResponse:
    return EntryResponse.from_entry(
        entry, awaiting_review=session.gate.get_pending(entry.id) is not None
    )


def _not_found(entry_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"No entry: {entry_id}")


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@router.get("/entries", response_model=EntryListResponse, summary="List entries")
async def list_entries(session: SessionDep) -> EntryListResponse:
    return EntryListResponse(
        entries=[_entry_response(session, e) for e in session.registry],
        running=session.running,
    )


@router.post(
    "/entries",
    response_model=EntryListResponse,
    status_code=201,
    summary="Add files or directories",
)
async def add_entries(body: AddPathsRequest, session: SessionDep) -> EntryListResponse:
    """Classify the given local paths and return the entries they touched."""
    entries = await session.add_paths(body.paths)
    _logger.info("entries_added", paths=len(body.paths), entries=len(entries))
    return EntryListResponse(
        entries=[_entry_response(session, e) for e in entries],
        running=session.running,
    )


@router.post("/entries/clear", response_model=ClearEntriesResponse, summary="Clear entries")
async def clear_entries(body: ClearEntriesRequest, session: SessionDep) -> ClearEntriesResponse:
    removed = session.clear(existing=body.existing, new=body.new)
    return ClearEntriesResponse(removed=removed, remaining=len(session.registry))


@router.patch("/entries/{entry_id}", response_model=EntryResponse, summary="Edit an entry")
async def update_entry(
    entry_id: str, body: UpdateEntryRequest, session: SessionDep
) -> EntryResponse:
    if session.registry.get(entry_id) is None:
        raise _not_found(entry_id)
    try:
        entry = session.update_entry(
            entry_id,
            corpus=body.corpus,
            episode=body.episode,
            transcript_type=body.transcript_type,
            tracks=body.tracks,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"No media file: {exc.args[0]}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _entry_response(session, entry)


@router.delete("/entries/{entry_id}", response_model=ActionResponse, summary="Remove an entry")
async def remove_entry(entry_id: str, session: SessionDep) -> ActionResponse:
    try:
        session.remove_entry(entry_id)
    except KeyError as exc:
        raise _not_found(entry_id) from exc
    return ActionResponse(status="removed", entry_id=entry_id)


@router.post(
    "/entries/{entry_id}/parameters",
    response_model=ActionResponse,
    summary="Confirm parameters for an entry under review",
)
async def confirm_parameters(
    entry_id: str, body: ParametersRequest, session: SessionDep
) -> ActionResponse:
    try:
        session.confirm_parameters(entry_id, body.values)
    except KeyError as exc:
        raise HTTPException(
            status_code=404, detail=f"No parameters awaiting review for: {entry_id}"
        ) from exc
    return ActionResponse(status="confirmed", entry_id=entry_id)


@router.post(
    "/entries/{entry_id}/skip",
    response_model=ActionResponse,
    summary="Skip an entry under review",
)
async def skip_entry(entry_id: str, session: SessionDep) -> ActionResponse:
    try:
        session.skip_entry(entry_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=404, detail=f"No parameters awaiting review for: {entry_id}"
        ) from exc
    return ActionResponse(status="skipped", entry_id=entry_id)


@router.post(
    "/entries/{entry_id}/cancel-processing",
    response_model=EntryResponse,
    summary="Stop server-side processing of an entry",
)
async def cancel_processing(entry_id: str, session: SessionDep) -> EntryResponse:
    try:
        entry = await session.cancel_processing(entry_id)
    except KeyError as exc:
        raise _not_found(entry_id) from exc
    return _entry_response(session, entry)


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


@router.post("/upload", response_model=RunResponse, status_code=202, summary="Start uploading")
async def start_upload(session: SessionDep, body: StartUploadRequest | None = None) -> RunResponse:
    batch_mode = body.batch_mode if body is not None else None
    session.start_upload(batch_mode)
    pending = sum(1 for e in session.registry if e.has_transcript and e.upload_id is None)
    return RunResponse(status="upload_started", entries=pending)


@router.post("/delete", response_model=RunResponse, status_code=202, summary="Start deleting")
async def start_delete(session: SessionDep) -> RunResponse:
    session.start_delete()
    existing = sum(1 for e in session.registry if e.exists)
    return RunResponse(status="delete_started", entries=existing)


@router.post("/cancel", response_model=ActionResponse, summary="Cancel the current run")
async def cancel_run(session: SessionDep) -> ActionResponse:
    await session.cancel()
    return ActionResponse(status="cancelled")


@router.get("/report", summary="Download the CSV run report")
async def download_report(session: SessionDep) -> Response:
    return Response(
        content=session.report(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{report_file_name()}"'},
    )


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(session: SessionDep) -> HealthResponse:
    vocabulary = session.vocabulary
    return HealthResponse(
        status="healthy" if vocabulary.deserializers else "degraded",
        version=_VERSION,
        running=session.running,
        entries=len(session.registry),
        service={
            "url": session.settings.service_url,
            "corpora": len(vocabulary.corpora),
            "formats": len(vocabulary.deserializers),
        },
    )
