"""Upload session: one registry of entries and everything that acts on it.

The session is the facade the CLI and the HTTP API talk to.  It owns the
registry, the classifier, the existence resolver, both orchestrators, the
progress tracker and the confirmation gate, and runs uploads and deletions
as background tasks so callers stay responsive while a run is going.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog

from transcript_uploader.config.settings import Settings
from transcript_uploader.interfaces.ingestion_service import IIngestionService
from transcript_uploader.models.entry import Entry
from transcript_uploader.models.service import ServerVocabulary
from transcript_uploader.pipeline.confirmation_gate import ConfirmationGate
from transcript_uploader.pipeline.deletion_orchestrator import DeletionOrchestrator
from transcript_uploader.pipeline.progress_tracker import ProgressTracker
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.pipeline.upload_orchestrator import (
    RunCompleteCallback,
    UploadOrchestrator,
)
from transcript_uploader.providers.ingestion.http_ingestion_provider import (
    HttpIngestionProvider,
    build_http_client,
)
from transcript_uploader.services.existence_resolver import ExistenceResolver
from transcript_uploader.services.file_classifier import FileClassifier
from transcript_uploader.services.report_generator import generate_report
from transcript_uploader.utils.errors import OrchestrationError
from transcript_uploader.utils.logging import get_logger


class UploadSession:
    """Wires the uploader's components around one shared registry.

    Parameters
    ----------
    settings:
        Application settings.
    service:
        The ingestion service (an :class:`HttpIngestionProvider` in
        production, a mock in tests).
    """

    def __init__(self, settings: Settings, service: IIngestionService) -> None:
        self.settings = settings
        self.service = service
        self.registry = EntryRegistry()
        self.tracker = ProgressTracker()
        self.gate = ConfirmationGate()
        self.vocabulary = ServerVocabulary()
        self.classifier = FileClassifier(self.registry, self.vocabulary)
        self.resolver = ExistenceResolver(service, settings.existence_check_concurrency)
        self.uploader = UploadOrchestrator(
            service, self.registry, self.tracker, self.gate, settings
        )
        self.deleter = DeletionOrchestrator(service, self.registry, self.tracker)
        self._run_task: asyncio.Task | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def load_vocabulary(self) -> ServerVocabulary:
        """Fetch corpora, transcript types, tracks and deserializers."""
        corpora, transcript_types, tracks, descriptors = await asyncio.gather(
            self.service.list_valid_corpora(),
            self.service.list_valid_transcript_types(),
            self.service.list_tracks(),
            self.service.list_deserializers(),
        )
        self.vocabulary = ServerVocabulary.from_descriptors(
            corpora, transcript_types, tracks, descriptors
        )
        self.classifier.vocabulary = self.vocabulary
        self._logger.info(
            "vocabulary_loaded",
            corpora=len(self.vocabulary.corpora),
            transcript_types=len(self.vocabulary.transcript_types),
            tracks=len(self.vocabulary.tracks),
            formats=len(self.vocabulary.deserializers),
        )
        return self.vocabulary

    @property
    def on_run_complete(self) -> RunCompleteCallback | None:
        return self.uploader.on_run_complete

    @on_run_complete.setter
    def on_run_complete(self, callback: RunCompleteCallback | None) -> None:
        self.uploader.on_run_complete = callback

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def add_paths(self, paths: Iterable[Path | str]) -> list[Entry]:
        """Classify the files under *paths* and check which already exist."""
        entries = self.classifier.add_paths(paths)
        await self.resolver.resolve_pending(entries)
        for entry in entries:
            await self.tracker.update(entry)
        return entries

    def get_entry(self, entry_id: str) -> Entry:
        entry = self.registry.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        return entry

    def update_entry(
        self,
        entry_id: str,
        corpus: str | None = None,
        episode: str | None = None,
        transcript_type: str | None = None,
        tracks: dict[str, str] | None = None,
    ) -> Entry:
        """Apply user edits, checking values against the server vocabulary.

        Parameters
        ----------
        tracks:
            Media file name -> track suffix re-assignments.

        Raises
        ------
        KeyError
            If the entry, or a media file named in *tracks*, does not exist.
        ValueError
            If a corpus, transcript type or track is not valid on the service.
        EntryBusyError
            If the entry can no longer be edited.
        """
        vocabulary = self.vocabulary
        if corpus is not None and vocabulary.corpora and corpus not in vocabulary.corpora:
            raise ValueError(f"Unknown corpus: {corpus}")
        if (
            transcript_type is not None
            and vocabulary.transcript_types
            and transcript_type not in vocabulary.transcript_types
        ):
            raise ValueError(f"Unknown transcript type: {transcript_type}")
        suffixes = vocabulary.track_suffixes()
        for suffix in (tracks or {}).values():
            if suffix not in suffixes:
                raise ValueError(f"Unknown media track: {suffix!r}")

        entry = self.registry.update_metadata(
            entry_id, corpus=corpus, episode=episode, transcript_type=transcript_type
        )
        for file_name, suffix in (tracks or {}).items():
            entry.assign_track(file_name, suffix)
        return entry

    def remove_entry(self, entry_id: str) -> Entry:
        entry = self.registry.remove(entry_id)
        self.tracker.forget(entry_id)
        return entry

    def clear(self, existing: bool = True, new: bool = True) -> int:
        before = {entry.id for entry in self.registry}
        removed = self.registry.clear(existing=existing, new=new)
        for entry_id in before - {entry.id for entry in self.registry}:
            self.tracker.forget(entry_id)
        return removed

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def start_upload(self, batch_mode: bool | None = None) -> asyncio.Task:
        """Start an upload run in the background.

        Raises
        ------
        OrchestrationError
            If a run is already in progress, or there is nothing to upload.
        """
        self._ensure_idle()
        self.uploader.prepare(batch_mode)
        self._run_task = asyncio.create_task(self.uploader.run(), name="upload-run")
        return self._run_task

    def start_delete(self) -> asyncio.Task:
        """Start a deletion run in the background; see :meth:`start_upload`."""
        self._ensure_idle()
        self.deleter.prepare()
        self._run_task = asyncio.create_task(self.deleter.run(), name="delete-run")
        return self._run_task

    async def upload(self, batch_mode: bool | None = None, wait_for_processing: bool = True) -> None:
        """Run an upload to completion (including processing, by default)."""
        await self.start_upload(batch_mode)
        if wait_for_processing:
            await self.uploader.wait_for_processing()

    async def delete(self) -> None:
        await self.start_delete()

    def confirm_parameters(self, entry_id: str, values: dict[str, Any] | None = None) -> None:
        self.gate.confirm(entry_id, values)

    def skip_entry(self, entry_id: str) -> None:
        self.gate.skip(entry_id)

    async def cancel(self) -> None:
        await self.uploader.cancel()
        await self.deleter.cancel()

    async def cancel_processing(self, entry_id: str) -> Entry:
        return await self.uploader.cancel_processing(entry_id)

    def report(self) -> str:
        return generate_report(self.registry)

    async def close(self) -> None:
        """Stop runs and polling, then release the service connection."""
        await self.uploader.shutdown()
        await self.deleter.cancel()
        if self.running:
            self._run_task.cancel()
            await asyncio.wait([self._run_task])
        await self.service.close()
        self._logger.info("session_closed")

    def _ensure_idle(self) -> None:
        if self.running or self.uploader.running or self.deleter.running:
            raise OrchestrationError("Another run is already in progress")


def build_session(settings: Settings) -> UploadSession:
    """Create a session talking to the configured service over HTTP."""
    provider = HttpIngestionProvider(build_http_client(settings))
    return UploadSession(settings, provider)
