"""Deletes the remote transcripts of existing entries, one at a time.

Mirrors the upload run's discipline: a running flag checked before each
deletion, the per-entry busy guard, and a fresh pick of the first
deletable entry on every step.  Any response ends the attempt the same
way: the entry no longer exists remotely, its upload fields are cleared
and progress is 100.  A failed deletion also keeps its errors and the
FAILED state, and the run carries on with the next entry.
"""

from __future__ import annotations

import structlog

from transcript_uploader.interfaces.ingestion_service import IIngestionService
from transcript_uploader.models.entry import Entry, EntryState, Operation
from transcript_uploader.pipeline.progress_tracker import ProgressTracker
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.utils.errors import (
    NothingToDoError,
    OrchestrationError,
    UploaderError,
)
from transcript_uploader.utils.logging import get_logger

STATUS_DELETING = "Deleting..."
STATUS_DELETED = "Deleted."


class DeletionOrchestrator:
    """Sequential deletion run over the existing entries of a registry."""

    def __init__(
        self,
        service: IIngestionService,
        registry: EntryRegistry,
        tracker: ProgressTracker,
    ) -> None:
        self._service = service
        self._registry = registry
        self._tracker = tracker
        self._logger: structlog.BoundLogger = get_logger(__name__)
        self._running = False
        self._attempted: set[str] = set()

    @property
    def running(self) -> bool:
        return self._running

    def prepare(self) -> list[Entry]:
        """Check that there is something to delete and arm the run.

        Raises
        ------
        OrchestrationError
            If a deletion run is already in progress.
        NothingToDoError
            If no entry's transcript exists remotely.
        """
        if self._running:
            raise OrchestrationError("A deletion run is already in progress")
        self._attempted.clear()
        candidates = [entry for entry in self._registry if self._is_deletable(entry)]
        if not candidates:
            raise NothingToDoError("There are no existing transcripts to delete")
        self._running = True
        self._logger.info("delete_run_started", entries=len(candidates))
        return candidates

    async def run(self) -> None:
        deleted = failed = 0
        try:
            while self._running:
                entry = self._registry.find(self._is_deletable)
                if entry is None:
                    break
                if await self._delete_entry(entry):
                    deleted += 1
                else:
                    failed += 1
        finally:
            self._running = False
            self._logger.info("delete_run_finished", deleted=deleted, failed=failed)
        await self._tracker.run_complete(Operation.DELETE.value)

    async def start(self) -> None:
        self.prepare()
        await self.run()

    async def cancel(self) -> None:
        """Stop the run once the deletion in flight has returned."""
        if self._running:
            self._logger.info("delete_run_cancelled")
        self._running = False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _is_deletable(self, entry: Entry) -> bool:
        return (
            entry.exists is True
            and bool(entry.transcript_id)
            and entry.active_operation is None
            and not entry.is_processing
            and entry.id not in self._attempted
        )

    async def _delete_entry(self, entry: Entry) -> bool:
        entry.begin_operation(Operation.DELETE)
        self._attempted.add(entry.id)
        try:
            entry.errors = []
            entry.progress = 50.0
            entry.state = EntryState.DELETING
            entry.status = STATUS_DELETING
            await self._tracker.update(entry)
            try:
                messages = await self._service.delete_transcript(entry.transcript_id)
            except UploaderError as exc:
                entry.record_error(exc.message)
                entry.mark_deleted()
                entry.status = exc.message
                entry.state = EntryState.FAILED
                await self._tracker.update(entry)
                self._logger.warning(
                    "delete_failed",
                    entry_id=entry.id,
                    transcript_id=entry.transcript_id,
                    error=exc.message,
                )
                return False

            entry.mark_deleted()
            suffix = f": {entry.transcript_id}"
            entry.status = "\n".join(m.replace(suffix, "") for m in messages) or STATUS_DELETED
            await self._tracker.update(entry)
            self._logger.info("transcript_deleted", entry_id=entry.id)
            return True
        finally:
            entry.end_operation()
