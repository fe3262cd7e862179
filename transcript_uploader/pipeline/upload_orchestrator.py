"""Drives entries through the multi-stage upload protocol, one at a time.

Each entry goes through::

    QUEUED → UPLOADING → PARAMETERS_PENDING → PARAMETERS_SUBMITTED
           → PROCESSING → DONE

with FAILED, SKIPPED and CANCELLED ending an attempt early.

Uploads are strictly sequential: the next entry is picked afresh, as the
first eligible entry in the registry, only after the previous entry has
left the upload slot (uploaded, parameters submitted, or given up).
Server-side processing is not sequential: once an entry's parameters are
accepted, its processing tasks are polled by a background ``asyncio.Task``
while the run moves on to the next entry.

Two modes:

- **batch** -- parameters are submitted with the service's defaults (plus
  the ones the uploader always knows), and a failed entry does not stop
  the run.  When the run and all processing are over, ``on_run_complete``
  is called once.
- **interactive** -- any parameter the uploader cannot fill in is put to
  the user through the :class:`ConfirmationGate`, and the first failure
  stops the run.

Cancellation is cooperative: :meth:`UploadOrchestrator.cancel` clears the
running flag, which is checked before each new upload and each parameter
submission.  A call already in flight finishes and records its result
first.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from transcript_uploader.config.settings import Settings
from transcript_uploader.interfaces.ingestion_service import IIngestionService
from transcript_uploader.models.entry import Entry, EntryState, Operation
from transcript_uploader.models.service import Parameter
from transcript_uploader.pipeline.confirmation_gate import ConfirmationGate, ReviewDecision
from transcript_uploader.pipeline.progress_tracker import ProgressTracker
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.utils.errors import (
    NothingToDoError,
    OrchestrationError,
    UploaderError,
)
from transcript_uploader.utils.logging import get_logger

# Parameters the uploader fills in from the entry and settings.
PARAMETER_CORPUS = "labbcat_corpus"
PARAMETER_EPISODE = "labbcat_episode"
PARAMETER_TRANSCRIPT_TYPE = "labbcat_transcript_type"
PARAMETER_GENERATE = "labbcat_generate"
KNOWN_PARAMETERS = frozenset(
    {PARAMETER_CORPUS, PARAMETER_EPISODE, PARAMETER_TRANSCRIPT_TYPE, PARAMETER_GENERATE}
)

# Raw upload fills the first half of the progress bar, processing the rest.
UPLOAD_PROGRESS_SHARE = 50.0

STATUS_UPLOADING = "Uploading..."
STATUS_UPLOADED = "Uploaded."
STATUS_SUBMITTING = "Setting parameters..."
STATUS_COMPLETE = "Complete."
STATUS_CANCELLED = "Cancelled."
STATUS_SKIPPED = "Skipped."

RunCompleteCallback = Callable[[], Awaitable[None] | None]


class UploadOrchestrator:
    """Sequential upload run over the entries of a registry.

    Parameters
    ----------
    service:
        The ingestion service.
    registry:
        Entries to upload.
    tracker:
        Receives every state change.
    gate:
        Where interactive runs wait for parameter review.
    settings:
        Supplies batch mode, polling cadence and the generate-layers flag.
    """

    def __init__(
        self,
        service: IIngestionService,
        registry: EntryRegistry,
        tracker: ProgressTracker,
        gate: ConfirmationGate,
        settings: Settings,
    ) -> None:
        self._service = service
        self._registry = registry
        self._tracker = tracker
        self._gate = gate
        self._settings = settings
        self._logger: structlog.BoundLogger = get_logger(__name__)

        self.batch_mode = settings.batch_mode
        self.on_run_complete: RunCompleteCallback | None = None

        self._running = False
        self._batch_run = False
        self._sequence_done = True
        self._completion_reported = True
        self._attempted: set[str] = set()

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Run control
    # ------------------------------------------------------------------

    def prepare(self, batch_mode: bool | None = None) -> list[Entry]:
        """Reset entries for a new run and check that there is work to do.

        Every entry that is not DONE (and not busy) has its status, errors
        and progress cleared; entries whose last attempt failed, was
        cancelled or skipped also lose their stale upload id.

        Returns
        -------
        list[Entry]
            Entries that will be uploaded, in order.

        Raises
        ------
        OrchestrationError
            If a run is already in progress.
        NothingToDoError
            If no entry has a transcript waiting to be uploaded.
        """
        if self._running:
            raise OrchestrationError("An upload run is already in progress")
        if batch_mode is not None:
            self.batch_mode = batch_mode

        for entry in self._registry:
            if (
                entry.state is not EntryState.DONE
                and entry.active_operation is None
                and not entry.is_processing
            ):
                entry.reset_attempt()

        self._attempted.clear()
        candidates = [entry for entry in self._registry if self._is_eligible(entry)]
        if not candidates:
            raise NothingToDoError("There are no transcripts to upload")

        self._running = True
        self._batch_run = self.batch_mode
        self._sequence_done = False
        self._completion_reported = False
        self._logger.info(
            "upload_run_started",
            entries=len(candidates),
            batch=self._batch_run,
        )
        return candidates

    async def run(self) -> None:
        """Upload eligible entries one at a time until none is left or cancelled."""
        uploaded = failed = 0
        try:
            while self._running:
                entry = self._registry.find(self._is_eligible)
                if entry is None:
                    break
                if await self._upload_entry(entry):
                    uploaded += 1
                else:
                    failed += 1
                    if not self._batch_run:
                        self._logger.info("upload_run_halted", entry_id=entry.id)
                        self._running = False
        finally:
            self._running = False
            self._sequence_done = True
            self._logger.info("upload_run_finished", uploaded=uploaded, failed=failed)
        await self._maybe_complete()

    async def start(self, batch_mode: bool | None = None) -> None:
        """Prepare and run to the end of the sequential phase."""
        self.prepare(batch_mode)
        await self.run()

    async def cancel(self) -> None:
        """Stop the run after the call in flight; release any parameter review."""
        self._running = False
        released = self._gate.cancel_all()
        self._logger.info("upload_run_cancelled", released_reviews=released)
        if self._settings.cancel_stops_processing:
            for entry in self._registry:
                if entry.is_processing:
                    await self._stop_polling(entry)
                    entry.state = EntryState.CANCELLED
                    entry.status = STATUS_CANCELLED
                    await self._tracker.update(entry)
            await self._maybe_complete()

    async def cancel_processing(self, entry_id: str) -> Entry:
        """Stop polling one entry and ask the service to cancel its tasks.

        Raises
        ------
        KeyError
            If there is no such entry.
        OrchestrationError
            If the entry is not being processed.
        """
        entry = self._registry.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        if not entry.is_processing:
            raise OrchestrationError(f"{entry_id} is not being processed")

        await self._stop_polling(entry)
        for task_id in list((entry.processing_handles or {}).values()):
            try:
                await self._service.cancel_task(task_id)
            except UploaderError as exc:
                self._logger.warning(
                    "task_cancel_failed", entry_id=entry.id, task_id=task_id, error=str(exc)
                )
                entry.record_error(exc.message)
        entry.processing_handles = {}
        entry.state = EntryState.CANCELLED
        entry.status = STATUS_CANCELLED
        await self._tracker.update(entry)
        await self._maybe_complete()
        return entry

    async def wait_for_processing(self) -> None:
        """Return once no entry has server-side processing being polled."""
        tasks = [e.poll_task for e in self._registry if e.is_processing]
        if tasks:
            await asyncio.wait(tasks)

    async def shutdown(self) -> None:
        """Cancel the run and every poll task without contacting the service."""
        self._running = False
        self._gate.cancel_all()
        for entry in self._registry:
            if entry.is_processing:
                await self._stop_polling(entry)

    # ------------------------------------------------------------------
    # One entry
    # ------------------------------------------------------------------

    def _is_eligible(self, entry: Entry) -> bool:
        return (
            entry.has_transcript
            and entry.upload_id is None
            and entry.state is EntryState.QUEUED
            and entry.active_operation is None
            and entry.id not in self._attempted
        )

    async def _upload_entry(self, entry: Entry) -> bool:
        """Take *entry* through the upload slot; ``False`` if it failed."""
        entry.begin_operation(Operation.UPLOAD)
        self._attempted.add(entry.id)
        try:
            return await self._upload_and_submit(entry)
        finally:
            entry.end_operation()

    async def _upload_and_submit(self, entry: Entry) -> bool:
        entry.state = EntryState.UPLOADING
        entry.status = STATUS_UPLOADING
        await self._tracker.update(entry)
        self._logger.info(
            "upload_start",
            entry_id=entry.id,
            transcript=entry.transcript_id,
            media=len(entry.media_file_names()),
            update=entry.exists is True,
        )

        def on_progress(sent: int, total: int) -> None:
            if total > 0:
                entry.update_progress(UPLOAD_PROGRESS_SHARE * sent / total)
                self._tracker.update_nowait(entry)

        try:
            result = await self._service.upload_transcript(
                entry.transcript_file,
                entry.media,
                entry.exists is True,
                on_progress=on_progress,
            )
        except UploaderError as exc:
            await self._fail(entry, exc)
            return False

        entry.upload_id = result.upload_id
        entry.parameters = self._prefill(entry, result.parameters)
        entry.update_progress(UPLOAD_PROGRESS_SHARE)
        entry.state = EntryState.PARAMETERS_PENDING
        entry.status = "\n".join(result.messages) or STATUS_UPLOADED
        await self._tracker.update(entry)
        self._logger.info("upload_complete", entry_id=entry.id, upload_id=entry.upload_id)

        if not self._running:
            await self._release(entry, EntryState.CANCELLED, STATUS_CANCELLED)
            return True

        if not self._batch_run and self._needs_review(entry.parameters):
            outcome = await self._gate.wait_for_review(entry.id, entry.parameters)
            if outcome.decision is ReviewDecision.SKIPPED:
                await self._release(entry, EntryState.SKIPPED, STATUS_SKIPPED)
                return True
            if outcome.decision is ReviewDecision.CANCELLED:
                await self._release(entry, EntryState.CANCELLED, STATUS_CANCELLED)
                return True
            self._apply_values(entry.parameters, outcome.values)

        if not self._running:
            await self._release(entry, EntryState.CANCELLED, STATUS_CANCELLED)
            return True

        return await self._submit(entry)

    async def _submit(self, entry: Entry) -> bool:
        entry.state = EntryState.PARAMETERS_SUBMITTED
        entry.status = STATUS_SUBMITTING
        await self._tracker.update(entry)
        try:
            result = await self._service.submit_parameters(entry.upload_id, entry.parameters or [])
        except UploaderError as exc:
            await self._fail(entry, exc)
            return False

        if result.parameters:
            entry.parameters = [p.model_copy() for p in result.parameters]
        entry.processing_handles = dict(result.processing_handles)
        if result.messages:
            entry.status = "\n".join(result.messages)

        if not entry.processing_handles:
            self._finish(entry)
            await self._tracker.update(entry)
            self._logger.info("entry_complete", entry_id=entry.id, processing=False)
            return True

        entry.state = EntryState.PROCESSING
        await self._tracker.update(entry)
        self._logger.info(
            "processing_start",
            entry_id=entry.id,
            tasks=list(entry.processing_handles.values()),
        )
        entry.poll_task = asyncio.create_task(
            self._poll(entry), name=f"poll-{entry.id}"
        )
        return True

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _poll(self, entry: Entry) -> None:
        """Poll *entry*'s processing tasks until none is left running."""
        failures = 0
        interval = self._settings.poll_interval_seconds
        while entry.processing_handles:
            for document_id, task_id in list(entry.processing_handles.items()):
                try:
                    task = await self._service.poll_status(task_id)
                except UploaderError as exc:
                    failures += 1
                    self._logger.warning(
                        "poll_failed",
                        entry_id=entry.id,
                        task_id=task_id,
                        failures=failures,
                        error=str(exc),
                    )
                    if failures >= self._settings.poll_max_failures:
                        entry.record_error(exc.message)
                        entry.status = exc.message
                        entry.state = EntryState.FAILED
                        entry.poll_task = None
                        await self._tracker.update(entry)
                        await self._maybe_complete()
                        return
                    continue

                failures = 0
                if task is None:
                    self._logger.debug("task_vanished", entry_id=entry.id, task_id=task_id)
                    del entry.processing_handles[document_id]
                    continue
                entry.update_progress(UPLOAD_PROGRESS_SHARE + task.percent_complete / 2)
                if task.status:
                    entry.status = task.status
                if not task.running:
                    if task.last_exception:
                        entry.record_error(task.last_exception)
                    del entry.processing_handles[document_id]

            await self._tracker.update(entry)
            if entry.processing_handles:
                await asyncio.sleep(interval)

        self._finish(entry)
        entry.poll_task = None
        await self._tracker.update(entry)
        self._logger.info("entry_complete", entry_id=entry.id, errors=len(entry.errors))
        await self._maybe_complete()

    async def _stop_polling(self, entry: Entry) -> None:
        task = entry.poll_task
        if task is None:
            return
        task.cancel()
        await asyncio.wait([task])
        entry.poll_task = None
        self._logger.info("polling_stopped", entry_id=entry.id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _prefill(self, entry: Entry, parameters: list[Parameter]) -> list[Parameter]:
        known: dict[str, Any] = {
            PARAMETER_CORPUS: entry.corpus,
            PARAMETER_EPISODE: entry.episode,
            PARAMETER_TRANSCRIPT_TYPE: entry.transcript_type,
            PARAMETER_GENERATE: self._settings.generate_layers,
        }
        filled = []
        for parameter in parameters:
            parameter = parameter.model_copy()
            if parameter.name in known:
                parameter.value = known[parameter.name]
            filled.append(parameter)
        return filled

    @staticmethod
    def _needs_review(parameters: list[Parameter] | None) -> bool:
        return any(p.name not in KNOWN_PARAMETERS for p in parameters or [])

    @staticmethod
    def _apply_values(parameters: list[Parameter] | None, values: dict[str, Any]) -> None:
        for parameter in parameters or []:
            if parameter.name in values:
                parameter.value = values[parameter.name]

    @staticmethod
    def _finish(entry: Entry) -> None:
        entry.update_progress(100.0)
        entry.exists = True
        entry.state = EntryState.DONE
        if not entry.status:
            entry.status = STATUS_COMPLETE

    async def _fail(self, entry: Entry, exc: UploaderError) -> None:
        entry.record_error(exc.message)
        entry.status = exc.message
        entry.state = EntryState.FAILED
        await self._tracker.update(entry)
        self._logger.warning(
            "upload_failed",
            entry_id=entry.id,
            service=exc.service_name,
            error=exc.message,
        )

    async def _release(self, entry: Entry, state: EntryState, status: str) -> None:
        """Give up on an uploaded entry, releasing the server-side upload."""
        if entry.upload_id is not None:
            try:
                await self._service.cancel_upload(entry.upload_id)
            except UploaderError as exc:
                self._logger.warning(
                    "upload_release_failed",
                    entry_id=entry.id,
                    upload_id=entry.upload_id,
                    error=str(exc),
                )
                entry.record_error(exc.message)
        entry.upload_id = None
        entry.state = state
        entry.status = status
        await self._tracker.update(entry)
        self._logger.info("entry_released", entry_id=entry.id, state=state.value)

    async def _maybe_complete(self) -> None:
        if (
            not self._sequence_done
            or not self._batch_run
            or self._completion_reported
            or any(entry.is_processing for entry in self._registry)
        ):
            return
        self._completion_reported = True
        await self._tracker.run_complete(Operation.UPLOAD.value)
        if self.on_run_complete is not None:
            result = self.on_run_complete()
            if asyncio.iscoroutine(result):
                await result
