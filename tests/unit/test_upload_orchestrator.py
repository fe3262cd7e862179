"""Unit tests for UploadOrchestrator (sequential upload, review, polling)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from transcript_uploader.config.settings import Settings
from transcript_uploader.models.entry import Entry, EntryState
from transcript_uploader.models.service import (
    Parameter,
    ParameterResult,
    TaskStatus,
    UploadResult,
)
from transcript_uploader.pipeline.confirmation_gate import ConfirmationGate
from transcript_uploader.pipeline.progress_tracker import ProgressEvent, ProgressTracker
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.pipeline.upload_orchestrator import UploadOrchestrator
from transcript_uploader.utils.errors import (
    NothingToDoError,
    OrchestrationError,
    ParameterError,
    ProcessingError,
    UploadError,
)
from tests.conftest import file_ref, known_parameters


# ======================================================================
# Fixtures and helpers
# ======================================================================


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


@pytest.fixture
def gate() -> ConfirmationGate:
    return ConfirmationGate()


@pytest.fixture
def orchestrator(
    mock_ingestion_service: MagicMock,
    registry: EntryRegistry,
    tracker: ProgressTracker,
    gate: ConfirmationGate,
    settings: Settings,
) -> UploadOrchestrator:
    orch = UploadOrchestrator(mock_ingestion_service, registry, tracker, gate, settings)
    orch.on_run_complete = AsyncMock()
    return orch


def _add(registry: EntryRegistry, name: str, exists: bool = False) -> Entry:
    entry, _ = registry.get_or_create(name)
    entry.transcript_file = file_ref(f"{name}.eaf")
    entry.transcript_id = f"{name}.eaf"
    entry.corpus = "CorpusX"
    entry.episode = f"ep-{name}"
    entry.transcript_type = "interview"
    entry.exists = exists
    return entry


def _fail_uploads_of(service: MagicMock, *names: str) -> None:
    succeed = service.upload_transcript.side_effect

    async def _upload(transcript, media, is_update, on_progress=None):
        if transcript.name in names:
            raise UploadError("rejected", service_name="upload")
        return await succeed(transcript, media, is_update, on_progress)

    service.upload_transcript.side_effect = _upload


def _reject_parameters_of(service: MagicMock, *upload_ids: str) -> None:
    async def _submit(upload_id, parameters):
        if upload_id in upload_ids:
            raise ParameterError("Invalid corpus", service_name="upload")
        return ParameterResult(processing_handles={}, messages=[])

    service.submit_parameters = AsyncMock(side_effect=_submit)


def _ask_extra_parameter(service: MagicMock) -> None:
    async def _upload(transcript, media, is_update, on_progress=None):
        extra = Parameter(name="orthography", label="Orthography", value="default")
        return UploadResult(
            upload_id=f"upload-{transcript.name}",
            parameters=[*known_parameters(), extra],
        )

    service.upload_transcript.side_effect = _upload


def _process_with(service: MagicMock, *statuses: TaskStatus) -> None:
    service.submit_parameters = AsyncMock(
        return_value=ParameterResult(processing_handles={"doc1": "task1"})
    )
    service.poll_status = AsyncMock(side_effect=list(statuses))


def _value(parameters: list[Parameter], name: str):
    return next(p.value for p in parameters if p.name == name)


# ======================================================================
# Batch runs
# ======================================================================


class TestBatchRun:
    @pytest.mark.asyncio
    async def test_all_entries_uploaded(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        a, b = _add(registry, "a"), _add(registry, "b")

        await orchestrator.start(batch_mode=True)

        for entry in (a, b):
            assert entry.state is EntryState.DONE
            assert entry.progress == 100.0
            assert entry.exists is True
            assert entry.status == "Complete."
        assert mock_ingestion_service.upload_transcript.await_count == 2
        orchestrator.on_run_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_known_parameters_are_prefilled(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        _add(registry, "a")

        await orchestrator.start(batch_mode=True)

        upload_id, parameters = mock_ingestion_service.submit_parameters.await_args.args
        assert upload_id == "upload-a.eaf"
        assert _value(parameters, "labbcat_corpus") == "CorpusX"
        assert _value(parameters, "labbcat_episode") == "ep-a"
        assert _value(parameters, "labbcat_transcript_type") == "interview"
        assert _value(parameters, "labbcat_generate") is True

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        a, b = _add(registry, "a"), _add(registry, "b")
        _fail_uploads_of(mock_ingestion_service, "a.eaf")

        await orchestrator.start(batch_mode=True)

        assert a.state is EntryState.FAILED
        assert a.errors == ["rejected"]
        assert a.upload_id is None
        assert b.state is EntryState.DONE
        orchestrator.on_run_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_parameter_error_does_not_stop_batch(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        a, b = _add(registry, "a"), _add(registry, "b")
        _reject_parameters_of(mock_ingestion_service, "upload-a.eaf")

        await orchestrator.start(batch_mode=True)

        assert a.state is EntryState.FAILED
        assert a.errors == ["Invalid corpus"]
        assert a.status == "Invalid corpus"
        assert a.active_operation is None
        assert b.state is EntryState.DONE
        assert mock_ingestion_service.submit_parameters.await_count == 2
        orchestrator.on_run_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_entry_added_mid_run_is_uploaded(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        _add(registry, "a")
        _add(registry, "b")
        succeed = mock_ingestion_service.upload_transcript.side_effect

        async def _upload(transcript, media, is_update, on_progress=None):
            if transcript.name == "a.eaf":
                _add(registry, "late")
            return await succeed(transcript, media, is_update, on_progress)

        mock_ingestion_service.upload_transcript.side_effect = _upload

        await orchestrator.start(batch_mode=True)

        uploaded = [
            call.args[0].name for call in mock_ingestion_service.upload_transcript.await_args_list
        ]
        assert uploaded == ["a.eaf", "b.eaf", "late.eaf"]
        assert registry.get("late").state is EntryState.DONE
        orchestrator.on_run_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_existing_transcript_uploaded_as_update(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        _add(registry, "a", exists=True)
        _add(registry, "b", exists=False)

        await orchestrator.start(batch_mode=True)

        flags = [call.args[2] for call in mock_ingestion_service.upload_transcript.await_args_list]
        assert flags == [True, False]

    @pytest.mark.asyncio
    async def test_media_only_and_done_entries_are_not_uploaded(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry
    ) -> None:
        registry.get_or_create("media-only")
        done = _add(registry, "done")
        done.state = EntryState.DONE
        done.upload_id = "old"

        with pytest.raises(NothingToDoError):
            orchestrator.prepare()
        assert not orchestrator.running


# ======================================================================
# Interactive runs
# ======================================================================


class TestInteractiveRun:
    @pytest.mark.asyncio
    async def test_first_failure_halts_run(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        a, b = _add(registry, "a"), _add(registry, "b")
        _fail_uploads_of(mock_ingestion_service, "a.eaf")

        await orchestrator.start(batch_mode=False)

        assert a.state is EntryState.FAILED
        assert b.state is EntryState.QUEUED
        assert mock_ingestion_service.upload_transcript.await_count == 1
        orchestrator.on_run_complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parameter_error_halts_interactive_run(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        a, b = _add(registry, "a"), _add(registry, "b")
        _reject_parameters_of(mock_ingestion_service, "upload-a.eaf")

        await orchestrator.start(batch_mode=False)

        assert a.state is EntryState.FAILED
        assert a.errors == ["Invalid corpus"]
        assert a.upload_id == "upload-a.eaf"
        assert b.state is EntryState.QUEUED
        assert not orchestrator.running
        assert mock_ingestion_service.upload_transcript.await_count == 1
        assert mock_ingestion_service.submit_parameters.await_count == 1
        orchestrator.on_run_complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_known_parameters_only_need_no_review(
        self,
        orchestrator: UploadOrchestrator,
        registry: EntryRegistry,
        gate: ConfirmationGate,
    ) -> None:
        entry = _add(registry, "a")
        reviewed: list[str] = []
        gate.register_listener(lambda entry_id, parameters: reviewed.append(entry_id))

        await orchestrator.start(batch_mode=False)

        assert reviewed == []
        assert entry.state is EntryState.DONE

    @pytest.mark.asyncio
    async def test_unknown_parameter_goes_through_review(
        self,
        orchestrator: UploadOrchestrator,
        registry: EntryRegistry,
        gate: ConfirmationGate,
        mock_ingestion_service,
    ) -> None:
        entry = _add(registry, "a")
        _ask_extra_parameter(mock_ingestion_service)
        gate.register_listener(
            lambda entry_id, parameters: gate.confirm(entry_id, {"orthography": "custom"})
        )

        await orchestrator.start(batch_mode=False)

        _, parameters = mock_ingestion_service.submit_parameters.await_args.args
        assert _value(parameters, "orthography") == "custom"
        assert _value(parameters, "labbcat_corpus") == "CorpusX"
        assert entry.state is EntryState.DONE

    @pytest.mark.asyncio
    async def test_batch_mode_never_reviews(
        self,
        orchestrator: UploadOrchestrator,
        registry: EntryRegistry,
        gate: ConfirmationGate,
        mock_ingestion_service,
    ) -> None:
        _add(registry, "a")
        _ask_extra_parameter(mock_ingestion_service)
        reviewed: list[str] = []
        gate.register_listener(lambda entry_id, parameters: reviewed.append(entry_id))

        await orchestrator.start(batch_mode=True)

        _, parameters = mock_ingestion_service.submit_parameters.await_args.args
        assert _value(parameters, "orthography") == "default"
        assert reviewed == []

    @pytest.mark.asyncio
    async def test_skip_releases_upload_and_continues(
        self,
        orchestrator: UploadOrchestrator,
        registry: EntryRegistry,
        gate: ConfirmationGate,
        mock_ingestion_service,
    ) -> None:
        a, b = _add(registry, "a"), _add(registry, "b")
        _ask_extra_parameter(mock_ingestion_service)

        def review(entry_id: str, parameters: list[Parameter]) -> None:
            if entry_id == "a":
                gate.skip(entry_id)
            else:
                gate.confirm(entry_id)

        gate.register_listener(review)

        await orchestrator.start(batch_mode=False)

        assert a.state is EntryState.SKIPPED
        assert a.upload_id is None
        mock_ingestion_service.cancel_upload.assert_awaited_once_with("upload-a.eaf")
        assert b.state is EntryState.DONE


# ======================================================================
# Cancellation
# ======================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_upload_releases_it(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        a, b = _add(registry, "a"), _add(registry, "b")

        async def _upload(transcript, media, is_update, on_progress=None):
            await orchestrator.cancel()
            return UploadResult(upload_id="u-a", parameters=known_parameters())

        mock_ingestion_service.upload_transcript.side_effect = _upload

        await orchestrator.start(batch_mode=False)

        assert a.state is EntryState.CANCELLED
        assert a.status == "Cancelled."
        assert a.upload_id is None
        mock_ingestion_service.cancel_upload.assert_awaited_once_with("u-a")
        mock_ingestion_service.submit_parameters.assert_not_awaited()
        assert b.state is EntryState.QUEUED

    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_review(
        self,
        orchestrator: UploadOrchestrator,
        registry: EntryRegistry,
        gate: ConfirmationGate,
        mock_ingestion_service,
    ) -> None:
        entry = _add(registry, "a")
        _ask_extra_parameter(mock_ingestion_service)

        async def review(entry_id: str, parameters: list[Parameter]) -> None:
            await orchestrator.cancel()

        gate.register_listener(review)

        await orchestrator.start(batch_mode=False)

        assert entry.state is EntryState.CANCELLED
        mock_ingestion_service.cancel_upload.assert_awaited_once_with("upload-a.eaf")
        assert gate.pending_ids() == []

    @pytest.mark.asyncio
    async def test_second_run_refused_while_running(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry
    ) -> None:
        _add(registry, "a")
        orchestrator.prepare()
        with pytest.raises(OrchestrationError):
            orchestrator.prepare()

    @pytest.mark.asyncio
    async def test_restart_retries_failed_entries(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        entry = _add(registry, "a")
        succeed = mock_ingestion_service.upload_transcript.side_effect
        _fail_uploads_of(mock_ingestion_service, "a.eaf")

        await orchestrator.start(batch_mode=False)
        assert entry.state is EntryState.FAILED

        mock_ingestion_service.upload_transcript.side_effect = succeed
        await orchestrator.start(batch_mode=False)

        assert entry.state is EntryState.DONE
        assert entry.errors == []


# ======================================================================
# Processing
# ======================================================================


class TestProcessing:
    @pytest.mark.asyncio
    async def test_polls_until_tasks_finish(
        self,
        orchestrator: UploadOrchestrator,
        registry: EntryRegistry,
        tracker: ProgressTracker,
        mock_ingestion_service,
    ) -> None:
        entry = _add(registry, "a")
        _process_with(
            mock_ingestion_service,
            TaskStatus(task_id="task1", running=True, percent_complete=40, status="Generating"),
            TaskStatus(task_id="task1", running=True, percent_complete=20, status="Generating"),
            TaskStatus(task_id="task1", running=False, percent_complete=100, status="Finished"),
        )
        progress: list[float] = []

        def record(event: ProgressEvent) -> None:
            if event.entry_id == "a":
                progress.append(event.progress)

        tracker.register_listener(record)

        await orchestrator.start(batch_mode=True)

        assert entry.state is EntryState.PROCESSING
        orchestrator.on_run_complete.assert_not_awaited()

        await orchestrator.wait_for_processing()

        assert entry.state is EntryState.DONE
        assert entry.status == "Finished"
        assert entry.progress == 100.0
        assert entry.processing_handles == {}
        assert progress == sorted(progress)
        assert 70.0 in progress
        orchestrator.on_run_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_task_exception_recorded_on_entry(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        entry = _add(registry, "a")
        _process_with(
            mock_ingestion_service,
            TaskStatus(
                task_id="task1",
                running=False,
                percent_complete=100,
                last_exception="Layer generation failed",
            ),
        )

        await orchestrator.start(batch_mode=True)
        await orchestrator.wait_for_processing()

        assert entry.state is EntryState.DONE
        assert entry.errors == ["Layer generation failed"]

    @pytest.mark.asyncio
    async def test_vanished_task_ends_processing(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        entry = _add(registry, "a")
        _process_with(mock_ingestion_service, None)

        await orchestrator.start(batch_mode=True)
        await orchestrator.wait_for_processing()

        assert entry.state is EntryState.DONE

    @pytest.mark.asyncio
    async def test_repeated_poll_failures_fail_entry(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        entry = _add(registry, "a")
        mock_ingestion_service.submit_parameters = AsyncMock(
            return_value=ParameterResult(processing_handles={"doc1": "task1"})
        )
        mock_ingestion_service.poll_status = AsyncMock(
            side_effect=ProcessingError("unreachable", service_name="task")
        )

        await orchestrator.start(batch_mode=True)
        await orchestrator.wait_for_processing()

        assert entry.state is EntryState.FAILED
        assert entry.errors == ["unreachable"]
        assert mock_ingestion_service.poll_status.await_count == 3
        orchestrator.on_run_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_processing_cancels_remote_tasks(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        entry = _add(registry, "a")
        mock_ingestion_service.submit_parameters = AsyncMock(
            return_value=ParameterResult(processing_handles={"doc1": "task1"})
        )
        mock_ingestion_service.poll_status = AsyncMock(
            return_value=TaskStatus(task_id="task1", running=True, percent_complete=10)
        )

        await orchestrator.start(batch_mode=True)
        assert entry.is_processing

        await orchestrator.cancel_processing("a")

        assert entry.state is EntryState.CANCELLED
        assert not entry.is_processing
        assert entry.processing_handles == {}
        mock_ingestion_service.cancel_task.assert_awaited_once_with("task1")
        orchestrator.on_run_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_processing_guards(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry
    ) -> None:
        _add(registry, "a")
        with pytest.raises(KeyError):
            await orchestrator.cancel_processing("missing")
        with pytest.raises(OrchestrationError):
            await orchestrator.cancel_processing("a")

    @pytest.mark.asyncio
    async def test_run_cancel_leaves_processing_by_default(
        self, orchestrator: UploadOrchestrator, registry: EntryRegistry, mock_ingestion_service
    ) -> None:
        entry = _add(registry, "a")
        mock_ingestion_service.submit_parameters = AsyncMock(
            return_value=ParameterResult(processing_handles={"doc1": "task1"})
        )
        mock_ingestion_service.poll_status = AsyncMock(
            return_value=TaskStatus(task_id="task1", running=True)
        )

        await orchestrator.start(batch_mode=True)
        await orchestrator.cancel()

        assert entry.is_processing
        await orchestrator.shutdown()
        assert not entry.is_processing
        mock_ingestion_service.cancel_task.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_cancel_can_stop_processing(
        self,
        orchestrator: UploadOrchestrator,
        registry: EntryRegistry,
        settings: Settings,
        mock_ingestion_service,
    ) -> None:
        settings.cancel_stops_processing = True
        entry = _add(registry, "a")
        mock_ingestion_service.submit_parameters = AsyncMock(
            return_value=ParameterResult(processing_handles={"doc1": "task1"})
        )
        mock_ingestion_service.poll_status = AsyncMock(
            return_value=TaskStatus(task_id="task1", running=True)
        )

        await orchestrator.start(batch_mode=True)
        await orchestrator.cancel()

        assert entry.state is EntryState.CANCELLED
        assert not entry.is_processing
        orchestrator.on_run_complete.assert_awaited_once()
