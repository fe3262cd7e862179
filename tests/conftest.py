"""Shared pytest fixtures for the transcript-uploader test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from transcript_uploader.config.settings import Settings
from transcript_uploader.interfaces.ingestion_service import IIngestionService
from transcript_uploader.models.entry import FileRef
from transcript_uploader.models.service import (
    FormatDescriptor,
    MediaTrack,
    Parameter,
    ParameterResult,
    ServerVocabulary,
    UploadResult,
)
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.pipeline.session import UploadSession

CORPORA = ["CorpusX", "Other"]
TRANSCRIPT_TYPES = ["interview", "reading"]
TRACKS = [
    MediaTrack(suffix="", description="Audio"),
    MediaTrack(suffix="_video", description="Video"),
]
DESCRIPTORS = [
    FormatDescriptor(name="ELAN", mimeType="text/x-eaf+xml", fileSuffixes=["eaf"]),
    FormatDescriptor(name="Transcriber", mimeType="text/xml", fileSuffixes=[".trs"]),
    FormatDescriptor(name="CSV", mimeType="text/csv", fileSuffixes=["csv"]),
]


def known_parameters() -> list[Parameter]:
    """Parameters the service asks for on every upload."""
    return [
        Parameter(name="labbcat_corpus", label="Corpus"),
        Parameter(name="labbcat_episode", label="Episode"),
        Parameter(name="labbcat_transcript_type", label="Type"),
        Parameter(name="labbcat_generate", label="Generate layers", type="Boolean", value=False),
    ]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with instant polling and no .env file."""
    return Settings(
        _env_file=None,
        service_url="http://corpus.test/labbcat/",
        poll_interval_seconds=0.0,
        poll_max_failures=3,
        batch_mode=False,
    )


@pytest.fixture
def vocabulary() -> ServerVocabulary:
    return ServerVocabulary.from_descriptors(CORPORA, TRANSCRIPT_TYPES, TRACKS, DESCRIPTORS)


# ---------------------------------------------------------------------------
# Ingestion service mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_ingestion_service() -> MagicMock:
    """IIngestionService mock: nothing exists, uploads need no extra input."""
    service = MagicMock(spec=IIngestionService)
    service.list_valid_corpora = AsyncMock(return_value=list(CORPORA))
    service.list_valid_transcript_types = AsyncMock(return_value=list(TRANSCRIPT_TYPES))
    service.list_tracks = AsyncMock(return_value=list(TRACKS))
    service.list_deserializers = AsyncMock(return_value=list(DESCRIPTORS))
    service.check_transcript_exists = AsyncMock(return_value=None)

    async def _upload(transcript: FileRef, media: Any, is_update: bool, on_progress=None):
        if on_progress is not None:
            on_progress(100, 100)
        return UploadResult(
            upload_id=f"upload-{transcript.name}",
            parameters=known_parameters(),
            messages=[],
        )

    service.upload_transcript = AsyncMock(side_effect=_upload)
    service.submit_parameters = AsyncMock(
        return_value=ParameterResult(processing_handles={}, messages=[])
    )
    service.cancel_upload = AsyncMock(return_value=None)
    service.poll_status = AsyncMock(return_value=None)
    service.cancel_task = AsyncMock(return_value=None)
    service.delete_transcript = AsyncMock(return_value=["Deleted"])
    service.close = AsyncMock(return_value=None)
    return service


# ---------------------------------------------------------------------------
# Registry / session
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> EntryRegistry:
    return EntryRegistry()


@pytest.fixture
def session(
    settings: Settings,
    mock_ingestion_service: MagicMock,
    vocabulary: ServerVocabulary,
) -> UploadSession:
    """Session around the mock service with the vocabulary already loaded."""
    upload_session = UploadSession(settings, mock_ingestion_service)
    upload_session.vocabulary = vocabulary
    upload_session.classifier.vocabulary = vocabulary
    return upload_session


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[[str], Path]:
    """Create a small file at a path relative to ``tmp_path``."""

    def _make(relative: str, content: bytes = b"data") -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _make


def file_ref(name: str, media_type: str | None = None) -> FileRef:
    """A FileRef for a file that need not exist on disk."""
    return FileRef(path=Path("/nonexistent") / name, name=name, media_type=media_type)
