"""End-to-end session flow against a fake ingestion service over httpx.MockTransport.

Exercises the real HTTP provider, classifier, existence resolver and both
orchestrators together; only the remote service is simulated.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from transcript_uploader.config.settings import Settings
from transcript_uploader.models.entry import EntryState
from transcript_uploader.pipeline.session import UploadSession
from transcript_uploader.providers.ingestion.http_ingestion_provider import (
    HttpIngestionProvider,
)


class FakeCorpusService:
    """Minimal in-memory stand-in for the service's JSON API."""

    def __init__(self) -> None:
        self.transcripts: dict[str, dict] = {}
        self.requests: list[str] = []
        self.polls = 0
        self.submitted: dict[str, str] = {}

    @staticmethod
    def _ok(model=None, messages=None, status: int = 200) -> httpx.Response:
        return httpx.Response(
            status,
            json={"code": 0, "errors": [], "messages": messages or [], "model": model},
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/labbcat/")
        self.requests.append(f"{request.method} {path}")

        if path == "api/store/getLayer":
            labels = {"corpus": ["CorpusX", "Other"], "transcript_type": ["interview"]}
            return self._ok({"validLabels": dict.fromkeys(labels[request.url.params["id"]], "")})
        if path == "api/store/getMediaTracks":
            return self._ok([{"suffix": "", "description": "Audio"}])
        if path == "api/store/getDeserializerDescriptors":
            return self._ok([{"name": "ELAN", "fileSuffixes": ["eaf"]}])
        if path == "api/store/getTranscript":
            transcript = self.transcripts.get(request.url.params["id"])
            if transcript is None:
                return httpx.Response(404)
            return self._ok(transcript)
        if path == "api/edit/transcript/upload" and request.method == "POST":
            return self._ok(
                {
                    "id": "u1",
                    "parameters": [
                        {"name": "labbcat_corpus"},
                        {"name": "labbcat_episode"},
                        {"name": "labbcat_transcript_type"},
                        {"name": "labbcat_generate", "type": "Boolean"},
                    ],
                }
            )
        if path == "api/edit/transcript/upload/u1" and request.method == "PUT":
            form = dict(httpx.QueryParams(request.content.decode()))
            self.submitted = form
            self.transcripts["file1.eaf"] = {
                "id": "file1.eaf",
                "corpus": [{"label": form["labbcat_corpus"]}],
                "episode": [{"label": form["labbcat_episode"]}],
            }
            return self._ok({"id": "u1", "transcripts": {"file1.eaf": "7"}})
        if path == "api/task/7":
            self.polls += 1
            running = self.polls < 2
            return self._ok(
                {
                    "threadId": "7",
                    "running": running,
                    "percentComplete": 50 if running else 100,
                    "status": "Generating layers" if running else "Finished",
                }
            )
        if path == "api/edit/store/deleteTranscript":
            transcript_id = dict(httpx.QueryParams(request.content.decode()))["id"]
            self.transcripts.pop(transcript_id, None)
            return self._ok(messages=[f"Deleted: {transcript_id}"])
        return httpx.Response(404)


@pytest.fixture
def fake_service() -> FakeCorpusService:
    return FakeCorpusService()


@pytest.fixture
def http_session(settings: Settings, fake_service: FakeCorpusService) -> UploadSession:
    client = httpx.AsyncClient(
        base_url="http://corpus.test/labbcat/", transport=httpx.MockTransport(fake_service)
    )
    return UploadSession(settings, HttpIngestionProvider(client))


@pytest.mark.asyncio
async def test_upload_then_delete(
    http_session: UploadSession,
    fake_service: FakeCorpusService,
    make_file,
    tmp_path: Path,
) -> None:
    make_file("Other/ep1/trs/file1.eaf", b"<ANNOTATION_DOCUMENT/>")
    make_file("Other/ep1/file1.wav", b"RIFF")
    make_file("Other/ep1/notes.txt", b"ignored")

    vocabulary = await http_session.load_vocabulary()
    assert vocabulary.corpora == ("CorpusX", "Other")

    entries = await http_session.add_paths([tmp_path / "Other"])
    assert [e.id for e in entries] == ["file1"]
    entry = entries[0]
    assert entry.exists is False
    assert (entry.corpus, entry.episode) == ("Other", "ep1")
    assert entry.media_file_names() == ["file1.wav"]

    await http_session.upload(batch_mode=True)

    assert entry.state is EntryState.DONE
    assert entry.status == "Finished"
    assert entry.exists is True
    assert fake_service.submitted["labbcat_corpus"] == "Other"
    assert fake_service.submitted["labbcat_episode"] == "ep1"
    assert fake_service.submitted["labbcat_generate"] == "true"
    assert fake_service.polls == 2
    protocol = [r for r in fake_service.requests if "store/get" not in r]
    assert protocol == [
        "POST api/edit/transcript/upload",
        "PUT api/edit/transcript/upload/u1",
        "GET api/task/7",
        "GET api/task/7",
    ]
    assert "labbcat_corpus=Other" in http_session.report()

    await http_session.delete()

    assert entry.state is EntryState.DELETED
    assert entry.exists is False
    assert entry.status == "Deleted"
    assert "file1.eaf" not in fake_service.transcripts

    await http_session.close()


@pytest.mark.asyncio
async def test_existing_transcript_metadata_comes_from_service(
    http_session: UploadSession,
    fake_service: FakeCorpusService,
    make_file,
) -> None:
    fake_service.transcripts["file1.eaf"] = {
        "id": "file1.eaf",
        "corpus": [{"label": "CorpusX"}],
        "episode": [{"label": "remote-episode"}],
        "transcript_type": [{"label": "interview"}],
    }
    transcript = make_file("Other/file1.eaf")

    await http_session.load_vocabulary()
    entries = await http_session.add_paths([transcript])

    assert entries[0].exists is True
    assert entries[0].corpus == "CorpusX"
    assert entries[0].episode == "remote-episode"
    await http_session.close()
