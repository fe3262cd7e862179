"""HTTP adapter for the corpus-management service's ingestion API.

Every response is a JSON envelope::

    {"title": ..., "version": ..., "code": 0,
     "errors": [...], "messages": [...], "model": ...}

A non-empty ``errors`` array (or an HTTP error status) means the call
failed; ``messages`` carry human-readable progress text that the
orchestrators copy into an entry's status.  Transport failures are
reported as :class:`ServiceUnavailableError`.

Endpoints used (relative to the service base URL):

    GET    api/store/getLayer?id=corpus|transcript_type
    GET    api/store/getMediaTracks
    GET    api/store/getDeserializerDescriptors
    GET    api/store/getTranscript?id=...&layerIds=...
    POST   api/edit/transcript/upload            (multipart)
    PUT    api/edit/transcript/upload/{id}       (form fields)
    DELETE api/edit/transcript/upload/{id}
    GET    api/task/{id}
    DELETE api/task/{id}?cancel=true
    POST   api/edit/store/deleteTranscript

Follows the same adapter pattern as the other providers: an injected
``httpx.AsyncClient`` (see :func:`build_http_client`) and typed Pydantic
results.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import ExitStack
from typing import Any

import httpx

from transcript_uploader.config.settings import Settings
from transcript_uploader.interfaces.ingestion_service import (
    IIngestionService,
    UploadProgressCallback,
)
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
from transcript_uploader.utils.errors import (
    DeleteError,
    ParameterError,
    ProcessingError,
    ServiceUnavailableError,
    UploaderError,
    UploadError,
)
from transcript_uploader.utils.logging import get_logger

_USER_AGENT = "transcript-uploader/0.1.0"
_EXISTENCE_LAYERS = ("corpus", "episode", "transcript_type")


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared ``httpx.AsyncClient`` for the configured service."""
    auth = None
    if settings.has_credentials():
        auth = httpx.BasicAuth(settings.service_username, settings.service_password)
    base_url = settings.service_url
    if not base_url.endswith("/"):
        base_url += "/"
    return httpx.AsyncClient(
        base_url=base_url,
        auth=auth,
        timeout=settings.request_timeout_seconds,
        headers={"Accept": "application/json", "User-Agent": _USER_AGENT},
        follow_redirects=True,
    )


class _ProgressStream(httpx.AsyncByteStream):
    """Wraps a request body stream, reporting bytes sent after each chunk."""

    def __init__(
        self,
        stream: httpx.AsyncByteStream,
        total: int,
        callback: UploadProgressCallback,
    ) -> None:
        self._stream = stream
        self._total = total
        self._callback = callback

    async def __aiter__(self) -> AsyncIterator[bytes]:
        sent = 0
        async for chunk in self._stream:
            sent += len(chunk)
            self._callback(sent, self._total)
            yield chunk


class HttpIngestionProvider(IIngestionService):
    """Talks to the ingestion service over its JSON/HTTP API.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` whose ``base_url`` points at the
        service root.
    """

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _send(
        self, request: httpx.Request, service_name: str
    ) -> httpx.Response:
        try:
            return await self._http.send(request)
        except httpx.HTTPError as exc:
            self._logger.warning(
                "service_request_failed",
                service=service_name,
                url=str(request.url),
                error=str(exc),
            )
            raise ServiceUnavailableError(
                message=f"{request.method} {request.url.path} failed: {exc}",
                service_name=service_name,
            ) from exc

    def _unwrap(
        self,
        response: httpx.Response,
        error_cls: type[UploaderError],
        service_name: str,
    ) -> tuple[Any, list[str]]:
        """Return ``(model, messages)`` from an envelope, raising on errors."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            if response.is_error:
                raise error_cls(
                    message=f"HTTP {response.status_code}", service_name=service_name
                )
            raise ServiceUnavailableError(
                message=f"Unexpected response from {response.request.url.path}",
                service_name=service_name,
            )

        errors = [str(e) for e in body.get("errors") or []]
        messages = [str(m) for m in body.get("messages") or []]
        if errors or response.is_error:
            raise error_cls(
                message="\n".join(errors) or f"HTTP {response.status_code}",
                service_name=service_name,
            )
        return body.get("model"), messages

    async def _get_model(
        self,
        path: str,
        params: Any = None,
        error_cls: type[UploaderError] = ServiceUnavailableError,
        service_name: str = "store",
    ) -> Any:
        request = self._http.build_request("GET", path, params=params)
        response = await self._send(request, service_name)
        model, _ = self._unwrap(response, error_cls, service_name)
        return model

    @staticmethod
    def _first_label(model: dict[str, Any], layer_id: str) -> str | None:
        annotations = model.get(layer_id) or []
        if isinstance(annotations, dict):
            annotations = [annotations]
        for annotation in annotations:
            if isinstance(annotation, dict) and annotation.get("label") is not None:
                return str(annotation["label"])
        return None

    @staticmethod
    def _parse_task(task_id: str, model: dict[str, Any]) -> TaskStatus:
        return TaskStatus(
            task_id=str(model.get("threadId", task_id)),
            running=bool(model.get("running", False)),
            percent_complete=float(model.get("percentComplete") or 0),
            status=str(model.get("status") or ""),
            last_exception=model.get("lastException") or None,
        )

    # ------------------------------------------------------------------
    # Vocabulary
    # ------------------------------------------------------------------

    async def _valid_labels(self, layer_id: str) -> list[str]:
        model = await self._get_model("api/store/getLayer", params={"id": layer_id})
        return list((model or {}).get("validLabels") or {})

    async def list_valid_corpora(self) -> list[str]:
        return await self._valid_labels("corpus")

    async def list_valid_transcript_types(self) -> list[str]:
        return await self._valid_labels("transcript_type")

    async def list_tracks(self) -> list[MediaTrack]:
        model = await self._get_model("api/store/getMediaTracks")
        return [
            MediaTrack(
                suffix=str(track.get("suffix") or ""),
                description=str(track.get("description") or ""),
            )
            for track in model or []
        ]

    async def list_deserializers(self) -> list[FormatDescriptor]:
        model = await self._get_model("api/store/getDeserializerDescriptors")
        return [FormatDescriptor.model_validate(d) for d in model or []]

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def check_transcript_exists(self, transcript_id: str) -> RemoteTranscript | None:
        params = [("id", transcript_id)] + [("layerIds", layer) for layer in _EXISTENCE_LAYERS]
        request = self._http.build_request("GET", "api/store/getTranscript", params=params)
        response = await self._send(request, "store")
        if response.status_code == 404:
            return None
        try:
            model, _ = self._unwrap(response, UploaderError, "store")
        except ServiceUnavailableError:
            raise
        except UploaderError:
            return None
        if not isinstance(model, dict):
            return None
        return RemoteTranscript(
            id=str(model.get("id") or transcript_id),
            corpus=self._first_label(model, "corpus"),
            episode=self._first_label(model, "episode"),
            transcript_type=self._first_label(model, "transcript_type"),
        )

    async def upload_transcript(
        self,
        transcript: FileRef,
        media: dict[str, list[FileRef]],
        is_update: bool,
        on_progress: UploadProgressCallback | None = None,
    ) -> UploadResult:
        data = {"merge": "true"} if is_update else None
        with ExitStack() as stack:
            files: list[tuple[str, tuple[str, Any, str]]] = [
                (
                    "transcript",
                    (
                        transcript.name,
                        stack.enter_context(open(transcript.path, "rb")),
                        transcript.media_type or "application/octet-stream",
                    ),
                )
            ]
            for track_suffix, track_files in media.items():
                for file in track_files:
                    files.append(
                        (
                            f"media{track_suffix}",
                            (
                                file.name,
                                stack.enter_context(open(file.path, "rb")),
                                file.media_type or "application/octet-stream",
                            ),
                        )
                    )

            request = self._http.build_request(
                "POST", "api/edit/transcript/upload", data=data, files=files
            )
            if on_progress is not None:
                total = int(request.headers.get("Content-Length") or 0)
                request.stream = _ProgressStream(request.stream, total, on_progress)

            self._logger.debug(
                "upload_request",
                transcript=transcript.name,
                media=sum(len(f) for f in media.values()),
                merge=is_update,
            )
            response = await self._send(request, "upload")

        model, messages = self._unwrap(response, UploadError, "upload")
        if not isinstance(model, dict) or not model.get("id"):
            raise UploadError(message="Upload response has no upload id", service_name="upload")
        return UploadResult(
            upload_id=str(model["id"]),
            parameters=[Parameter.model_validate(p) for p in model.get("parameters") or []],
            messages=messages,
        )

    async def submit_parameters(
        self, upload_id: str, parameters: list[Parameter]
    ) -> ParameterResult:
        data = {p.name: p.value_text() for p in parameters}
        request = self._http.build_request(
            "PUT", f"api/edit/transcript/upload/{upload_id}", data=data
        )
        response = await self._send(request, "upload")
        model, messages = self._unwrap(response, ParameterError, "upload")
        model = model if isinstance(model, dict) else {}
        remaining = model.get("parameters")
        return ParameterResult(
            upload_id=model.get("id") or upload_id,
            processing_handles={
                str(document_id): str(task_id)
                for document_id, task_id in (model.get("transcripts") or {}).items()
            },
            parameters=(
                [Parameter.model_validate(p) for p in remaining] if remaining else None
            ),
            messages=messages,
        )

    async def cancel_upload(self, upload_id: str) -> None:
        request = self._http.build_request("DELETE", f"api/edit/transcript/upload/{upload_id}")
        response = await self._send(request, "upload")
        self._unwrap(response, UploadError, "upload")

    async def poll_status(self, task_id: str) -> TaskStatus | None:
        request = self._http.build_request(
            "GET", f"api/task/{task_id}", params={"keepalive": "true"}
        )
        response = await self._send(request, "task")
        if response.status_code == 404:
            return None
        model, _ = self._unwrap(response, ProcessingError, "task")
        if not isinstance(model, dict):
            return None
        return self._parse_task(task_id, model)

    async def cancel_task(self, task_id: str) -> TaskStatus | None:
        request = self._http.build_request(
            "DELETE", f"api/task/{task_id}", params={"cancel": "true"}
        )
        response = await self._send(request, "task")
        if response.status_code == 404:
            return None
        model, _ = self._unwrap(response, ProcessingError, "task")
        return self._parse_task(task_id, model) if isinstance(model, dict) else None

    async def delete_transcript(self, transcript_id: str) -> list[str]:
        request = self._http.build_request(
            "POST", "api/edit/store/deleteTranscript", data={"id": transcript_id}
        )
        response = await self._send(request, "store")
        _, messages = self._unwrap(response, DeleteError, "store")
        return messages

    async def close(self) -> None:
        await self._http.aclose()
