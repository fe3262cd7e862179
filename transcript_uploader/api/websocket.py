"""WebSocket endpoint for real-time entry progress.

Connects a client to the session's ``ProgressTracker``.  On connect the
client receives one snapshot message with every entry's current state;
after that each :class:`ProgressEvent` is pushed as JSON::

    {"kind": "entry", "entry_id": "interview1", "state": "PROCESSING",
     "progress": 72.5, "status": "Generating layers...", "errors": []}
    {"kind": "run_complete", "operation": "upload", ...}

The receive loop only keeps the connection open; pushes happen from the
tracker listener.
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from transcript_uploader.pipeline.progress_tracker import ProgressEvent
from transcript_uploader.pipeline.session import UploadSession
from transcript_uploader.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_progress(websocket: WebSocket) -> None:
    """Stream progress events to the client until it disconnects."""
    session: UploadSession = websocket.app.state.session
    tracker = session.tracker

    await websocket.accept()
    _logger.info("websocket_connected")

    async def _on_progress(event: ProgressEvent) -> None:
        # The socket may close between events; cleanup happens in ``finally``.
        with contextlib.suppress(Exception):
            await websocket.send_json(event.model_dump(mode="json"))

    tracker.register_listener(_on_progress)
    try:
        await websocket.send_json({"kind": "snapshot", "entries": tracker.snapshot()})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        _logger.info("websocket_disconnected")
    finally:
        tracker.unregister_listener(_on_progress)
