"""Entry progress tracking with callback-based listener notification.

Keeps the latest ``(state, progress, status)`` snapshot of every entry and
broadcasts each change to registered listeners.  The orchestrators report
through it; the WebSocket endpoint and the CLI's progress printer listen.

    Orchestrator ──update()──→ ProgressTracker ──callback(event)──→ WebSocket handler
                                                                 ──→ CLI printer

Listener errors are caught and logged so one broken listener cannot stall
a run or starve the others.  Both sync and async callbacks are supported.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

import structlog
from pydantic import BaseModel, ConfigDict

from transcript_uploader.models.entry import Entry, EntryState
from transcript_uploader.utils.logging import get_logger


class ProgressEvent(BaseModel):
    """One notification pushed to listeners."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["entry", "run_complete"] = "entry"
    entry_id: str | None = None
    state: EntryState | None = None
    progress: float = 0.0
    status: str = ""
    errors: tuple[str, ...] = ()
    # Set on run_complete events: "upload" or "delete".
    operation: str | None = None


@dataclass
class _EntryStatus:
    """Internal snapshot of a single entry's progress."""

    state: EntryState = EntryState.QUEUED
    progress: float = 0.0
    status: str = ""


class ProgressTracker:
    """Tracks and broadcasts entry progress via callbacks."""

    def __init__(self) -> None:
        self._statuses: dict[str, _EntryStatus] = {}
        self._listeners: list[Callable] = []
        # Notifications scheduled from sync code; kept so they are not GC'd.
        self._pending: set[asyncio.Task] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(self, entry: Entry) -> None:
        """Record *entry*'s current state and notify all listeners."""
        event = self._record(entry)
        await self._notify_listeners(event)

    def update_nowait(self, entry: Entry) -> None:
        """Record *entry*'s state from sync code, notifying listeners in a task.

        Used by byte-level upload progress callbacks, which run inside the
        HTTP client's body stream and cannot await.
        """
        event = self._record(entry, log=False)
        if not self._listeners:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._notify_listeners(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def run_complete(self, operation: str) -> None:
        """Tell listeners that a batch run has finished."""
        self._logger.info("run_complete", operation=operation)
        await self._notify_listeners(ProgressEvent(kind="run_complete", operation=operation))

    def register_listener(self, callback: Callable) -> None:
        """Register a callback to receive every :class:`ProgressEvent`.

        Parameters
        ----------
        callback:
            An async or sync callable accepting one ``ProgressEvent``.
        """
        if callback not in self._listeners:
            self._listeners.append(callback)
            self._logger.debug("listener_registered", total_listeners=len(self._listeners))

    def unregister_listener(self, callback: Callable) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered", remaining_listeners=len(self._listeners)
            )

    def get_status(self, entry_id: str) -> dict:
        """Return the last recorded state, progress and status of an entry.

        Returns
        -------
        dict
            Keys: ``state`` (:class:`str`), ``progress`` (:class:`float`),
            ``status`` (:class:`str`).  Zeroed defaults for unknown entries.
        """
        status = self._statuses.get(entry_id) or _EntryStatus()
        return {
            "state": status.state.value,
            "progress": status.progress,
            "status": status.status,
        }

    def snapshot(self) -> dict[str, dict]:
        return {entry_id: self.get_status(entry_id) for entry_id in self._statuses}

    def forget(self, entry_id: str) -> None:
        self._statuses.pop(entry_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _record(self, entry: Entry, log: bool = True) -> ProgressEvent:
        self._statuses[entry.id] = _EntryStatus(
            state=entry.state,
            progress=entry.progress,
            status=entry.status,
        )
        if log:
            self._logger.debug(
                "progress_update",
                entry_id=entry.id,
                state=entry.state.value,
                progress=round(entry.progress, 1),
                status=entry.status,
            )
        return ProgressEvent(
            entry_id=entry.id,
            state=entry.state,
            progress=entry.progress,
            status=entry.status,
            errors=tuple(entry.errors),
        )

    async def _notify_listeners(self, event: ProgressEvent) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    entry_id=event.entry_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
