"""Confirmation gate for the upload run's parameter-review pause point.

In interactive mode, after an entry has been uploaded the service may ask
for parameters the uploader cannot fill in by itself.  The run then pauses
on that entry until the user confirms the values, skips the entry, or
cancels the run.

    upload ──→ PAUSE (user reviews parameters) ──→ submit parameters
                    ↑
             ConfirmationGate

The orchestrator awaits :meth:`ConfirmationGate.wait_for_review`; the API
or the CLI resolves the wait with :meth:`confirm`, :meth:`skip` or
:meth:`cancel`.  Listeners registered with :meth:`register_listener` are
told whenever an entry starts waiting, which is how the CLI knows when to
prompt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from transcript_uploader.models.service import Parameter
from transcript_uploader.utils.logging import get_logger


class ReviewDecision(str, Enum):  # noqa: UP042
    CONFIRMED = "confirmed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReviewOutcome:
    """How a parameter review ended, with the user's values when confirmed."""

    decision: ReviewDecision
    values: dict[str, Any] = field(default_factory=dict)


@dataclass
class _PendingReview:
    parameters: list[Parameter]
    future: asyncio.Future


class ConfirmationGate:
    """Holds entries whose parameters are awaiting user review."""

    def __init__(self) -> None:
        self._pending: dict[str, _PendingReview] = {}
        self._listeners: list[Callable] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Orchestrator side
    # ------------------------------------------------------------------

    async def wait_for_review(
        self, entry_id: str, parameters: list[Parameter]
    ) -> ReviewOutcome:
        """Pause until the user confirms, skips or cancels *entry_id*.

        Parameters
        ----------
        entry_id:
            The entry whose parameters need review.
        parameters:
            The parameters as pre-filled by the uploader.

        Returns
        -------
        ReviewOutcome
            The user's decision.
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[entry_id] = _PendingReview(parameters=parameters, future=future)
        self._logger.info(
            "parameters_awaiting_review",
            entry_id=entry_id,
            parameters=len(parameters),
        )
        await self._notify_listeners(entry_id, parameters)
        try:
            return await future
        finally:
            pending = self._pending.get(entry_id)
            if pending is not None and pending.future is future:
                del self._pending[entry_id]

    # ------------------------------------------------------------------
    # User side
    # ------------------------------------------------------------------

    def get_pending(self, entry_id: str) -> list[Parameter] | None:
        pending = self._pending.get(entry_id)
        return pending.parameters if pending is not None else None

    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def confirm(self, entry_id: str, values: dict[str, Any] | None = None) -> None:
        """Resume the run for *entry_id* with the user's parameter values.

        Raises
        ------
        KeyError
            If *entry_id* is not waiting for review.
        """
        self._resolve(entry_id, ReviewOutcome(ReviewDecision.CONFIRMED, dict(values or {})))
        self._logger.info("parameters_confirmed", entry_id=entry_id)

    def skip(self, entry_id: str) -> None:
        """Resume the run, leaving *entry_id* out of it.

        Raises
        ------
        KeyError
            If *entry_id* is not waiting for review.
        """
        self._resolve(entry_id, ReviewOutcome(ReviewDecision.SKIPPED))
        self._logger.info("entry_skipped", entry_id=entry_id)

    def cancel(self, entry_id: str) -> bool:
        """Release a waiting entry as cancelled; ``False`` if it was not waiting."""
        try:
            self._resolve(entry_id, ReviewOutcome(ReviewDecision.CANCELLED))
        except KeyError:
            return False
        self._logger.info("review_cancelled", entry_id=entry_id)
        return True

    def cancel_all(self) -> int:
        return sum(1 for entry_id in list(self._pending) if self.cancel(entry_id))

    def register_listener(self, callback: Callable) -> None:
        """Register an async or sync ``callback(entry_id, parameters)``."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unregister_listener(self, callback: Callable) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolve(self, entry_id: str, outcome: ReviewOutcome) -> None:
        pending = self._pending.get(entry_id)
        if pending is None or pending.future.done():
            raise KeyError(f"No parameters awaiting review for: {entry_id}")
        pending.future.set_result(outcome)

    async def _notify_listeners(self, entry_id: str, parameters: list[Parameter]) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(entry_id, parameters)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "review_listener_error",
                    entry_id=entry_id,
                    error=str(exc),
                )
