"""Looks up whether entries' transcripts already exist on the service.

Existing transcripts are uploaded as updates (merged) rather than as new
documents, and only existing transcripts can be deleted.  The lookup also
returns where the transcript is filed, which overrides whatever was
inferred from the local directory layout.

A failed lookup is treated as "does not exist": the user can still upload
the entry, and the service will reject a clash itself.
"""

from __future__ import annotations

from collections.abc import Iterable

from transcript_uploader.interfaces.ingestion_service import IIngestionService
from transcript_uploader.models.entry import Entry
from transcript_uploader.utils.concurrency import throttled_gather
from transcript_uploader.utils.errors import UploaderError
from transcript_uploader.utils.logging import get_logger

ALREADY_EXISTS_STATUS = "Already exists"


class ExistenceResolver:
    """Fills in ``Entry.exists`` from the remote service."""

    def __init__(self, service: IIngestionService, concurrency: int = 4) -> None:
        self._service = service
        self._concurrency = max(1, concurrency)
        self._logger = get_logger(__name__)

    async def resolve(self, entry: Entry) -> bool | None:
        """Check one entry; returns the new ``exists`` value.

        Entries without a transcript are left untouched and return ``None``.
        """
        if not entry.transcript_id:
            return None
        try:
            remote = await self._service.check_transcript_exists(entry.transcript_id)
        except UploaderError as exc:
            self._logger.debug(
                "existence_check_failed",
                entry_id=entry.id,
                transcript_id=entry.transcript_id,
                error=str(exc),
            )
            remote = None

        if remote is None:
            entry.exists = False
            return False

        entry.exists = True
        entry.corpus = remote.corpus
        entry.episode = remote.episode
        entry.transcript_type = remote.transcript_type
        entry.status = ALREADY_EXISTS_STATUS
        self._logger.debug(
            "transcript_exists",
            entry_id=entry.id,
            corpus=remote.corpus,
            episode=remote.episode,
        )
        return True

    async def resolve_pending(self, entries: Iterable[Entry]) -> int:
        """Check every entry with a transcript whose existence is unknown.

        Returns
        -------
        int
            Number of entries found to exist already.
        """
        pending = [e for e in entries if e.has_transcript and e.exists is None]
        if not pending:
            return 0
        results = await throttled_gather(
            [self.resolve(entry) for entry in pending],
            limit=self._concurrency,
        )
        existing = sum(1 for result in results if result is True)
        self._logger.info("existence_checked", checked=len(pending), existing=existing)
        return existing
