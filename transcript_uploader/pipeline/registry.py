"""Ordered, de-duplicating registry of upload entries.

The registry is the single shared collection the classifier fills and the
orchestrators walk.  Entries are keyed by id (the extension-stripped file
name) so that a transcript and its media, dropped together or separately,
land in the same entry.  Iteration order is insertion order; orchestrators
rely on it to pick "the first eligible entry" on every step.

Only the event-loop thread touches the registry, so no locking is needed;
mutations that would race with an in-flight operation are refused with
:class:`EntryBusyError` instead.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

from transcript_uploader.models.entry import Entry
from transcript_uploader.models.service import ServerVocabulary
from transcript_uploader.utils.errors import EntryBusyError
from transcript_uploader.utils.logging import get_logger


class EntryRegistry:
    """Insertion-ordered mapping of entry id to :class:`Entry`."""

    def __init__(self) -> None:
        self._entries: dict[str, Entry] = {}
        self._logger = get_logger(__name__)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def entries(self) -> list[Entry]:
        return list(self._entries.values())

    def get(self, entry_id: str) -> Entry | None:
        return self._entries.get(entry_id)

    def get_or_create(
        self, entry_id: str, vocabulary: ServerVocabulary | None = None
    ) -> tuple[Entry, bool]:
        """Return the entry for *entry_id*, creating it with defaults if needed.

        Returns
        -------
        tuple[Entry, bool]
            The entry and whether it was newly created.
        """
        entry = self._entries.get(entry_id)
        if entry is not None:
            return entry, False
        vocabulary = vocabulary or ServerVocabulary()
        entry = Entry(
            id=entry_id,
            corpus=vocabulary.default_corpus,
            transcript_type=vocabulary.default_transcript_type,
            episode=entry_id,
        )
        self._entries[entry_id] = entry
        self._logger.debug("entry_created", entry_id=entry_id)
        return entry, True

    def find(self, predicate: Callable[[Entry], bool]) -> Entry | None:
        """Return the first entry (in insertion order) matching *predicate*."""
        for entry in self._entries.values():
            if predicate(entry):
                return entry
        return None

    def remove(self, entry_id: str) -> Entry:
        """Remove and return an entry.

        Raises
        ------
        KeyError
            If there is no such entry.
        EntryBusyError
            If the entry has an upload or deletion in flight.
        """
        entry = self._entries[entry_id]
        if entry.active_operation is not None:
            raise EntryBusyError(f"{entry_id} cannot be removed while busy")
        del self._entries[entry_id]
        self._logger.info("entry_removed", entry_id=entry_id)
        return entry

    def clear(self, existing: bool = True, new: bool = True) -> int:
        """Remove existing and/or new entries, keeping any that are busy.

        Parameters
        ----------
        existing:
            Remove entries whose transcript already exists remotely.
        new:
            Remove entries whose transcript does not (or is not known to) exist.

        Returns
        -------
        int
            Number of entries removed.
        """
        keep: dict[str, Entry] = {}
        for entry_id, entry in self._entries.items():
            is_existing = entry.exists is True
            doomed = (existing and is_existing) or (new and not is_existing)
            if not doomed or entry.active_operation is not None:
                keep[entry_id] = entry
        removed = len(self._entries) - len(keep)
        self._entries = keep
        self._logger.info("entries_cleared", removed=removed, remaining=len(keep))
        return removed

    def update_metadata(
        self,
        entry_id: str,
        corpus: str | None = None,
        episode: str | None = None,
        transcript_type: str | None = None,
    ) -> Entry:
        """Apply user edits to an entry's structural metadata.

        Raises
        ------
        KeyError
            If there is no such entry.
        EntryBusyError
            If an upload or deletion of the entry is in flight, or the
            entry already has a server-side upload.
        """
        entry = self._entries[entry_id]
        if entry.is_locked:
            raise EntryBusyError(f"{entry_id} cannot be edited while busy")
        if corpus is not None:
            entry.corpus = corpus
        if episode is not None:
            entry.episode = episode
        if transcript_type is not None:
            entry.transcript_type = transcript_type
        return entry

    @property
    def has_existing(self) -> bool:
        return any(e.exists is True for e in self._entries.values())

    @property
    def has_new(self) -> bool:
        return any(e.exists is not True for e in self._entries.values())
