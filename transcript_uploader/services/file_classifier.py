"""Expands dropped paths into files and sorts each file into an entry.

A "drop" is whatever the user hands over in one go: individual files,
whole directory trees, or a mix.  Directories are walked depth-first with
an explicit stack (children in lexicographic order) so arbitrarily deep
trees never hit the recursion limit.  Each file found is then classified:

1. a ``.csv`` file is discarded when another entry already holds a
   transcript that is not a csv file (it is almost certainly metadata);
2. a file whose extension matches a server deserializer becomes the
   transcript of the entry with the same extension-stripped name;
3. otherwise a file declared as audio, video or image (or, when no type
   can be determined, one with a well-known media extension) is attached
   to that entry as media on the default track;
4. anything else is ignored.

Files that share a stem therefore end up grouped in one entry regardless
of the order they arrive in.  A file whose entry is already being
uploaded (or has a server-side upload) leaves that entry untouched.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
from pathlib import Path

from transcript_uploader.models.entry import DEFAULT_TRACK, Entry, FileRef, strip_extension
from transcript_uploader.models.service import ServerVocabulary
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.services.metadata_inference import infer_metadata
from transcript_uploader.utils.logging import get_logger

# Used only when the file's media type cannot be determined.
MEDIA_EXTENSIONS = (".wav", ".mp3", ".jpg", ".gif", ".png", ".mp4", ".mpeg", ".avi")
MEDIA_TYPE_PREFIXES = ("audio", "video", "image")

_CSV_EXTENSION = ".csv"


class FileClassification(str, Enum):  # noqa: UP042
    """What the classifier did with a file."""

    TRANSCRIPT = "transcript"
    MEDIA = "media"
    DISCARDED = "discarded"
    IGNORED = "ignored"
    LOCKED = "locked"


def walk_paths(paths: Iterable[Path | str]) -> Iterator[tuple[str, Path]]:
    """Yield ``(path_prefix, file_path)`` for every file under *paths*.

    Top-level files get an empty prefix; files found inside a directory get
    the slash-separated chain of directory names starting at the dropped
    directory, e.g. ``"CorpusX/ep1/trs/"``.  Each real directory is walked
    at most once, so symlinks pointing back up the tree do not loop.
    """
    visited: set[Path] = set()
    for root in paths:
        root = Path(root)
        stack: list[tuple[str, Path]] = [("", root)]
        while stack:
            prefix, path = stack.pop()
            if path.is_dir():
                real = path.resolve()
                if real in visited:
                    continue
                visited.add(real)
                name = path.name or real.name
                children = sorted(path.iterdir(), key=lambda child: child.name)
                child_prefix = f"{prefix}{name}/"
                # Reversed so the lexicographically first child is popped first.
                stack.extend((child_prefix, child) for child in reversed(children))
            elif path.is_file():
                yield prefix, path


class FileClassifier:
    """Sorts files into the entries of a registry.

    Parameters
    ----------
    registry:
        Where entries are created and looked up.
    vocabulary:
        Server vocabulary used to recognise transcripts and to seed
        metadata defaults.  May be replaced once it has been loaded.
    """

    def __init__(
        self,
        registry: EntryRegistry,
        vocabulary: ServerVocabulary | None = None,
    ) -> None:
        self._registry = registry
        self.vocabulary = vocabulary or ServerVocabulary()
        self._logger = get_logger(__name__)

    def add_paths(self, paths: Iterable[Path | str]) -> list[Entry]:
        """Walk *paths* and classify every file found.

        Returns
        -------
        list[Entry]
            Entries touched by this drop, in first-seen order.
        """
        return self.add_files(
            (prefix, FileRef.from_path(path)) for prefix, path in walk_paths(paths)
        )

    def add_files(self, files: Iterable[tuple[str, FileRef]]) -> list[Entry]:
        """Classify already-described files; see :meth:`add_paths`."""
        touched: dict[str, Entry] = {}
        for prefix, file in files:
            classification, entry = self.classify(file, prefix)
            if entry is not None and entry.id not in touched:
                touched[entry.id] = entry
        self._logger.info(
            "files_classified",
            entries=len(touched),
            total_entries=len(self._registry),
        )
        return list(touched.values())

    def classify(
        self, file: FileRef, path_prefix: str = ""
    ) -> tuple[FileClassification, Entry | None]:
        """Classify one file and record it in the registry.

        Returns
        -------
        tuple[FileClassification, Entry | None]
            What was done with the file and the entry it joined, if any.
        """
        extension = file.extension

        if extension == _CSV_EXTENSION and self._has_non_csv_transcript():
            self._logger.debug("csv_discarded", file=file.name)
            return FileClassification.DISCARDED, None

        descriptor = self.vocabulary.descriptor_for(extension)
        is_media = descriptor is None and self._is_media(file)
        if descriptor is None and not is_media:
            self._logger.debug("file_ignored", file=file.name, media_type=file.media_type)
            return FileClassification.IGNORED, None

        existing = self._registry.get(strip_extension(file.name))
        if existing is not None and existing.is_locked:
            self._logger.debug("entry_locked_file_skipped", entry_id=existing.id, file=file.name)
            return FileClassification.LOCKED, None

        if descriptor is not None:
            entry, _ = self._registry.get_or_create(strip_extension(file.name), self.vocabulary)
            entry.transcript_file = file
            entry.transcript_id = file.name
            entry.format_descriptor = descriptor
            # A new transcript needs a fresh existence check.
            entry.exists = None
            infer_metadata(entry, path_prefix, self.vocabulary)
            self._logger.debug(
                "transcript_added",
                entry_id=entry.id,
                format=descriptor.name,
                corpus=entry.corpus,
                episode=entry.episode,
            )
            return FileClassification.TRANSCRIPT, entry

        entry, _ = self._registry.get_or_create(strip_extension(file.name), self.vocabulary)
        entry.add_media(file, DEFAULT_TRACK)
        self._logger.debug("media_added", entry_id=entry.id, file=file.name)
        return FileClassification.MEDIA, entry

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _has_non_csv_transcript(self) -> bool:
        return (
            self._registry.find(
                lambda e: e.transcript_file is not None
                and e.transcript_file.extension != _CSV_EXTENSION
            )
            is not None
        )

    @staticmethod
    def _is_media(file: FileRef) -> bool:
        if file.media_type:
            return file.media_type.startswith(MEDIA_TYPE_PREFIXES)
        return file.extension in MEDIA_EXTENSIONS
