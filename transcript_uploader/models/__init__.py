"""transcript-uploader domain models - re-exports all public model classes.

The models are organized across two submodules:
    - entry.py    - the mutable Entry (one unit of ingestion) and FileRef
    - service.py  - frozen value types exchanged with the ingestion service
"""

from __future__ import annotations

from transcript_uploader.models.entry import (
    DEFAULT_TRACK,
    Entry,
    EntryState,
    FileRef,
    Operation,
    strip_extension,
)
from transcript_uploader.models.service import (
    FormatDescriptor,
    MediaTrack,
    Parameter,
    ParameterResult,
    RemoteTranscript,
    ServerVocabulary,
    TaskStatus,
    UploadResult,
)

__all__ = [
    # entry
    "DEFAULT_TRACK",
    "Entry",
    "EntryState",
    "FileRef",
    "Operation",
    "strip_extension",
    # service
    "FormatDescriptor",
    "MediaTrack",
    "Parameter",
    "ParameterResult",
    "RemoteTranscript",
    "ServerVocabulary",
    "TaskStatus",
    "UploadResult",
]
