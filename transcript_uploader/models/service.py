"""Value types exchanged with the remote ingestion service.

These models describe the service's vocabulary (deserializers, media
tracks, valid corpora and transcript types) and the results of each
remote call made while driving an entry through ingestion.  They are
parsed from the service's JSON envelope by the HTTP provider and are
otherwise treated as read-only, except :class:`Parameter` whose ``value``
is filled in before parameters are submitted.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FormatDescriptor(BaseModel):
    """Identifies the server-side deserializer that will parse a transcript."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    mime_type: str = Field(default="", alias="mimeType")
    version: str = ""
    # Lower-cased file suffixes including the leading dot, e.g. ".eaf".
    file_suffixes: tuple[str, ...] = Field(default=(), alias="fileSuffixes")

    @field_validator("file_suffixes", mode="before")
    @classmethod
    def _normalise_suffixes(cls, value: Any) -> tuple[str, ...]:
        suffixes = []
        for suffix in value or ():
            suffix = str(suffix).strip().lower()
            if not suffix:
                continue
            suffixes.append(suffix if suffix.startswith(".") else f".{suffix}")
        return tuple(suffixes)


class MediaTrack(BaseModel):
    """A named media channel; the primary track has an empty suffix."""

    model_config = ConfigDict(frozen=True)

    suffix: str = ""
    description: str = ""


class Parameter(BaseModel):
    """A server-declared field required to finish ingesting an upload."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    label: str = ""
    hint: str = ""
    type: str = "String"
    required: bool = False
    value: Any = None
    possible_values: list[Any] | None = Field(default=None, alias="possibleValues")

    def value_text(self) -> str:
        """Render ``value`` the way the service expects it in a form field."""
        if self.value is None:
            return ""
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return str(self.value)


class ServerVocabulary(BaseModel):
    """Valid values declared by the service, loaded once per session."""

    model_config = ConfigDict(frozen=True)

    corpora: tuple[str, ...] = ()
    transcript_types: tuple[str, ...] = ()
    tracks: tuple[MediaTrack, ...] = (MediaTrack(),)
    # extension (".eaf") -> descriptor
    deserializers: dict[str, FormatDescriptor] = Field(default_factory=dict)

    @classmethod
    def from_descriptors(
        cls,
        corpora: list[str],
        transcript_types: list[str],
        tracks: list[MediaTrack],
        descriptors: list[FormatDescriptor],
    ) -> ServerVocabulary:
        """Build a vocabulary, indexing descriptors by each of their suffixes."""
        by_extension: dict[str, FormatDescriptor] = {}
        for descriptor in descriptors:
            for suffix in descriptor.file_suffixes:
                by_extension[suffix] = descriptor
        return cls(
            corpora=tuple(corpora),
            transcript_types=tuple(transcript_types),
            tracks=tuple(tracks) or (MediaTrack(),),
            deserializers=by_extension,
        )

    @property
    def default_corpus(self) -> str | None:
        return self.corpora[0] if self.corpora else None

    @property
    def default_transcript_type(self) -> str | None:
        return self.transcript_types[0] if self.transcript_types else None

    def track_suffixes(self) -> list[str]:
        return [track.suffix for track in self.tracks]

    def descriptor_for(self, extension: str) -> FormatDescriptor | None:
        return self.deserializers.get(extension.lower())


class RemoteTranscript(BaseModel):
    """Structural metadata of a transcript that already exists remotely."""

    model_config = ConfigDict(frozen=True)

    id: str
    corpus: str | None = None
    episode: str | None = None
    transcript_type: str | None = None


class UploadResult(BaseModel):
    """Result of the raw upload stage."""

    model_config = ConfigDict(frozen=True)

    upload_id: str
    parameters: list[Parameter] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)


class ParameterResult(BaseModel):
    """Result of a parameter submission."""

    model_config = ConfigDict(frozen=True)

    upload_id: str | None = None
    # document id -> processing task id
    processing_handles: dict[str, str] = Field(default_factory=dict)
    # Further parameters the service still wants, if any.
    parameters: list[Parameter] | None = None
    messages: list[str] = Field(default_factory=list)


class TaskStatus(BaseModel):
    """Snapshot of a server-side processing task."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    running: bool = False
    percent_complete: float = 0.0
    status: str = ""
    last_exception: str | None = None
