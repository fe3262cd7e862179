"""CSV summary of an upload run.

One row per entry, written after a batch run so the user has a record of
what was uploaded where, with which parameters, and what went wrong::

    Transcript,Media,Corpus,Episode,Type,Parameters,Status,Errors
    file1.eaf,"file1.wav",CorpusX,ep1,interview,"labbcat_generate=true","Complete",""

Multi-valued cells (media, parameters, errors) are newline-joined inside
quotes.  Double quotes inside the last three columns are replaced with
single quotes rather than escaped, and the text has no trailing newline.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from transcript_uploader.models.entry import Entry

REPORT_HEADER = "Transcript,Media,Corpus,Episode,Type,Parameters,Status,Errors"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quoted(text: str) -> str:
    return '"' + text.replace('"', "'") + '"'


def format_row(entry: Entry) -> str:
    """Render one entry as a report row (without the leading newline)."""
    transcript = entry.transcript_file.name if entry.transcript_file else ""
    media = '"' + "\n".join(entry.media_file_names()) + '"'
    parameters = "\n".join(
        f"{p.name}={_text(p.value)}" for p in entry.parameters or []
    )
    return ",".join(
        [
            transcript,
            media,
            _text(entry.corpus),
            _text(entry.episode),
            _text(entry.transcript_type),
            _quoted(parameters),
            _quoted(entry.status),
            _quoted("\n".join(entry.errors)),
        ]
    )


def generate_report(entries: Iterable[Entry]) -> str:
    """Return the CSV report text for *entries*, in their iteration order."""
    return REPORT_HEADER + "".join("\n" + format_row(entry) for entry in entries)


def report_file_name(now: datetime | None = None) -> str:
    """Return ``batch-YYYYMMDD-HHMM.csv`` for *now* (UTC, default: current time)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"batch-{now:%Y%m%d-%H%M}.csv"
