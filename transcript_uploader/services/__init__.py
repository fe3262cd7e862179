"""Stateless services applied to entries before and after a run.

- **file_classifier** -- walks dropped paths and groups files into entries.
- **metadata_inference** -- guesses corpus and episode from directory names.
- **existence_resolver** -- asks the service which transcripts already exist.
- **report_generator** -- renders the CSV run summary.
"""

from transcript_uploader.services.existence_resolver import ExistenceResolver
from transcript_uploader.services.file_classifier import (
    FileClassification,
    FileClassifier,
    walk_paths,
)
from transcript_uploader.services.metadata_inference import infer_metadata
from transcript_uploader.services.report_generator import (
    generate_report,
    report_file_name,
)

__all__ = [
    "ExistenceResolver",
    "FileClassification",
    "FileClassifier",
    "generate_report",
    "infer_metadata",
    "report_file_name",
    "walk_paths",
]
