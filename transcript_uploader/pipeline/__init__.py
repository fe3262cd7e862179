"""Run orchestration components for transcript-uploader.

``UploadSession`` (in :mod:`transcript_uploader.pipeline.session`) wires
these together with the services; import it from there.
"""

from transcript_uploader.pipeline.confirmation_gate import (
    ConfirmationGate,
    ReviewDecision,
    ReviewOutcome,
)
from transcript_uploader.pipeline.deletion_orchestrator import DeletionOrchestrator
from transcript_uploader.pipeline.progress_tracker import ProgressEvent, ProgressTracker
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.pipeline.upload_orchestrator import UploadOrchestrator

__all__ = [
    "ConfirmationGate",
    "DeletionOrchestrator",
    "EntryRegistry",
    "ProgressEvent",
    "ProgressTracker",
    "ReviewDecision",
    "ReviewOutcome",
    "UploadOrchestrator",
]
