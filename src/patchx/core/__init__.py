"""Core data models."""

from patchx.core.models import (
    ChangeResult,
    ChangeStatus,
    CommandResult,
    Conflict,
    ConflictType,
    Outcome,
    RemoteNode,
    Resolution,
    Submission,
    SubmissionStatus,
    Upload,
    ValidationStatus,
    utc_now,
)

__all__: list[str] = [
    "ChangeResult",
    "ChangeStatus",
    "CommandResult",
    "Conflict",
    "ConflictType",
    "Outcome",
    "RemoteNode",
    "Resolution",
    "Submission",
    "SubmissionStatus",
    "Upload",
    "ValidationStatus",
    "utc_now",
]
