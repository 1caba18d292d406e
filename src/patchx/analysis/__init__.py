"""Conflict analysis package."""

from patchx.analysis.conflict_detector import (
    AutoResolution,
    ChoiceKind,
    ConflictDetector,
    LineComparison,
    LineKind,
    ResolutionChoice,
    ThreeWayDiff,
)

__all__: list[str] = [
    "AutoResolution",
    "ChoiceKind",
    "ConflictDetector",
    "LineComparison",
    "LineKind",
    "ResolutionChoice",
    "ThreeWayDiff",
]
