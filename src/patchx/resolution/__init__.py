"""AI-assisted conflict resolution."""

from patchx.resolution.engine import (
    ConflictResolutionEngine,
    MultiProviderResolution,
    ProviderResolution,
    ProviderTestResult,
    ResolutionRequest,
    ResolutionValidation,
)
from patchx.resolution.report import ResolutionReview, build_resolution_report, review_resolution

__all__: list[str] = [
    "ConflictResolutionEngine",
    "MultiProviderResolution",
    "ProviderResolution",
    "ProviderTestResult",
    "ResolutionRequest",
    "ResolutionReview",
    "ResolutionValidation",
    "build_resolution_report",
    "review_resolution",
]
