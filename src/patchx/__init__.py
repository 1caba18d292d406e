"""PatchX.

A patch submission pipeline: validate unified diffs, detect and resolve
conflicts with AI assistance, optionally stage patches on a remote build host,
and push them to Gerrit for review.
"""

__version__ = "0.1.0"

from .analysis.conflict_detector import ConflictDetector
from .config.runtime_config import RuntimeConfig
from .core.models import Conflict, Resolution, Submission, SubmissionStatus, Upload
from .exceptions import PatchXError
from .patch.validator import PatchValidator

__all__ = [
    "Conflict",
    "ConflictDetector",
    "PatchValidator",
    "PatchXError",
    "Resolution",
    "RuntimeConfig",
    "Submission",
    "SubmissionStatus",
    "Upload",
]
