"""Patch validation, parsing and upload intake."""

from patchx.patch.upload_service import UploadReceipt, UploadService
from patchx.patch.validator import (
    ParsedPatch,
    PatchFileStats,
    PatchValidationResult,
    PatchValidator,
)

__all__: list[str] = [
    "ParsedPatch",
    "PatchFileStats",
    "PatchValidationResult",
    "PatchValidator",
    "UploadReceipt",
    "UploadService",
]
