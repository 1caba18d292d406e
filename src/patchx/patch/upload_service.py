"""Upload intake: size and encoding checks, validation, storage."""

import logging
import uuid
from dataclasses import dataclass

from patchx.core.models import Upload, ValidationStatus
from patchx.exceptions import NotFoundError, ValidationError
from patchx.patch.validator import PatchValidator
from patchx.storage.repositories import UploadRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


def generate_id() -> str:
    """Return a new random record id."""
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class UploadReceipt:
    """Response to an upload: ``status`` is ``success`` or ``error``."""

    upload_id: str
    status: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"uploadId": self.upload_id, "status": self.status, "message": self.message}


class UploadService:
    """Validates patch files and stores them as Upload records.

    Invalid patches are stored too, with ``validation_status=invalid``, so the
    client can see why a later submission against them is refused.
    """

    def __init__(
        self,
        validator: PatchValidator,
        uploads: UploadRepository,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> None:
        self.validator = validator
        self.uploads = uploads
        self.max_file_size = max_file_size

    def create_upload(self, filename: str, content: bytes | str, project: str) -> Upload:
        """Validate and persist one patch file.

        Args:
            filename: Client-supplied file name.
            content: Patch bytes (UTF-8) or text.
            project: Target code-review project.

        Returns:
            The stored Upload.

        Raises:
            ValidationError: If the project is missing, the file exceeds the
                size limit, or the bytes are not UTF-8.
        """
        if not project or not project.strip():
            raise ValidationError("Missing required parameter: project")
        size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
        if size > self.max_file_size:
            raise ValidationError(
                "File size exceeds the limit",
                details={"size": size, "max_file_size": self.max_file_size},
            )
        if isinstance(content, bytes):
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ValidationError(
                    f"Patch file is not valid UTF-8: {e.reason}", details={"filename": filename}
                ) from e
        else:
            text = content

        verdict = self.validator.validate(text)
        upload = Upload(
            id=generate_id(),
            filename=filename,
            content=text,
            project=project.strip(),
            validation_status=ValidationStatus.VALID if verdict.valid else ValidationStatus.INVALID,
            validation_error=verdict.error,
        )
        self.uploads.save(upload)
        logger.info(
            f"Stored upload {upload.id} ({filename}, {size} bytes, {upload.validation_status})"
        )
        return upload

    def validate_and_store(
        self, filename: str, content: bytes | str, project: str
    ) -> UploadReceipt:
        """Store the upload and summarize the verdict for the client."""
        upload = self.create_upload(filename, content, project)
        if not upload.is_valid:
            return UploadReceipt(
                upload.id, "error", upload.validation_error or "File validation failed"
            )
        return UploadReceipt(upload.id, "success", "File uploaded successfully")

    def get_upload(self, upload_id: str) -> Upload:
        """Return the upload or raise NotFoundError."""
        upload = self.uploads.get(upload_id)
        if upload is None:
            raise NotFoundError(f"Upload not found: {upload_id}", details={"upload_id": upload_id})
        return upload
