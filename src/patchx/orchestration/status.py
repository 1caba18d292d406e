"""Read-only status projection for pollers."""

import logging
from dataclasses import dataclass, field
from typing import Any

from patchx.core.models import ChangeStatus, Submission, SubmissionStatus
from patchx.exceptions import NotFoundError, UpstreamUnavailableError, ValidationError
from patchx.integrations.gerrit import CodeReviewClient
from patchx.storage.repositories import SubmissionRepository

logger = logging.getLogger(__name__)

DEFAULT_LOG_TAIL = 200


@dataclass(frozen=True, slots=True)
class StatusView:
    """What a poller sees of a submission."""

    submission_id: str
    status: SubmissionStatus
    created_at: str
    updated_at: str
    change_id: str | None = None
    change_url: str | None = None
    error: str | None = None
    logs: list[str] = field(default_factory=list)
    total_logs: int = 0

    @classmethod
    def from_submission(cls, submission: Submission, log_tail: int = 0) -> "StatusView":
        logs = submission.logs[-log_tail:] if log_tail > 0 else submission.logs
        return cls(
            submission_id=submission.id,
            status=submission.status,
            created_at=submission.created_at,
            updated_at=submission.updated_at,
            change_id=submission.change_id,
            change_url=submission.change_url,
            error=submission.error,
            logs=list(logs),
            total_logs=len(submission.logs),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        for key, value in (
            ("changeId", self.change_id),
            ("changeUrl", self.change_url),
            ("error", self.error),
        ):
            if value is not None:
                data[key] = value
        if self.logs:
            data["logs"] = list(self.logs)
            data["totalLogs"] = self.total_logs
        return data


class StatusReporter:
    """Projects the latest persisted state of a submission.

    Args:
        submissions: Submission repository.
        code_review: Optional client used for live change status.
        log_tail: Number of trailing log lines to return; 0 returns all.
    """

    def __init__(
        self,
        submissions: SubmissionRepository,
        code_review: CodeReviewClient | None = None,
        log_tail: int = DEFAULT_LOG_TAIL,
    ) -> None:
        if log_tail < 0:
            raise ValueError("log_tail must be >= 0")
        self.submissions = submissions
        self.code_review = code_review
        self.log_tail = log_tail

    def _load(self, submission_id: str) -> Submission:
        submission = self.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError(
                f"Submission not found: {submission_id}", details={"submission_id": submission_id}
            )
        return submission

    def get_status(self, submission_id: str) -> StatusView:
        """Return the status view.

        Raises:
            NotFoundError: If the submission does not exist.
        """
        return StatusView.from_submission(self._load(submission_id), self.log_tail)

    async def get_review_status(self, submission_id: str) -> ChangeStatus:
        """Ask Gerrit for the live state of the submission's change.

        Raises:
            NotFoundError: If the submission does not exist.
            ValidationError: If no change has been created yet.
            UpstreamUnavailableError: If no code-review client is configured
                or Gerrit cannot be reached.
        """
        submission = self._load(submission_id)
        if not submission.change_id:
            raise ValidationError(
                f"Submission {submission_id} has no Gerrit change yet",
                details={"submission_id": submission_id, "status": submission.status.value},
            )
        if self.code_review is None:
            raise UpstreamUnavailableError("Gerrit client is not configured")
        status = await self.code_review.get_change_status(submission.change_id)
        logger.debug(f"Change {submission.change_id} status: {status.status}")
        return status
