"""Submission state machine.

A submission moves ``pending -> processing -> completed | failed``. Driving it
(``submit_to_gerrit``) runs these steps in order, persisting log checkpoints
along the way:

1. Mark the submission processing and persist it.
2. Send a "processing" notification.
3. Load the upload.
4. Optionally review caller-supplied conflict targets with the AI providers.
5. Optionally stage the patch on a remote node (clone, checkout, apply).
6. Push the patch to Gerrit.
7. Mark completed and notify.

Steps 2, 4 and 5 are advisory: their failures are logged and the flow moves on.
Any other failure after step 1 marks the submission failed and is re-raised.

Each submission id is written only by the task that drives it. The store has
no compare-and-swap, so a second concurrent writer would be last-write-wins.
While a submission is driven, store access runs on a single worker thread so
a slow store (the file backend) does not stall other submissions, and writes
land in the order they were made.
"""

import asyncio
import logging
import traceback
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TypeVar

from patchx.core.models import Outcome, Submission, SubmissionStatus
from patchx.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from patchx.integrations.gerrit import CodeReviewClient
from patchx.integrations.git_workflow import DEFAULT_WORKING_HOME, RemoteGitWorkflow
from patchx.integrations.notifications import Notifier
from patchx.orchestration.deadline import with_deadline
from patchx.patch.upload_service import generate_id
from patchx.resolution.engine import ConflictResolutionEngine
from patchx.storage.repositories import SubmissionRepository, UploadRepository

logger = logging.getLogger(__name__)

STACK_EXCERPT_LIMIT = 500

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class SubmissionRequest:
    """Caller-supplied metadata for a new submission.

    ``project`` defaults to the upload's project. ``conflict_targets`` maps a
    file path to its current content on the target branch.
    """

    subject: str
    branch: str
    description: str = ""
    project: str | None = None
    model: str | None = None
    notification_emails: list[str] = field(default_factory=list)
    notification_cc: list[str] = field(default_factory=list)
    remote_node_id: str | None = None
    git_repository: str | None = None
    conflict_targets: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class OrchestratorTimeouts:
    """Deadlines in seconds for each external step."""

    node_lookup: float = 2.0
    workflow: float = 600.0
    gerrit: float = 180.0
    notification: float = 30.0

    def __post_init__(self) -> None:
        for name in ("node_lookup", "workflow", "gerrit", "notification"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} timeout must be positive")


class SubmissionOrchestrator:
    """Creates submissions and drives them to a terminal state.

    Args:
        submissions: Submission repository.
        uploads: Upload repository.
        code_review: Gerrit (or compatible) client.
        workflow: Remote git workflow. When None, remote staging is skipped.
        notifier: Status notifier. When None, notifications are skipped.
        engine: Conflict resolution engine for the advisory conflict review.
        timeouts: Per-step deadlines.
        default_working_home: Used when the node has no working home or the
            lookup does not answer in time.
    """

    def __init__(
        self,
        submissions: SubmissionRepository,
        uploads: UploadRepository,
        code_review: CodeReviewClient,
        workflow: RemoteGitWorkflow | None = None,
        notifier: Notifier | None = None,
        engine: ConflictResolutionEngine | None = None,
        timeouts: OrchestratorTimeouts | None = None,
        default_working_home: str = DEFAULT_WORKING_HOME,
    ) -> None:
        self.submissions = submissions
        self.uploads = uploads
        self.code_review = code_review
        self.workflow = workflow
        self.notifier = notifier
        self.engine = engine
        self.timeouts = timeouts or OrchestratorTimeouts()
        self.default_working_home = default_working_home
        self._tasks: set[asyncio.Task[None]] = set()
        # One worker keeps store reads and writes in call order.
        self._store_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="patchx-store")

    def create_submission(self, upload_id: str, request: SubmissionRequest) -> Submission:
        """Persist a new pending submission for a valid upload.

        Raises:
            ValidationError: If subject or branch is missing, or the upload is invalid.
            NotFoundError: If the upload does not exist.
        """
        missing = [name for name in ("subject", "branch") if not getattr(request, name).strip()]
        if not upload_id.strip():
            missing.insert(0, "uploadId")
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", details={"missing": missing}
            )

        upload = self.uploads.get(upload_id)
        if upload is None:
            raise NotFoundError(f"Upload not found: {upload_id}", details={"upload_id": upload_id})
        if not upload.is_valid:
            raise ValidationError(
                f"File validation failed: {upload.validation_error}",
                details={"upload_id": upload_id},
            )

        submission = Submission(
            id=generate_id(),
            upload_id=upload_id,
            project=request.project or upload.project,
            subject=request.subject.strip(),
            description=request.description,
            branch=request.branch.strip(),
            filename=upload.filename,
            model=request.model,
            notification_emails=list(request.notification_emails),
            notification_cc=list(request.notification_cc),
            remote_node_id=request.remote_node_id or None,
            git_repository=request.git_repository or None,
            conflict_targets=dict(request.conflict_targets),
        )
        submission.append_log(f"Submission created for upload {upload_id}")
        self.submissions.save(submission)
        logger.info(
            f"Created submission {submission.id} for {submission.project}:{submission.branch}"
        )
        return submission

    def get_submission(self, submission_id: str) -> Submission | None:
        return self.submissions.get(submission_id)

    def get_submission_status(self, submission_id: str) -> dict[str, str]:
        """Return ``{status, changeId?, changeUrl?, createdAt, error?}``.

        Raises:
            NotFoundError: If the submission does not exist.
        """
        submission = self.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError(
                f"Submission not found: {submission_id}", details={"submission_id": submission_id}
            )
        status = {"status": submission.status.value, "createdAt": submission.created_at}
        if submission.change_id:
            status["changeId"] = submission.change_id
        if submission.change_url:
            status["changeUrl"] = submission.change_url
        if submission.error:
            status["error"] = submission.error
        return status

    async def _in_store_worker(self, func: Callable[..., T], *args: object) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._store_worker, func, *args)

    async def _save(self, submission: Submission) -> None:
        await self._in_store_worker(self.submissions.save, submission)

    async def add_log(self, submission: Submission, message: str) -> Outcome:
        """Append a log line and persist it off the event loop. Never raises."""
        try:
            submission.append_log(message)
            await self._save(submission)
        except (InvalidTransitionError, PersistenceError) as e:
            logger.warning(f"Could not record log for submission {submission.id}: {e}")
            return Outcome.failure(str(e))
        return Outcome.success()

    async def _notify(self, submission: Submission, stage: SubmissionStatus) -> Outcome:
        if self.notifier is None:
            return Outcome.failure("Notifications are not configured")
        try:
            sent = await with_deadline(
                self.notifier.send(submission, stage),
                self.timeouts.notification,
                f"{stage.value} notification",
            )
        except Exception as e:
            logger.warning(f"Failed to send {stage.value} notification for {submission.id}: {e}")
            return Outcome.failure(str(e))
        if not sent:
            return Outcome.failure("Notification skipped")
        return Outcome.success()

    def start(self, submission_id: str) -> asyncio.Task[None]:
        """Drive a submission in the background and return its task.

        Must be called from a running event loop. Failures are already
        recorded on the submission, so the task only logs them.
        """
        task = asyncio.create_task(
            self._drive_in_background(submission_id), name=f"submission-{submission_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every background submission task to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _drive_in_background(self, submission_id: str) -> None:
        try:
            await self.submit_to_gerrit(submission_id)
        except Exception as e:
            logger.error(f"Gerrit submission {submission_id} failed: {e}")

    async def submit_to_gerrit(self, submission_id: str) -> Submission:
        """Drive a pending submission to ``completed`` or ``failed``.

        Returns:
            The completed submission.

        Raises:
            NotFoundError: If the submission does not exist.
            InvalidTransitionError: If the submission is not pending.
            Exception: Whatever made the submission fail, after it was recorded.
        """
        submission = await self._in_store_worker(self.submissions.get, submission_id)
        if submission is None:
            raise NotFoundError(
                f"Submission not found: {submission_id}", details={"submission_id": submission_id}
            )
        submission.transition_to(SubmissionStatus.PROCESSING)
        await self._save(submission)
        logger.info(f"Submission {submission_id} is processing")

        try:
            return await self._drive(submission)
        except Exception as e:
            await self._record_failure(submission, e)
            raise

    async def _drive(self, submission: Submission) -> Submission:
        await self.add_log(submission, "Processing started")
        await self._notify(submission, SubmissionStatus.PROCESSING)

        upload = await self._in_store_worker(self.uploads.get, submission.upload_id)
        if upload is None:
            raise NotFoundError(
                f"Upload not found: {submission.upload_id}",
                details={"upload_id": submission.upload_id},
            )
        await self.add_log(
            submission, f"Loaded patch {upload.filename} ({len(upload.content)} bytes)"
        )

        if submission.conflict_targets:
            await self._review_conflicts(submission, upload.content)

        if submission.uses_remote_workflow:
            await self._stage_on_remote(submission, upload.content)

        await self.add_log(
            submission, f"Submitting to Gerrit ({submission.project}:{submission.branch})"
        )
        change = await with_deadline(
            self.code_review.submit(
                submission.upload_id,
                submission.subject,
                submission.description,
                submission.branch,
                submission.project,
                upload.content,
            ),
            self.timeouts.gerrit,
            "Gerrit submission",
        )
        await self.add_log(
            submission, f"[Success] Gerrit change {change.change_id} created: {change.change_url}"
        )

        submission.mark_completed(change.change_id, change.change_url)
        await self._save(submission)
        logger.info(f"Submission {submission.id} completed as change {change.change_id}")
        await self._notify(submission, SubmissionStatus.COMPLETED)
        return submission

    async def _review_conflicts(self, submission: Submission, patch: str) -> None:
        if self.engine is None or not self.engine.enabled:
            await self.add_log(
                submission, "[Info] AI resolution is not configured; skipping conflict review"
            )
            return
        for path, target in submission.conflict_targets.items():
            try:
                review = await self.engine.resolve_with_multiple_providers(patch, target, path)
            except Exception as e:
                logger.warning(f"Conflict review of {path} for {submission.id} failed: {e}")
                await self.add_log(submission, f"[Warning] Conflict review of {path} failed: {e}")
                continue
            best = review.best_resolution
            manual = "required" if best.requires_manual_review else "not required"
            await self.add_log(
                submission,
                f"[Conflict Review] {path}: recommended {review.recommended_provider} "
                f"(confidence {best.confidence:.2f}, manual review {manual})",
            )

    async def _stage_on_remote(self, submission: Submission, patch: str) -> None:
        node_id = submission.remote_node_id or ""
        repository = submission.git_repository or ""
        if self.workflow is None:
            await self.add_log(
                submission,
                "[Warning] Remote execution is not configured; skipping remote workflow",
            )
            return

        working_home = None
        try:
            working_home = await with_deadline(
                self.workflow.lookup_working_home(node_id),
                self.timeouts.node_lookup,
                "Remote node lookup",
            )
        except Exception as e:
            logger.warning(f"Working home lookup for node {node_id} failed: {e}")
            await self.add_log(submission, f"[Warning] Could not read remote node settings: {e}")
        working_home = working_home or self.default_working_home

        async def on_log(message: str) -> None:
            await self.add_log(submission, message)

        await self.add_log(submission, f"Starting remote git workflow on node {node_id}")
        try:
            result = await with_deadline(
                self.workflow.run(
                    node_id, repository, submission.branch, patch, working_home, on_log=on_log
                ),
                self.timeouts.workflow,
                "Remote git workflow",
            )
        except Exception as e:
            logger.warning(f"Remote git workflow for {submission.id} failed: {e}")
            await self.add_log(
                submission,
                f"[Warning] Remote git workflow failed: {e}. Continuing with Gerrit submission",
            )
            return
        await self.add_log(
            submission, f"[Success] Remote git workflow completed in {result.target_dir}"
        )

    async def _record_failure(self, submission: Submission, error: Exception) -> None:
        message = str(error) or type(error).__name__
        logger.error(f"Submission {submission.id} failed: {message}")

        record = submission
        try:
            record = await self._in_store_worker(self.submissions.get, submission.id) or submission
        except PersistenceError as e:
            logger.error(f"Could not reload submission {submission.id}: {e}")

        if record.is_terminal:
            logger.warning(
                f"Submission {record.id} is already {record.status}; failure not recorded"
            )
            return

        stack = "".join(traceback.format_exception(error))
        record.append_log(f"[Error] {message}")
        record.append_log(f"[Error] Stack: {stack[:STACK_EXCERPT_LIMIT]}")
        record.mark_failed(message)
        try:
            await self._save(record)
        except PersistenceError as e:
            logger.error(f"Could not persist failure of submission {record.id}: {e}")
        await self._notify(record, SubmissionStatus.FAILED)
