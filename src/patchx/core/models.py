"""Data models for the patch submission pipeline.

This module contains the records that flow between the validator, the conflict
tooling, the orchestrator and the HTTP layer:

- ``Upload``: a stored patch body with its validation verdict. Immutable.
- ``Submission``: the stateful record for one attempt to land a patch. Mutated
  only through its own methods, which enforce the status state machine
  (pending -> processing -> completed | failed, terminal states are final).
- ``Conflict`` / ``Resolution``: transient conflict-resolution values.
- ``RemoteNode``: connection metadata for a build host reached through the SSH
  command-execution service.
- ``Outcome``: explicit ok/failed result of a best-effort side effect.

Persisted records use camelCase keys so stored JSON matches the wire format of
the HTTP API.

Example:
    >>> submission = Submission(
    ...     id="s1", upload_id="u1", project="platform/frameworks/base",
    ...     subject="Fix NPE", description="", branch="main",
    ... )
    >>> submission.transition_to(SubmissionStatus.PROCESSING)
    >>> submission.mark_completed("1234", "https://review.example.com/#/c/1234/")
    >>> submission.status
    <SubmissionStatus.COMPLETED: 'completed'>
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

from patchx.exceptions import InvalidTransitionError


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ValidationStatus(str, Enum):
    """Validation verdict recorded on an Upload."""

    VALID = "valid"
    INVALID = "invalid"

    def __str__(self) -> str:
        return self.value


class SubmissionStatus(str, Enum):
    """Lifecycle states of a Submission.

    Attributes:
        PENDING: Created, not yet picked up by an orchestrator task.
        PROCESSING: An orchestrator task is driving the submission.
        COMPLETED: The change was pushed to the code-review service. Terminal.
        FAILED: The submission failed. Terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """True for states that accept no further transitions."""
        return self in (SubmissionStatus.COMPLETED, SubmissionStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset({SubmissionStatus.PROCESSING}),
    SubmissionStatus.PROCESSING: frozenset({SubmissionStatus.COMPLETED, SubmissionStatus.FAILED}),
    SubmissionStatus.COMPLETED: frozenset(),
    SubmissionStatus.FAILED: frozenset(),
}


class ConflictType(str, Enum):
    """Kinds of textual conflict reported by the conflict detector."""

    ADD_ADD = "add_add"
    DELETE_ADD = "delete_add"
    MODIFY_MODIFY = "modify_modify"
    CONTEXT_CONFLICT = "context_conflict"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Upload:
    """A stored patch file and its validation verdict.

    Attributes:
        id: Upload identifier.
        filename: Original file name supplied by the client.
        content: Raw unified-diff text.
        project: Target code-review project (e.g. ``platform/frameworks/base``).
        validation_status: Result of patch validation at upload time.
        validation_error: Validation message when the patch is invalid.
        created_at: ISO-8601 creation timestamp.
    """

    id: str
    filename: str
    content: str
    project: str
    validation_status: ValidationStatus
    validation_error: str | None = None
    created_at: str = field(default_factory=utc_now)

    @property
    def is_valid(self) -> bool:
        return self.validation_status is ValidationStatus.VALID

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "filename": self.filename,
            "content": self.content,
            "project": self.project,
            "validationStatus": self.validation_status.value,
            "createdAt": self.created_at,
        }
        if self.validation_error is not None:
            data["validationError"] = self.validation_error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Upload":
        return cls(
            id=data["id"],
            filename=data.get("filename", ""),
            content=data["content"],
            project=data.get("project", ""),
            validation_status=ValidationStatus(data["validationStatus"]),
            validation_error=data.get("validationError"),
            created_at=data.get("createdAt") or utc_now(),
        )


@dataclass(slots=True)
class Submission:
    """Stateful record tracking one attempt to land a patch.

    Status only moves forward along pending -> processing -> completed|failed.
    Once terminal, every mutating method raises InvalidTransitionError. Logs are
    append-only lines of the form ``"[<timestamp>] <message>"``.

    Attributes:
        id: Submission identifier.
        upload_id: Id of the validated Upload this submission pushes.
        project: Code-review project name.
        subject: Change subject line.
        description: Change description (commit message body).
        branch: Target branch.
        status: Current lifecycle state.
        filename: Patch file name copied from the upload.
        change_id: Code-review change id, set on completion.
        change_url: Code-review change URL, set on completion.
        error: Failure message, set when the submission fails.
        model: Free-form label of the AI model used by the contributor.
        notification_emails: Recipients of status notifications.
        notification_cc: CC recipients of status notifications.
        remote_node_id: Remote build host used to stage the patch.
        git_repository: Repository URL or project path cloned on the remote host.
        conflict_targets: Optional map of file path to current content to review
            for conflicts before pushing.
        logs: Append-only timestamped log lines.
        created_at: ISO-8601 creation timestamp.
        updated_at: ISO-8601 timestamp of the last mutation.
    """

    id: str
    upload_id: str
    project: str
    subject: str
    description: str
    branch: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    filename: str = ""
    change_id: str | None = None
    change_url: str | None = None
    error: str | None = None
    model: str | None = None
    notification_emails: list[str] = field(default_factory=list)
    notification_cc: list[str] = field(default_factory=list)
    remote_node_id: str | None = None
    git_repository: str | None = None
    conflict_targets: dict[str, str] = field(default_factory=dict)
    logs: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def uses_remote_workflow(self) -> bool:
        """True when both a remote node and a git repository are configured."""
        return bool(self.remote_node_id and self.git_repository)

    def _check_transition(self, target: SubmissionStatus) -> None:
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Submission {self.id} is already {self.status} and cannot move to {target}",
                details={"submission_id": self.id, "status": self.status.value},
            )
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Illegal submission transition {self.status} -> {target}",
                details={
                    "submission_id": self.id,
                    "from": self.status.value,
                    "to": target.value,
                },
            )

    def transition_to(self, target: SubmissionStatus) -> None:
        """Move to ``target`` if the state machine allows it.

        Raises:
            InvalidTransitionError: If the submission is terminal or the edge is illegal.
        """
        self._check_transition(target)
        self.status = target
        self.touch()

    def append_log(self, message: str, timestamp: str | None = None) -> str:
        """Append a timestamped log line and return it.

        Raises:
            InvalidTransitionError: If the submission is already terminal.
        """
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Submission {self.id} is {self.status}; its log is closed",
                details={"submission_id": self.id, "status": self.status.value},
            )
        line = f"[{timestamp or utc_now()}] {message}"
        self.logs.append(line)
        self.touch()
        return line

    def mark_completed(self, change_id: str, change_url: str) -> None:
        """Record the pushed change and move to COMPLETED."""
        self._check_transition(SubmissionStatus.COMPLETED)
        self.change_id = change_id
        self.change_url = change_url
        self.status = SubmissionStatus.COMPLETED
        self.touch()

    def mark_failed(self, error: str) -> None:
        """Record the failure message and move to FAILED."""
        self._check_transition(SubmissionStatus.FAILED)
        self.error = error
        self.status = SubmissionStatus.FAILED
        self.touch()

    def touch(self) -> None:
        self.updated_at = utc_now()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "uploadId": self.upload_id,
            "filename": self.filename,
            "project": self.project,
            "subject": self.subject,
            "description": self.description,
            "branch": self.branch,
            "status": self.status.value,
            "notificationEmails": list(self.notification_emails),
            "notificationCc": list(self.notification_cc),
            "logs": list(self.logs),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        optional = {
            "changeId": self.change_id,
            "changeUrl": self.change_url,
            "error": self.error,
            "model": self.model,
            "remoteNodeId": self.remote_node_id,
            "gitRepository": self.git_repository,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.conflict_targets:
            data["conflictTargets"] = dict(self.conflict_targets)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Submission":
        return cls(
            id=data["id"],
            upload_id=data["uploadId"],
            project=data.get("project", ""),
            subject=data.get("subject", ""),
            description=data.get("description", ""),
            branch=data.get("branch", ""),
            status=SubmissionStatus(data.get("status", SubmissionStatus.PENDING.value)),
            filename=data.get("filename", ""),
            change_id=data.get("changeId"),
            change_url=data.get("changeUrl"),
            error=data.get("error"),
            model=data.get("model"),
            notification_emails=list(data.get("notificationEmails") or []),
            notification_cc=list(data.get("notificationCc") or []),
            remote_node_id=data.get("remoteNodeId"),
            git_repository=data.get("gitRepository"),
            conflict_targets=dict(data.get("conflictTargets") or {}),
            logs=list(data.get("logs") or []),
            created_at=data.get("createdAt") or utc_now(),
            updated_at=data.get("updatedAt") or utc_now(),
        )


@dataclass(frozen=True, slots=True)
class Conflict:
    """A conflicting line position found by a three-way comparison.

    Attributes:
        line_number: 1-based line position.
        conflict_type: Kind of disagreement.
        original: Base (common ancestor) text at this position.
        incoming: Incoming (patch) text at this position.
        current: Current (target branch) text at this position.
    """

    line_number: int
    conflict_type: ConflictType
    original: str
    incoming: str
    current: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "lineNumber": self.line_number,
            "type": self.conflict_type.value,
            "original": self.original,
            "incoming": self.incoming,
            "current": self.current,
        }


@dataclass(frozen=True, slots=True)
class Resolution:
    """A candidate merged file body produced by an AI-assist provider.

    ``confidence`` is clamped into [0.0, 1.0] on construction; NaN becomes 0.0.

    Attributes:
        resolved_code: Proposed file body.
        explanation: Provider's explanation of the resolution strategy.
        confidence: Provider's confidence in the resolution.
        suggestions: Follow-up advice for the reviewer.
        requires_manual_review: True when a human must check the result.

    Example:
        >>> Resolution("x = 1", "merged", confidence=1.7).confidence
        1.0
    """

    resolved_code: str
    explanation: str
    confidence: float
    suggestions: list[str] = field(default_factory=list)
    requires_manual_review: bool = False

    def __post_init__(self) -> None:
        """Validate field types and clamp confidence.

        Raises:
            TypeError: If a field has the wrong type.
        """
        if not isinstance(self.resolved_code, str):
            raise TypeError(f"resolved_code must be str, got {type(self.resolved_code).__name__}")
        if not isinstance(self.explanation, str):
            raise TypeError(f"explanation must be str, got {type(self.explanation).__name__}")
        if isinstance(self.confidence, bool) or not isinstance(self.confidence, int | float):
            raise TypeError(f"confidence must be a number, got {type(self.confidence).__name__}")
        if not isinstance(self.requires_manual_review, bool):
            raise TypeError(
                "requires_manual_review must be bool, "
                f"got {type(self.requires_manual_review).__name__}"
            )
        confidence = float(self.confidence)
        clamped = 0.0 if math.isnan(confidence) else min(1.0, max(0.0, confidence))
        object.__setattr__(self, "confidence", clamped)
        object.__setattr__(self, "suggestions", [str(item) for item in self.suggestions])

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolvedCode": self.resolved_code,
            "explanation": self.explanation,
            "confidence": self.confidence,
            "suggestions": list(self.suggestions),
            "requiresManualReview": self.requires_manual_review,
        }


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of a best-effort side effect such as a notification or log checkpoint.

    Callers are free to ignore it; it exists so the best-effort contract is
    visible in signatures instead of hidden in ``except`` blocks.
    """

    ok: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> "Outcome":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "Outcome":
        return cls(ok=False, reason=reason)


@dataclass(frozen=True, slots=True)
class RemoteNode:
    """Connection metadata for a remote build host.

    The host is never contacted directly; commands go through the SSH
    command-execution service at ``ssh_service_api_url``.
    """

    AUTH_TYPES: ClassVar[frozenset[str]] = frozenset({"key", "password"})

    id: str
    host: str
    username: str
    port: int = 22
    auth_type: str = "key"
    ssh_key: str | None = None
    password: str | None = None
    name: str = ""
    working_home: str | None = None
    ssh_service_api_url: str | None = None
    ssh_service_api_key: str | None = None

    def __post_init__(self) -> None:
        if self.auth_type not in self.AUTH_TYPES:
            raise ValueError(
                f"auth_type must be one of {sorted(self.AUTH_TYPES)}, got {self.auth_type!r}"
            )
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in 1..65535, got {self.port}")
        if not self.host:
            raise ValueError("host cannot be empty")

    @property
    def credential(self) -> str | None:
        """SSH key or password, depending on ``auth_type``."""
        return self.ssh_key if self.auth_type == "key" else self.password

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "authType": self.auth_type,
            "sshKey": self.ssh_key,
            "password": self.password,
            "workingHome": self.working_home,
            "sshServiceApiUrl": self.ssh_service_api_url,
            "sshServiceApiKey": self.ssh_service_api_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteNode":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            host=data["host"],
            port=int(data.get("port") or 22),
            username=data["username"],
            auth_type=data.get("authType") or "key",
            ssh_key=data.get("sshKey"),
            password=data.get("password"),
            working_home=data.get("workingHome"),
            ssh_service_api_url=data.get("sshServiceApiUrl"),
            ssh_service_api_key=data.get("sshServiceApiKey"),
        )


@dataclass(frozen=True, slots=True)
class ChangeResult:
    """Identifier and URL of a change created on the code-review service."""

    change_id: str
    change_url: str


@dataclass(frozen=True, slots=True)
class ChangeStatus:
    """Review state of an existing change."""

    status: str
    mergeable: bool
    submittable: bool


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of one command run through the remote execution service."""

    success: bool
    output: str = ""
    error: str | None = None
    command_id: str | None = None
