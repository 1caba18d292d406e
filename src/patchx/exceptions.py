"""Exception hierarchy for the patch submission pipeline.

Every domain error carries a human-readable message plus an optional
``details`` mapping with structured context (ids, timeouts, upstream status
codes). The HTTP layer maps each class to a status code; the orchestrator uses
the class to decide whether a failure is fatal for a submission.

Taxonomy:
    - ValidationError: malformed patch or missing required input. Never retried.
    - NotFoundError: unknown upload, submission or remote node id.
    - InvalidTransitionError: state change refused by the submission state machine.
    - UpstreamTimeoutError: an external call exceeded its deadline.
    - UpstreamUnavailableError: an external call failed for a non-timeout reason.
    - PersistenceError: the key-value store could not be read or written.
    - NotificationError: a notification could not be delivered. Always advisory.
"""

from typing import Any


class PatchXError(Exception):
    """Base class for all pipeline errors.

    Args:
        message: Human-readable error message.
        details: Optional structured context for logging and API responses.

    Example:
        >>> err = PatchXError("boom", details={"submission_id": "abc"})
        >>> err.details["submission_id"]
        'abc'
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(PatchXError):
    """Input was rejected and must be corrected by the caller."""


class PatchFormatError(ValidationError):
    """Patch text is not a well-formed unified diff."""


class NotFoundError(PatchXError):
    """A referenced upload, submission or remote node does not exist."""


class InvalidTransitionError(PatchXError):
    """A submission refused a state change (terminal state or illegal edge)."""


class UpstreamTimeoutError(PatchXError):
    """An external operation did not finish within its deadline."""


class UpstreamUnavailableError(PatchXError):
    """An external operation failed for a reason other than a timeout."""


class PersistenceError(PatchXError):
    """The durable key-value store could not be read or written."""


class NotificationError(PatchXError):
    """A best-effort notification could not be delivered."""
