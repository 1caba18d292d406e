"""Clients for external collaborators: Gerrit, remote execution, mail."""

from patchx.integrations.gerrit import CodeReviewClient, GerritClient
from patchx.integrations.git_workflow import GitWorkflowResult, RemoteGitWorkflow
from patchx.integrations.notifications import EmailNotifier, Notifier, normalize_emails
from patchx.integrations.remote_exec import CommandExecutor, CommandRequest, SSHServiceClient

__all__: list[str] = [
    "CodeReviewClient",
    "CommandExecutor",
    "CommandRequest",
    "EmailNotifier",
    "GerritClient",
    "GitWorkflowResult",
    "Notifier",
    "RemoteGitWorkflow",
    "SSHServiceClient",
    "normalize_emails",
]
