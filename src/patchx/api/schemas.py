"""Request models and the response envelope for the HTTP API.

Request bodies use camelCase field names on the wire and snake_case in Python.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from patchx.orchestration.orchestrator import SubmissionRequest


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmitRequest(CamelModel):
    """Body of ``POST /submit``. Required fields are checked by the orchestrator."""

    upload_id: str = ""
    subject: str = ""
    description: str = ""
    branch: str = ""
    project: str | None = None
    model: str | None = None
    notification_emails: list[str] = Field(default_factory=list)
    notification_cc: list[str] = Field(default_factory=list)
    remote_node_id: str | None = None
    git_repository: str | None = None
    conflict_targets: dict[str, str] = Field(default_factory=dict)

    def to_submission_request(self) -> SubmissionRequest:
        return SubmissionRequest(
            subject=self.subject,
            branch=self.branch,
            description=self.description,
            project=self.project,
            model=self.model,
            notification_emails=list(self.notification_emails),
            notification_cc=list(self.notification_cc),
            remote_node_id=self.remote_node_id,
            git_repository=self.git_repository,
            conflict_targets=dict(self.conflict_targets),
        )


class ResolveConflictRequest(CamelModel):
    """Body of ``POST /ai/resolve-conflict``."""

    original_code: str = Field(min_length=1)
    incoming_code: str = Field(min_length=1)
    current_code: str = Field(min_length=1)
    file_path: str = Field(min_length=1)
    provider: str | None = None
    use_multiple_providers: bool = False


def success(data: Any) -> dict[str, Any]:  # noqa: ANN401
    return {"success": True, "data": data}


def failure(error: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": error}
    if details:
        body["details"] = details
    return body
