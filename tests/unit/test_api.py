"""Tests for the FastAPI application using TestClient."""

import json
from collections.abc import Iterator

import pytest
from conftest import VALID_PATCH, FakeCodeReview, FakeExecutor, FakeNotifier, FakeProvider
from fastapi.testclient import TestClient

from patchx.api.app import create_app, status_code_for
from patchx.config.runtime_config import RuntimeConfig
from patchx.core.models import SubmissionStatus
from patchx.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PatchFormatError,
    PatchXError,
    UpstreamTimeoutError,
)
from patchx.llm.exceptions import LLMConfigurationError
from patchx.services import ServiceContainer, build_services
from patchx.storage.kv import InMemoryKeyValueStore

PROJECT = "platform/frameworks/base"


def ai_reply(code: str, confidence: float) -> str:
    return json.dumps(
        {
            "resolvedCode": code,
            "explanation": "kept both edits",
            "confidence": confidence,
            "requiresManualReview": False,
        }
    )


def make_services(**providers: FakeProvider) -> ServiceContainer:
    return build_services(
        RuntimeConfig.from_defaults(),
        store=InMemoryKeyValueStore(),
        providers=providers,
        code_review=FakeCodeReview(),
        executor=FakeExecutor(),
        notifier=FakeNotifier(),
    )


@pytest.fixture
def services() -> ServiceContainer:
    return make_services(openai=FakeProvider(reply=ai_reply("merged();", 0.9)))


@pytest.fixture
def client(services: ServiceContainer) -> Iterator[TestClient]:
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


def upload_patch(client: TestClient, content: str = VALID_PATCH, project: str = PROJECT) -> dict:
    response = client.post(
        "/upload",
        files={"file": ("fix.diff", content.encode("utf-8"), "text/x-diff")},
        data={"project": project},
    )
    return response.json()


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (PatchFormatError("bad"), 400),
        (LLMConfigurationError("none"), 400),
        (NotFoundError("gone"), 404),
        (InvalidTransitionError("done"), 409),
        (UpstreamTimeoutError("slow"), 504),
        (PatchXError("other"), 500),
        (RuntimeError("boom"), 500),
    ],
)
def test_status_code_for(error: Exception, status_code: int) -> None:
    assert status_code_for(error) == status_code


class TestHealth:
    """Test the liveness endpoint."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"status": "ok"}}

    def test_unknown_route_uses_envelope(self, client: TestClient) -> None:
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json()["success"] is False


class TestUpload:
    """Test POST /upload."""

    def test_valid_patch(self, client: TestClient, services: ServiceContainer) -> None:
        body = upload_patch(client)
        assert body["success"] is True
        data = body["data"]
        assert data["status"] == "success"
        assert data["message"] == "File uploaded successfully"
        stored = services.uploads.get(data["uploadId"])
        assert stored is not None
        assert stored.project == PROJECT

    def test_invalid_patch_is_stored_with_error(
        self, client: TestClient, services: ServiceContainer
    ) -> None:
        body = upload_patch(client, content="just some notes\n")
        assert body["success"] is True
        assert body["data"]["status"] == "error"
        assert body["data"]["message"]
        stored = services.uploads.get(body["data"]["uploadId"])
        assert stored is not None
        assert not stored.is_valid

    def test_missing_project(self, client: TestClient) -> None:
        response = client.post(
            "/upload", files={"file": ("fix.diff", VALID_PATCH.encode("utf-8"), "text/x-diff")}
        )
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Missing required parameter: project",
        }

    def test_missing_file(self, client: TestClient) -> None:
        response = client.post("/upload", data={"project": PROJECT})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request: file")

    def test_non_utf8(self, client: TestClient) -> None:
        response = client.post(
            "/upload",
            files={"file": ("fix.diff", b"\xff\xfe\x00", "text/x-diff")},
            data={"project": PROJECT},
        )
        assert response.status_code == 400
        assert "not valid UTF-8" in response.json()["error"]


class TestSubmitAndStatus:
    """Test POST /submit and the status endpoints."""

    def test_submission_runs_to_completion(self, services: ServiceContainer) -> None:
        with TestClient(create_app(services=services)) as client:
            upload_id = upload_patch(client)["data"]["uploadId"]
            response = client.post(
                "/submit",
                json={
                    "uploadId": upload_id,
                    "subject": "Fix version",
                    "branch": "main",
                    "notificationEmails": ["dev@example.com"],
                },
            )
            assert response.status_code == 200
            data = response.json()["data"]
            assert data["status"] == "pending"
            submission_id = data["submissionId"]

        # Leaving the client runs shutdown, which waits for background submissions.
        submission = services.submissions.get(submission_id)
        assert submission is not None
        assert submission.status is SubmissionStatus.COMPLETED
        assert submission.change_id == "12345"
        assert submission.notification_emails == ["dev@example.com"]

    def test_status_of_completed_submission(self, services: ServiceContainer) -> None:
        with TestClient(create_app(services=services)) as client:
            upload_id = upload_patch(client)["data"]["uploadId"]
            submission_id = client.post(
                "/submit", json={"uploadId": upload_id, "subject": "Fix", "branch": "main"}
            ).json()["data"]["submissionId"]

        with TestClient(create_app(services=services)) as client:
            response = client.get(f"/status/{submission_id}")
            assert response.status_code == 200
            data = response.json()["data"]
            assert data["status"] == "completed"
            assert data["changeId"] == "12345"
            assert data["logs"]
            assert data["totalLogs"] == len(data["logs"])

            review = client.get(f"/status/{submission_id}/review").json()
            assert review == {
                "success": True,
                "data": {"status": "NEW", "mergeable": True, "submittable": False},
            }

    def test_missing_fields(self, client: TestClient) -> None:
        response = client.post("/submit", json={"uploadId": "u1"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Missing required fields: subject, branch"
        assert body["details"] == {"missing": ["subject", "branch"]}

    def test_unknown_upload(self, client: TestClient) -> None:
        response = client.post(
            "/submit", json={"uploadId": "ghost", "subject": "s", "branch": "main"}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "Upload not found: ghost"

    def test_invalid_upload_is_refused(self, client: TestClient) -> None:
        upload_id = upload_patch(client, content="not a diff\n")["data"]["uploadId"]
        response = client.post(
            "/submit", json={"uploadId": upload_id, "subject": "s", "branch": "main"}
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("File validation failed")

    def test_unknown_submission_status(self, client: TestClient) -> None:
        response = client.get("/status/ghost")
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "Submission not found: ghost",
            "details": {"submission_id": "ghost"},
        }


class TestAIEndpoints:
    """Test the AI conflict-resolution endpoints."""

    def test_providers(self, client: TestClient) -> None:
        data = client.get("/ai/providers").json()["data"]
        assert data["enabled"] is True
        assert data["providers"] == ["openai"]

    def test_resolve_conflict(self, client: TestClient) -> None:
        response = client.post(
            "/ai/resolve-conflict",
            json={
                "originalCode": "run();",
                "incomingCode": "runFast();",
                "currentCode": "runSafe();",
                "filePath": "core/App.java",
            },
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["resolvedCode"] == "merged();"
        assert data["confidence"] == 0.9
        assert data["requiresManualReview"] is False

    def test_resolve_conflict_requires_fields(self, client: TestClient) -> None:
        response = client.post("/ai/resolve-conflict", json={"originalCode": "x"})
        assert response.status_code == 400
        assert "incomingCode" in response.json()["error"]

    def test_test_providers(self, client: TestClient) -> None:
        data = client.post("/ai/test-providers").json()["data"]
        assert [(r["provider"], r["success"]) for r in data] == [("openai", True)]

    def test_disabled_engine(self) -> None:
        with TestClient(create_app(services=make_services())) as client:
            providers = client.get("/ai/providers").json()["data"]
            assert providers["enabled"] is False
            assert providers["providers"] == []

            response = client.post(
                "/ai/resolve-conflict",
                json={
                    "originalCode": "a",
                    "incomingCode": "b",
                    "currentCode": "c",
                    "filePath": "f.py",
                },
            )
            assert response.status_code == 400
            assert response.json()["error"].startswith("No AI provider configured")

            response = client.post("/ai/test-providers")
            assert response.status_code == 400
            assert response.json()["error"] == "AI conflict resolution is not enabled"
