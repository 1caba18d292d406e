"""Gerrit REST client.

A change is created in two calls: ``POST /a/changes/`` creates an empty change
and ``PUT /a/changes/{id}/revisions/current/patch`` uploads the patch as its
first patch set. Neither call is retried, so a change is never created twice.
Status reads are idempotent and retry transport errors.
"""

import json
import logging
from typing import Any, Protocol, runtime_checkable

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from patchx.core.models import ChangeResult, ChangeStatus
from patchx.exceptions import UpstreamTimeoutError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

XSSI_PREFIX = ")]}'"
DEFAULT_TOPIC = "aosp-patch-service"


@runtime_checkable
class CodeReviewClient(Protocol):
    """What the orchestrator needs from a code-review service."""

    async def submit(
        self,
        upload_id: str,
        subject: str,
        description: str,
        branch: str,
        project: str,
        content: str,
        timeout: float | None = None,
    ) -> ChangeResult: ...

    async def get_change_status(self, change_id: str) -> ChangeStatus: ...


def strip_xssi_prefix(body: str) -> str:
    """Remove Gerrit's ``)]}'`` anti-XSSI line from a JSON body."""
    text = body.lstrip()
    if text.startswith(XSSI_PREFIX):
        text = text[len(XSSI_PREFIX) :]
    return text.strip()


def gerrit_project_name(project: str) -> str:
    """Map a manifest path such as ``platform/frameworks/base`` to the Gerrit project name."""
    return project.removeprefix("platform/")


class GerritClient:
    """Async client for the Gerrit REST API using HTTP Basic auth.

    Args:
        base_url: Gerrit root URL, e.g. ``https://review.example.com``.
        username: HTTP username.
        password: HTTP password or token.
        topic: Topic attached to created changes.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject one
            with ``httpx.MockTransport``). When omitted the client owns one.
        request_timeout: Default per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str | None,
        username: str | None = None,
        password: str | None = None,
        topic: str = DEFAULT_TOPIC,
        client: httpx.AsyncClient | None = None,
        request_timeout: float = 60.0,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.topic = topic
        self.request_timeout = request_timeout
        self._auth = httpx.BasicAuth(username or "", password or "")
        self._client = client or httpx.AsyncClient(timeout=request_timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _require_base_url(self) -> str:
        if not self.base_url:
            raise UpstreamUnavailableError("Gerrit base URL is not configured")
        return self.base_url

    def change_url(self, change_id: str) -> str:
        return f"{self.base_url}/#/c/{change_id}/"

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        url = f"{self._require_base_url()}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                json=payload,
                auth=self._auth,
                timeout=timeout or self.request_timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Gerrit {method} {path} timed out", details={"url": url}
            ) from e
        except httpx.HTTPStatusError as e:
            body = e.response.text[:500]
            logger.error(f"Gerrit {method} {path} failed: {e.response.status_code} {body}")
            raise UpstreamUnavailableError(
                f"Gerrit {method} {path} failed with HTTP {e.response.status_code}: {body}",
                details={"url": url, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(
                f"Gerrit {method} {path} failed: {e}", details={"url": url}
            ) from e

        text = strip_xssi_prefix(response.text)
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # The patch upload endpoint answers with plain text
            return text

    async def submit(
        self,
        upload_id: str,
        subject: str,
        description: str,
        branch: str,
        project: str,
        content: str,
        timeout: float | None = None,
    ) -> ChangeResult:
        """Create a change and upload ``content`` as its patch set.

        Args:
            upload_id: Upload id, for logging.
            subject: Change subject.
            description: Commit message body.
            branch: Target branch.
            project: Project path; a leading ``platform/`` is removed.
            content: Unified-diff text.
            timeout: Per-request timeout in seconds.

        Returns:
            ChangeResult with the numeric change id and its URL.

        Raises:
            UpstreamTimeoutError: If a request times out.
            UpstreamUnavailableError: If Gerrit rejects a request or is unreachable.
        """
        change_data = {
            "project": gerrit_project_name(project),
            "branch": branch,
            "subject": subject,
            "topic": self.topic,
            "status": "NEW",
        }
        logger.info(f"Creating Gerrit change for upload {upload_id} on {project}:{branch}")
        info = await self._request("POST", "/a/changes/", change_data, timeout)
        if not isinstance(info, dict):
            raise UpstreamUnavailableError(
                "Gerrit returned an unexpected change payload", details={"upload_id": upload_id}
            )
        change_id = str(info.get("_number") or info.get("id") or "")
        if not change_id:
            raise UpstreamUnavailableError(
                "Gerrit response did not include a change id", details={"upload_id": upload_id}
            )

        patch_set = {"patch": content, "message": f"{subject}\n\n{description}"}
        await self._request(
            "PUT", f"/a/changes/{change_id}/revisions/current/patch", patch_set, timeout
        )
        logger.info(f"Uploaded patch set for change {change_id} ({len(content)} bytes)")
        return ChangeResult(change_id=change_id, change_url=self.change_url(change_id))

    async def get_change_status(self, change_id: str) -> ChangeStatus:
        """Read a change's status, retrying transport errors.

        Raises:
            UpstreamUnavailableError: If Gerrit cannot be reached after retries.
        """
        retryer = AsyncRetrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            async for attempt in retryer:
                with attempt:
                    data = await self._get_detail(change_id)
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(
                f"Failed to read change {change_id}: {e}", details={"change_id": change_id}
            ) from e
        return ChangeStatus(
            status=str(data.get("status") or "UNKNOWN"),
            mergeable=bool(data.get("mergeable", False)),
            submittable=bool(data.get("submittable", False)),
        )

    async def _get_detail(self, change_id: str) -> dict[str, Any]:
        url = f"{self._require_base_url()}/a/changes/{change_id}/detail"
        try:
            response = await self._client.get(url, auth=self._auth)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailableError(
                f"Failed to read change {change_id}: HTTP {e.response.status_code}",
                details={"change_id": change_id, "status_code": e.response.status_code},
            ) from e
        try:
            data = json.loads(strip_xssi_prefix(response.text) or "{}")
        except json.JSONDecodeError as e:
            raise UpstreamUnavailableError(
                f"Gerrit returned invalid JSON for change {change_id}",
                details={"change_id": change_id},
            ) from e
        return data if isinstance(data, dict) else {}
