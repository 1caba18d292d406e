"""Submission status emails over a MailChannels-compatible HTTP API."""

import html
import logging
import re
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

import httpx

from patchx.core.models import Submission, SubmissionStatus
from patchx.exceptions import NotificationError

logger = logging.getLogger(__name__)

DEFAULT_MAIL_ENDPOINT = "https://api.mailchannels.net/tx/v1/send"
DEFAULT_FROM_NAME = "PatchX Notifications"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$", re.IGNORECASE)

STATUS_COPY: dict[SubmissionStatus, tuple[str, str]] = {
    SubmissionStatus.PENDING: (
        "Submission received",
        "We have recorded your patch and will start processing shortly.",
    ),
    SubmissionStatus.PROCESSING: (
        "Submission is processing",
        "Your patch is being uploaded to AOSP Gerrit. "
        "We will send another update once it completes.",
    ),
    SubmissionStatus.COMPLETED: (
        "Submission completed",
        "Your patch was successfully submitted to AOSP Gerrit.",
    ),
    SubmissionStatus.FAILED: (
        "Submission failed",
        "We were unable to submit your patch to AOSP Gerrit.",
    ),
}

STATUS_COLORS = {
    SubmissionStatus.COMPLETED: "#16a34a",
    SubmissionStatus.FAILED: "#dc2626",
}
LABEL_CELL_STYLE = "padding: 6px 8px; font-weight: bold; color: #475569; width: 140px;"


@runtime_checkable
class Notifier(Protocol):
    """Sends a status update for a submission. Returns False when skipped."""

    async def send(self, submission: Submission, stage: SubmissionStatus) -> bool: ...


def normalize_emails(emails: Iterable[str] | None) -> list[str]:
    """Lower-case, validate and de-duplicate addresses, keeping first-seen order."""
    if not emails:
        return []
    seen: dict[str, None] = {}
    for email in emails:
        if not isinstance(email, str):
            continue
        normalized = email.strip().lower()
        if normalized and EMAIL_PATTERN.match(normalized):
            seen.setdefault(normalized, None)
    return list(seen)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email.strip().lower()))


class EmailNotifier:
    """Builds and posts submission status emails.

    Sending is skipped (``send`` returns False) when the submission has no
    valid recipients or no sender address is configured.

    Args:
        from_email: Sender address.
        from_name: Sender display name.
        endpoint: Mail API endpoint.
        api_key: Optional bearer token for the mail API.
        reply_to: Optional reply-to address.
        public_site_url: Base URL for the status-page link.
        client: Optional pre-built ``httpx.AsyncClient``.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        from_email: str | None,
        from_name: str | None = None,
        endpoint: str | None = None,
        api_key: str | None = None,
        reply_to: str | None = None,
        public_site_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.from_email = from_email
        self.from_name = from_name or DEFAULT_FROM_NAME
        self.endpoint = endpoint or DEFAULT_MAIL_ENDPOINT
        self.api_key = api_key
        self.reply_to = reply_to
        self.public_site_url = (public_site_url or "").rstrip("/") or None
        self.timeout = timeout
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def status_page_url(self, submission_id: str) -> str | None:
        if not self.public_site_url:
            return None
        return f"{self.public_site_url}/status/{submission_id}"

    def build_payload(
        self, submission: Submission, stage: SubmissionStatus
    ) -> dict[str, Any] | None:
        """Return the mail API payload, or None when there is nobody to send to."""
        recipients = normalize_emails(submission.notification_emails)
        if not recipients or not self.from_email:
            return None
        cc = [e for e in normalize_emails(submission.notification_cc) if e not in recipients]

        title, description = STATUS_COPY[stage]
        status_url = self.status_page_url(submission.id)

        personalization: dict[str, Any] = {
            "to": [{"email": email} for email in recipients],
            "headers": {"X-Entity-Ref-ID": submission.id},
        }
        if cc:
            personalization["cc"] = [{"email": email} for email in cc]

        plain_text = self.build_plain_text(submission, stage, description, status_url)
        html_body = self.build_html(submission, stage, description, status_url)
        payload: dict[str, Any] = {
            "personalizations": [personalization],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": f"[PatchX] {title}: {submission.subject}",
            "content": [
                {"type": "text/plain", "value": plain_text},
                {"type": "text/html", "value": html_body},
            ],
        }
        if self.reply_to:
            payload["reply_to"] = {"email": self.reply_to, "name": self.from_name}
        return payload

    @staticmethod
    def build_plain_text(
        submission: Submission,
        stage: SubmissionStatus,
        description: str,
        status_url: str | None = None,
    ) -> str:
        lines = [
            description,
            "",
            f"Submission ID: {submission.id}",
            f"Project: {submission.project}",
            f"Branch: {submission.branch}",
            f"Subject: {submission.subject}",
            f"Status: {stage.value}",
        ]
        if submission.change_id:
            lines.append(f"Change ID: {submission.change_id}")
        if submission.change_url:
            lines.append(f"Gerrit Change: {submission.change_url}")
        if submission.error:
            lines.extend(["", f"Error: {submission.error}"])
        if status_url:
            lines.extend(["", f"View live status: {status_url}"])
        lines.extend(["", "This is an automated message from PatchX."])
        return "\n".join(lines)

    @staticmethod
    def build_html(
        submission: Submission,
        stage: SubmissionStatus,
        description: str,
        status_url: str | None = None,
    ) -> str:
        def row(label: str, value: str, raw: bool = False) -> str:
            cell = value if raw else html.escape(value)
            return (
                "<tr>"
                f'<td style="{LABEL_CELL_STYLE}">{html.escape(label)}</td>'
                f'<td style="padding: 6px 8px; color: #0f172a;">{cell}</td>'
                "</tr>"
            )

        rows = [
            row("Submission ID", submission.id),
            row("Project", submission.project),
            row("Branch", submission.branch),
            row("Subject", submission.subject),
            row("Status", stage.value),
        ]
        if submission.change_id:
            rows.append(row("Change ID", submission.change_id))
        if submission.change_url:
            url = html.escape(submission.change_url)
            link = f'<a href="{url}" target="_blank">{url}</a>'
            rows.append(row("Gerrit Change", link, raw=True))
        if submission.error:
            rows.append(row("Error", submission.error))

        color = STATUS_COLORS.get(stage, "#2563eb")
        parts = [
            '<div style="font-family: Arial, sans-serif; line-height: 1.6;">',
            f'<h2 style="color: {color}; margin-bottom: 8px;">{html.escape(description)}</h2>',
            '<p style="margin-bottom: 16px;">Here are the latest details of your submission:</p>',
            '<table style="border-collapse: collapse; width: 100%; max-width: 560px;"><tbody>',
            *rows,
            "</tbody></table>",
        ]
        if status_url:
            url = html.escape(status_url)
            parts.append(
                '<p style="margin-top: 16px;">View live status: '
                f'<a href="{url}" target="_blank">{url}</a></p>'
            )
        parts.append(
            '<p style="margin-top: 24px; color: #64748b; font-size: 12px;">'
            "This email was sent automatically by PatchX.</p>"
        )
        parts.append("</div>")
        return "\n".join(parts)

    async def send(self, submission: Submission, stage: SubmissionStatus) -> bool:
        """Send the status email for ``stage``.

        Returns:
            True when the mail API accepted the message, False when skipped.

        Raises:
            NotificationError: If the mail API rejects the message or is unreachable.
        """
        payload = self.build_payload(submission, stage)
        if payload is None:
            if not self.from_email and submission.notification_emails:
                logger.warning("Email notification skipped: sender address is not configured")
            return False

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = await self._client.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            raise NotificationError(
                f"Failed to send {stage.value} notification: {e}",
                details={"submission_id": submission.id},
            ) from e
        if response.is_error:
            raise NotificationError(
                f"Mail API returned HTTP {response.status_code}: {response.text[:200]}",
                details={"submission_id": submission.id, "status_code": response.status_code},
            )
        logger.debug(f"Sent {stage.value} notification for submission {submission.id}")
        return True
