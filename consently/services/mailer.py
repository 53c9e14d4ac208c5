"""Transactional email through the Resend HTTP API.

Request handlers use the async methods; Celery workers use ``send_sync``.
"""

from __future__ import annotations

import html

import httpx
import structlog

from consently.services.visitor import mask_email

logger = structlog.get_logger()

RESEND_URL = "https://api.resend.com/emails"


class MailerError(RuntimeError):
    pass


class ResendMailer:
    """Sends mail with one API key and sender address."""

    def __init__(self, api_key: str, sender: str, timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _payload(self, to: str, subject: str, html_body: str, text: str | None) -> dict:
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html_body}
        if text:
            payload["text"] = text
        return payload

    def _check(self, resp: httpx.Response, to: str) -> str:
        if resp.status_code >= 400:
            logger.error("email_send_failed", to=mask_email(to), status=resp.status_code, body=resp.text[:200])
            raise MailerError(f"Resend returned {resp.status_code}")
        message_id = resp.json().get("id", "")
        logger.info("email_sent", to=mask_email(to), message_id=message_id)
        return message_id

    async def send(self, to: str, subject: str, html_body: str, text: str | None = None) -> str:
        if not self.configured:
            raise MailerError("RESEND_API_KEY is not configured")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(RESEND_URL, json=self._payload(to, subject, html_body, text), headers=self.headers)
        return self._check(resp, to)

    def send_sync(self, to: str, subject: str, html_body: str, text: str | None = None) -> str:
        if not self.configured:
            raise MailerError("RESEND_API_KEY is not configured")
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(RESEND_URL, json=self._payload(to, subject, html_body, text), headers=self.headers)
        return self._check(resp, to)


def otp_email(code: str, expiry_minutes: int, site_name: str) -> tuple[str, str, str]:
    """Subject, HTML and text bodies for a verification code."""
    site = html.escape(site_name)
    subject = f"Your verification code for {site_name}"
    html_body = (
        f"<p>Use this code to verify your email on <strong>{site}</strong>:</p>"
        f"<p style=\"font-size:28px;letter-spacing:6px;font-weight:bold\">{code}</p>"
        f"<p>The code expires in {expiry_minutes} minutes. "
        "If you did not request it, you can ignore this email.</p>"
    )
    text = (
        f"Your verification code for {site_name} is {code}. "
        f"It expires in {expiry_minutes} minutes."
    )
    return subject, html_body, text


def linked_devices_email(site_name: str, linked_devices: int) -> tuple[str, str, str]:
    """Confirmation sent after a successful verification."""
    site = html.escape(site_name)
    devices = "1 device" if linked_devices == 1 else f"{linked_devices} devices"
    subject = f"Email verified for {site_name}"
    html_body = (
        f"<p>Your email is now linked to your consent preferences on <strong>{site}</strong>.</p>"
        f"<p>Preferences are synced across {devices}. "
        "You can review or withdraw consent from the privacy centre at any time.</p>"
    )
    text = (
        f"Your email is now linked to your consent preferences on {site_name}. "
        f"Preferences are synced across {devices}."
    )
    return subject, html_body, text
