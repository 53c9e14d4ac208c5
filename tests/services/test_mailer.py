"""Tests for the Resend mailer and email bodies."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from consently.services.mailer import (
    RESEND_URL,
    MailerError,
    ResendMailer,
    linked_devices_email,
    otp_email,
)


def _response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body or {"id": "msg_123"}
    resp.text = "error detail"
    return resp


class TestResendMailer:
    def test_not_configured_without_key(self):
        assert ResendMailer("", "Consently <no-reply@example.com>").configured is False

    @pytest.mark.asyncio
    async def test_send_refuses_without_key(self):
        with pytest.raises(MailerError):
            await ResendMailer("", "from@example.com").send("jane@example.com", "Hi", "<p>Hi</p>")

    @pytest.mark.asyncio
    @patch("consently.services.mailer.httpx.AsyncClient")
    async def test_send_posts_payload(self, mock_client_cls):
        client = MagicMock()
        client.post = AsyncMock(return_value=_response())
        mock_client_cls.return_value.__aenter__.return_value = client

        mailer = ResendMailer("re_test", "from@example.com")
        message_id = await mailer.send("jane@example.com", "Subject", "<p>Body</p>", "Body")

        assert message_id == "msg_123"
        args, kwargs = client.post.call_args
        assert args[0] == RESEND_URL
        assert kwargs["json"] == {
            "from": "from@example.com",
            "to": ["jane@example.com"],
            "subject": "Subject",
            "html": "<p>Body</p>",
            "text": "Body",
        }
        assert kwargs["headers"]["Authorization"] == "Bearer re_test"

    @pytest.mark.asyncio
    @patch("consently.services.mailer.httpx.AsyncClient")
    async def test_error_status_raises(self, mock_client_cls):
        client = MagicMock()
        client.post = AsyncMock(return_value=_response(status_code=422))
        mock_client_cls.return_value.__aenter__.return_value = client

        with pytest.raises(MailerError):
            await ResendMailer("re_test", "from@example.com").send("jane@example.com", "S", "<p>B</p>")

    @patch("consently.services.mailer.httpx.Client")
    def test_send_sync(self, mock_client_cls):
        client = MagicMock()
        client.post.return_value = _response(body={"id": "msg_sync"})
        mock_client_cls.return_value.__enter__.return_value = client

        assert ResendMailer("re_test", "from@example.com").send_sync("jane@example.com", "S", "<p>B</p>") == "msg_sync"
        assert "text" not in client.post.call_args.kwargs["json"]


class TestBodies:
    def test_otp_email_contains_code(self):
        subject, html_body, text = otp_email("042817", 10, "Shop")
        assert "Shop" in subject
        assert "042817" in html_body
        assert "10 minutes" in text

    def test_site_name_escaped_in_html(self):
        _, html_body, _ = otp_email("000000", 5, "<script>")
        assert "<script>" not in html_body
        assert "&lt;script&gt;" in html_body

    def test_linked_devices_wording(self):
        assert "1 device." in linked_devices_email("Shop", 1)[2]
        assert "3 devices" in linked_devices_email("Shop", 3)[2]
