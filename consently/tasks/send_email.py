"""Celery task: confirmation email after a verified OTP."""

from __future__ import annotations

import structlog

from consently.celery_app import app

logger = structlog.get_logger()


@app.task(name="consently.tasks.send_email.send_verification_confirmation")
def send_verification_confirmation(email: str, site_name: str, linked_devices: int):
    """Tell the visitor their email now links their devices. Best effort, never retried."""
    import httpx

    from consently.config import settings
    from consently.services.mailer import MailerError, ResendMailer, linked_devices_email
    from consently.services.visitor import mask_email

    mailer = ResendMailer(settings.RESEND_API_KEY, settings.EMAIL_FROM)
    if not mailer.configured:
        logger.warning("confirmation_email_skipped", reason="email_not_configured")
        return

    subject, html_body, text = linked_devices_email(site_name, linked_devices)
    try:
        mailer.send_sync(email, subject, html_body, text)
    except (MailerError, httpx.HTTPError) as exc:
        logger.warning("confirmation_email_failed", to=mask_email(email), error=str(exc))
        return

    logger.info("confirmation_email_sent", to=mask_email(email), linked_devices=linked_devices)


def trigger_confirmation_email(email: str, site_name: str, linked_devices: int) -> bool:
    """Queue the confirmation email. Never raises."""
    try:
        send_verification_confirmation.delay(email, site_name, linked_devices)
        return True
    except Exception as e:
        logger.warning("celery_dispatch_failed", task="send_verification_confirmation", error=str(e))
        return False
