"""Privacy-centre router: identity bridge for visitors.

Endpoints:
  POST /api/privacy-centre/send-otp      email a verification code
  POST /api/privacy-centre/verify-otp    verify it and link the device
  GET  /api/dpdpa/check-consent          does a visitor hold live consent
  POST /api/dpdpa/verify-consent-id      restore consent on a new device
  GET  /api/dpdpa/consent-by-email       consents linked to a verified email
  POST /api/dpdpa/consent-by-email       revoke everything linked to an email
"""

from __future__ import annotations

import httpx
import pydantic
import structlog
from fastapi import APIRouter, Depends, Query

from consently.config import settings
from consently.deps import DB, Mailer, rate_limit
from consently.exceptions import InternalError, ServiceUnavailableError, ValidationError
from consently.schemas.consent import RevokeByEmailRequest, VerifyConsentIdRequest, email_adapter
from consently.schemas.otp import SendOtpRequest, VerifyOtpRequest
from consently.services import identity_bridge
from consently.services.mailer import MailerError, otp_email
from consently.services.visitor import mask_email
from consently.tasks.send_email import trigger_confirmation_email

logger = structlog.get_logger()

router = APIRouter()

by_email_limit = rate_limit(
    "consent_by_email", settings.RATE_LIMIT_CONSENT_BY_EMAIL, settings.RATE_LIMIT_CONSENT_BY_EMAIL_WINDOW
)


@router.post("/privacy-centre/send-otp")
async def send_otp(body: SendOtpRequest, db: DB, mailer: Mailer):
    """Issue a code and email it.

    A delivery failure raises, so the request's transaction (and the OTP
    row with it) is rolled back.
    """
    if not mailer.configured:
        raise ServiceUnavailableError("Email service is not configured", code="EMAIL_NOT_CONFIGURED")

    issued = await identity_bridge.issue_otp(
        db,
        body.email,
        body.visitor_id,
        body.widget_id,
        default_expiry_minutes=settings.OTP_EXPIRY_MINUTES,
        max_per_hour=settings.OTP_MAX_REQUESTS_PER_HOUR,
    )

    subject, html_body, text = otp_email(issued.code, issued.expiry_minutes, issued.widget.name)
    try:
        await mailer.send(body.email, subject, html_body, text)
    except (MailerError, httpx.HTTPError) as e:
        logger.error("otp_email_failed", to=mask_email(body.email), error=str(e))
        raise InternalError("Failed to send verification email", code="EMAIL_SEND_FAILED") from e

    logger.info("otp_sent", widget_id=body.widget_id, to=mask_email(body.email))
    return {
        "success": True,
        "message": "Verification code sent to your email",
        "expiresIn": issued.expiry_minutes * 60,
    }


@router.post("/privacy-centre/verify-otp")
async def verify_otp(body: VerifyOtpRequest, db: DB):
    verified = await identity_bridge.verify_otp(
        db,
        body.email,
        body.otp_code,
        body.visitor_id,
        body.widget_id,
        max_attempts=settings.OTP_MAX_ATTEMPTS,
    )
    trigger_confirmation_email(body.email, verified.widget.name, verified.linked_devices)
    return {
        "success": True,
        "message": "Email verified successfully",
        "linkedDevices": verified.linked_devices,
        "verified_at": verified.verified_at.isoformat(),
    }


@router.get(
    "/dpdpa/check-consent",
    dependencies=[Depends(rate_limit(
        "check_consent", settings.RATE_LIMIT_CHECK_CONSENT, settings.RATE_LIMIT_CHECK_CONSENT_WINDOW
    ))],
)
async def check_consent(
    db: DB,
    widget_id: str = Query(..., alias="widgetId", min_length=1),
    visitor_id: str = Query(..., alias="visitorId", min_length=1),
):
    return await identity_bridge.check_consent(db, widget_id, visitor_id)


@router.post(
    "/dpdpa/verify-consent-id",
    dependencies=[Depends(rate_limit(
        "verify_consent_id", settings.RATE_LIMIT_VERIFY_CONSENT_ID, settings.RATE_LIMIT_VERIFY_CONSENT_ID_WINDOW
    ))],
)
async def verify_consent_id(body: VerifyConsentIdRequest, db: DB):
    return await identity_bridge.verify_consent_id(db, body.consent_id.strip(), body.widget_id)


@router.get("/dpdpa/consent-by-email", dependencies=[Depends(by_email_limit)])
async def consents_by_email(
    db: DB,
    email: str = Query(...),
    widget_id: str = Query(..., alias="widgetId", min_length=1),
):
    try:
        email = email_adapter.validate_python(email)
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid email format", code="INVALID_EMAIL") from e
    return await identity_bridge.consents_by_email(db, email, widget_id)


@router.post("/dpdpa/consent-by-email", dependencies=[Depends(by_email_limit)])
async def revoke_by_email(body: RevokeByEmailRequest, db: DB):
    result = await identity_bridge.revoke_by_email(db, body.email, body.widget_id)
    return {"success": True, "data": result}
