"""Cross-device identity bridge.

A visitor proves ownership of an email address with a 6-digit one-time
code. Once verified, every device that verified the same address on a
widget shares an email hash, and the oldest of those visitor ids becomes
the stable consent id shown to the visitor.

Plain addresses are only used to send mail; all lookups go through
``hash_email``.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import distinct, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from consently.exceptions import (
    ExpiredError,
    InvalidCodeError,
    MaxAttemptsError,
    NotFoundError,
    OtpNotFoundError,
    RateLimitError,
    RevokedError,
    ValidationError,
)
from consently.models.consent import ConsentStatus, DpdpaConsentRecord
from consently.models.otp import EmailVerificationEvent, EmailVerificationOTP, VerificationEventType
from consently.models.preference import VisitorConsentPreference
from consently.models.widget import DpdpaWidgetConfig
from consently.services.consent_recorder import serialize_record
from consently.services.visitor import hash_email, is_valid_visitor_id

logger = structlog.get_logger()

OTP_WINDOW = timedelta(hours=1)


@dataclass
class IssuedOtp:
    otp: EmailVerificationOTP
    code: str
    expiry_minutes: int
    widget: DpdpaWidgetConfig


@dataclass
class VerifiedOtp:
    email_hash: str
    linked_devices: int
    verified_at: datetime
    widget: DpdpaWidgetConfig


def generate_otp_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _record_event(
    db: AsyncSession,
    *,
    widget_id: str,
    visitor_id: str,
    event_type: VerificationEventType,
    email_hash: str | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    db.add(EmailVerificationEvent(
        widget_id=widget_id,
        visitor_id=visitor_id,
        event_type=event_type.value,
        email_hash=email_hash,
        event_metadata=metadata or {},
    ))


async def get_widget(db: AsyncSession, widget_id: str, *, active_only: bool = False) -> DpdpaWidgetConfig:
    query = select(DpdpaWidgetConfig).where(DpdpaWidgetConfig.widget_id == widget_id)
    if active_only:
        query = query.where(DpdpaWidgetConfig.is_active.is_(True))
    widget = (await db.execute(query)).scalar_one_or_none()
    if widget is None:
        raise NotFoundError("Widget not found or inactive", code="INVALID_WIDGET")
    return widget


# --- OTP issuance / verification ---

async def issue_otp(
    db: AsyncSession,
    email: str,
    visitor_id: str,
    widget_id: str,
    *,
    default_expiry_minutes: int = 10,
    max_per_hour: int = 3,
    now: datetime | None = None,
) -> IssuedOtp:
    """Create a fresh OTP for (email, visitor, widget).

    At most ``max_per_hour`` codes per email hash and widget in a rolling
    hour. The refusal itself is recorded as a ``rate_limited`` event.
    """
    now = now or datetime.now(timezone.utc)
    widget = await get_widget(db, widget_id)
    email_hash = hash_email(email)

    sent_count, oldest = (await db.execute(
        select(func.count(), func.min(EmailVerificationOTP.created_at)).where(
            EmailVerificationOTP.email_hash == email_hash,
            EmailVerificationOTP.widget_id == widget_id,
            EmailVerificationOTP.created_at >= now - OTP_WINDOW,
        )
    )).one()

    if sent_count >= max_per_hour:
        _record_event(
            db,
            widget_id=widget_id,
            visitor_id=visitor_id,
            event_type=VerificationEventType.RATE_LIMITED,
            email_hash=email_hash,
            metadata={"count": sent_count},
        )
        # The request fails but the event must survive the rollback.
        await db.commit()
        retry_after = OTP_WINDOW
        if oldest is not None:
            retry_after = oldest + OTP_WINDOW - now
        logger.warning("otp_rate_limited", widget_id=widget_id, email_hash=email_hash[:8])
        raise RateLimitError(
            retry_after=max(1, int(retry_after.total_seconds())),
            limit=max_per_hour,
            message="Too many OTP requests. Please try again later.",
        )

    expiry_minutes = widget.otp_expiration_minutes or default_expiry_minutes
    code = generate_otp_code()
    otp = EmailVerificationOTP(
        email_hash=email_hash,
        visitor_id=visitor_id,
        widget_id=widget_id,
        otp_code=code,
        attempts=0,
        verified=False,
        expires_at=now + timedelta(minutes=expiry_minutes),
    )
    db.add(otp)
    _record_event(
        db,
        widget_id=widget_id,
        visitor_id=visitor_id,
        event_type=VerificationEventType.OTP_SENT,
        email_hash=email_hash,
        metadata={"expiresInMinutes": expiry_minutes},
    )
    await db.flush()

    logger.info("otp_issued", widget_id=widget_id, visitor_id=visitor_id[:12], expiry_minutes=expiry_minutes)
    return IssuedOtp(otp=otp, code=code, expiry_minutes=expiry_minutes, widget=widget)


def check_otp(otp: EmailVerificationOTP, code: str, max_attempts: int = 3, now: datetime | None = None) -> None:
    """Apply one verification attempt to an OTP row.

    Raises MaxAttemptsError once the budget is spent (the code is not even
    compared) and InvalidCodeError on a mismatch, after counting it.
    """
    attempts = otp.attempts or 0
    if attempts >= max_attempts:
        raise MaxAttemptsError()

    if not hmac.compare_digest(otp.otp_code, code):
        otp.attempts = attempts + 1
        raise InvalidCodeError(remaining_attempts=max_attempts - otp.attempts)

    otp.verified = True
    otp.verified_at = now or datetime.now(timezone.utc)


async def verify_otp(
    db: AsyncSession,
    email: str,
    code: str,
    visitor_id: str,
    widget_id: str,
    *,
    max_attempts: int = 3,
    now: datetime | None = None,
) -> VerifiedOtp:
    now = now or datetime.now(timezone.utc)
    widget = await get_widget(db, widget_id)
    email_hash = hash_email(email)

    otp = (await db.execute(
        select(EmailVerificationOTP)
        .where(
            EmailVerificationOTP.email_hash == email_hash,
            EmailVerificationOTP.visitor_id == visitor_id,
            EmailVerificationOTP.widget_id == widget_id,
            EmailVerificationOTP.verified.is_(False),
            EmailVerificationOTP.expires_at > now,
        )
        .order_by(EmailVerificationOTP.created_at.desc())
        .limit(1)
    )).scalar_one_or_none()

    if otp is None:
        raise OtpNotFoundError()

    try:
        check_otp(otp, code, max_attempts=max_attempts, now=now)
    except InvalidCodeError as e:
        _record_event(
            db,
            widget_id=widget_id,
            visitor_id=visitor_id,
            event_type=VerificationEventType.OTP_FAILED,
            email_hash=email_hash,
            metadata={"attempts": otp.attempts, "remainingAttempts": e.remaining_attempts},
        )
        # Keep the attempt count even though the request fails.
        await db.commit()
        logger.info("otp_failed", widget_id=widget_id, attempts=otp.attempts)
        raise

    _record_event(
        db,
        widget_id=widget_id,
        visitor_id=visitor_id,
        event_type=VerificationEventType.OTP_VERIFIED,
        email_hash=email_hash,
        metadata={
            "time_to_verify_seconds": int((now - otp.created_at).total_seconds()) if otp.created_at else None,
        },
    )

    await db.execute(
        update(VisitorConsentPreference)
        .where(
            VisitorConsentPreference.visitor_id == visitor_id,
            VisitorConsentPreference.widget_id == widget_id,
        )
        .values(visitor_email_hash=email_hash, last_updated=now)
    )
    await db.execute(
        update(DpdpaConsentRecord)
        .where(
            DpdpaConsentRecord.visitor_id == visitor_id,
            DpdpaConsentRecord.widget_id == widget_id,
            DpdpaConsentRecord.visitor_email_hash.is_(None),
        )
        .values(visitor_email_hash=email_hash)
    )

    linked = (await db.execute(
        select(func.count(distinct(VisitorConsentPreference.visitor_id))).where(
            VisitorConsentPreference.visitor_email_hash == email_hash,
            VisitorConsentPreference.widget_id == widget_id,
        )
    )).scalar() or 0

    logger.info("otp_verified", widget_id=widget_id, visitor_id=visitor_id[:12], linked_devices=linked)
    return VerifiedOtp(
        email_hash=email_hash,
        # The verifying device counts even before it has preferences.
        linked_devices=max(linked, 1),
        verified_at=otp.verified_at,
        widget=widget,
    )


# --- Stable consent id ---

def pick_stable_visitor(rows: list[tuple[str, datetime]]) -> str | None:
    """Oldest visitor id among (visitor_id, first_seen) pairs."""
    if not rows:
        return None
    return min(rows, key=lambda r: (r[1], r[0]))[0]


async def find_stable_consent_id(db: AsyncSession, visitor_id: str, widget_id: str) -> str | None:
    email_hash = (await db.execute(
        select(VisitorConsentPreference.visitor_email_hash)
        .where(
            VisitorConsentPreference.visitor_id == visitor_id,
            VisitorConsentPreference.widget_id == widget_id,
            VisitorConsentPreference.visitor_email_hash.is_not(None),
        )
        .limit(1)
    )).scalar_one_or_none()
    if not email_hash:
        return None

    rows = (await db.execute(
        select(VisitorConsentPreference.visitor_id, func.min(VisitorConsentPreference.created_at))
        .where(
            VisitorConsentPreference.visitor_email_hash == email_hash,
            VisitorConsentPreference.widget_id == widget_id,
        )
        .group_by(VisitorConsentPreference.visitor_id)
    )).all()
    return pick_stable_visitor([(r[0], r[1]) for r in rows])


# --- Consent lookups ---

async def latest_record(db: AsyncSession, widget_id: str, visitor_id: str) -> DpdpaConsentRecord | None:
    return (await db.execute(
        select(DpdpaConsentRecord)
        .where(
            DpdpaConsentRecord.widget_id == widget_id,
            DpdpaConsentRecord.visitor_id == visitor_id,
        )
        .order_by(DpdpaConsentRecord.consent_given_at.desc())
        .limit(1)
    )).scalar_one_or_none()


def consent_state(record: DpdpaConsentRecord, now: datetime) -> str:
    """'expired', 'revoked' or 'active' for a record at ``now``. Expiry wins."""
    if record.consent_expires_at is not None and record.consent_expires_at < now:
        return "expired"
    if record.consent_status == ConsentStatus.REVOKED.value or record.revoked_at is not None:
        return "revoked"
    return "active"


async def check_consent(
    db: AsyncSession, widget_id: str, visitor_id: str, now: datetime | None = None
) -> dict:
    """Does this visitor hold a live consent on this widget?"""
    now = now or datetime.now(timezone.utc)
    if not is_valid_visitor_id(visitor_id):
        raise ValidationError("Invalid Consent ID format", code="INVALID_VISITOR_ID")

    await get_widget(db, widget_id, active_only=True)

    record = await latest_record(db, widget_id, visitor_id)
    if record is None:
        return {"hasConsent": False, "message": "No consent found"}

    state = consent_state(record, now)
    if state == "expired":
        return {
            "hasConsent": False,
            "message": "Consent expired",
            "expiredAt": record.consent_expires_at.isoformat(),
        }
    if state == "revoked":
        revoked_at = record.revoked_at or (record.consent_details or {}).get("revoked_at")
        return {
            "hasConsent": False,
            "message": "Consent was revoked",
            "revokedAt": revoked_at.isoformat() if isinstance(revoked_at, datetime) else revoked_at,
        }

    stable_id = None
    try:
        stable_id = await find_stable_consent_id(db, visitor_id, widget_id)
    except Exception as e:
        logger.warning("stable_consent_id_lookup_failed", widget_id=widget_id, error=str(e))

    return {
        "hasConsent": True,
        "consent": {
            "status": record.consent_status,
            "acceptedActivities": record.consented_activities or [],
            "rejectedActivities": record.rejected_activities or [],
            "timestamp": record.consent_given_at.isoformat() if record.consent_given_at else None,
            "expiresAt": record.consent_expires_at.isoformat() if record.consent_expires_at else None,
            "consentDetails": record.consent_details or {},
        },
        # None until the visitor verified an email
        "stableConsentId": stable_id,
        "message": "Valid consent found",
    }


async def verify_consent_id(
    db: AsyncSession, consent_id: str, widget_id: str, now: datetime | None = None
) -> dict:
    """Look up a consent id a visitor typed in on a new device."""
    now = now or datetime.now(timezone.utc)
    if not is_valid_visitor_id(consent_id):
        raise ValidationError(
            "Invalid Consent ID format. Expected format: CNST-XXXX-XXXX-XXXX",
            code="INVALID_FORMAT",
        )

    await get_widget(db, widget_id, active_only=True)

    record = await latest_record(db, widget_id, consent_id)
    if record is None:
        raise NotFoundError("Consent ID not found. Please check your ID and try again.")

    state = consent_state(record, now)
    if state == "expired":
        raise ExpiredError(
            "Consent has expired. Please provide consent again.",
            details={"expiredAt": record.consent_expires_at.isoformat()},
        )
    if state == "revoked":
        revoked_at = record.revoked_at.isoformat() if record.revoked_at else None
        raise RevokedError(
            "Consent was revoked. Please provide consent again.",
            details={"revokedAt": revoked_at},
        )

    logger.info("consent_id_verified", widget_id=widget_id, consent_id=consent_id[:12])
    return {
        "valid": True,
        "preferences": {
            "consentStatus": record.consent_status,
            "acceptedActivities": record.consented_activities or [],
            "rejectedActivities": record.rejected_activities or [],
            "timestamp": record.consent_given_at.isoformat() if record.consent_given_at else None,
            "expiresAt": record.consent_expires_at.isoformat() if record.consent_expires_at else None,
            "consentDetails": record.consent_details or {},
        },
        "message": "Consent ID verified successfully",
    }


async def _records_for_hash(db: AsyncSession, email_hash: str, widget_id: str) -> list[DpdpaConsentRecord]:
    return list((await db.execute(
        select(DpdpaConsentRecord)
        .where(
            DpdpaConsentRecord.widget_id == widget_id,
            DpdpaConsentRecord.visitor_email_hash == email_hash,
        )
        .order_by(DpdpaConsentRecord.consent_given_at.desc())
    )).scalars().all())


async def consents_by_email(db: AsyncSession, email: str, widget_id: str) -> dict:
    email_hash = hash_email(email)
    records = await _records_for_hash(db, email_hash, widget_id)
    return {
        "records": [serialize_record(r) for r in records],
        "totalRecords": len(records),
        "emailHash": email_hash,
    }


def latest_per_visitor(records: list[DpdpaConsentRecord]) -> dict[str, DpdpaConsentRecord]:
    latest: dict[str, DpdpaConsentRecord] = {}
    for record in records:
        current = latest.get(record.visitor_id)
        if current is None or record.consent_given_at > current.consent_given_at:
            latest[record.visitor_id] = record
    return latest


async def revoke_by_email(
    db: AsyncSession,
    email: str,
    widget_id: str,
    *,
    reason: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Withdraw every consent linked to an email on a widget.

    History is kept: each linked visitor whose latest record is not yet
    revoked gets a new ``revoked`` record. Preferences become ``withdrawn``.
    """
    now = now or datetime.now(timezone.utc)
    email_hash = hash_email(email)
    records = await _records_for_hash(db, email_hash, widget_id)

    revoked = []
    for visitor_id, last in latest_per_visitor(records).items():
        if consent_state(last, now) == "revoked":
            continue
        withdrawn = list(dict.fromkeys((last.consented_activities or []) + (last.rejected_activities or [])))
        db.add(DpdpaConsentRecord(
            widget_id=widget_id,
            visitor_id=visitor_id,
            visitor_token=last.visitor_token,
            visitor_email_hash=email_hash,
            consent_status=ConsentStatus.REVOKED.value,
            consented_activities=[],
            rejected_activities=withdrawn,
            consent_details={
                "revoked_at": now.isoformat(),
                "revocation_reason": reason or "User revoked consent via email",
            },
            consent_given_at=now,
            consent_expires_at=last.consent_expires_at,
            revoked_at=now,
            created_at=now,
        ))
        revoked.append(visitor_id)

    if revoked:
        await db.execute(
            update(VisitorConsentPreference)
            .where(
                VisitorConsentPreference.visitor_email_hash == email_hash,
                VisitorConsentPreference.widget_id == widget_id,
                VisitorConsentPreference.consent_status != "withdrawn",
            )
            .values(consent_status="withdrawn", last_updated=now)
        )
        await db.flush()

    logger.info("consent_revoked_by_email", widget_id=widget_id, email_hash=email_hash[:8], revoked=len(revoked))
    return {
        "revokedCount": len(revoked),
        "revokedVisitorIds": revoked,
        "message": f"Successfully revoked {len(revoked)} consent record(s)",
    }
