"""Consent recording: validate, check quota, persist, fan out.

Two widget families share one pipeline:

- cookie banners write a canonical ``consent_logs`` row and a legacy
  ``consent_records`` copy;
- DPDPA widgets write a ``dpdpa_consent_records`` row plus per-activity
  ``visitor_consent_preferences``.

Every call appends; identical submissions produce distinct rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from consently.exceptions import NotFoundError, QuotaExceededError, ValidationError
from consently.models.analytics import ConsentEvent
from consently.models.consent import (
    ConsentStatus,
    CookieConsentLog,
    DpdpaConsentRecord,
    LegacyConsentRecord,
)
from consently.models.preference import VisitorConsentPreference
from consently.models.tenant import Tenant
from consently.models.widget import CookieWidgetConfig, DpdpaWidgetConfig
from consently.services.quota import check_consent_quota
from consently.services.visitor import (
    ClientContext,
    derive_visitor_token,
    detect_device_type,
    extract_browser,
    extract_os,
    hash_email,
)

logger = structlog.get_logger()

VALID_STATUSES = {s.value for s in ConsentStatus}


@dataclass
class ResolvedWidget:
    kind: str  # "cookie" | "dpdpa"
    config: CookieWidgetConfig | DpdpaWidgetConfig

    @property
    def widget_id(self) -> str:
        return self.config.widget_id

    @property
    def tenant_id(self) -> str:
        return self.config.user_id

    @property
    def domain(self) -> str:
        return self.config.domain


@dataclass
class ConsentSubmission:
    """A consent decision as posted by a widget.

    ``visitor_id`` is the banner's consent id for cookie widgets and the
    ``CNST-``/``vis_`` visitor id for DPDPA widgets.
    """

    widget_id: str
    visitor_id: str
    status: str
    categories: list[str] = field(default_factory=list)
    accepted_activities: list[str] = field(default_factory=list)
    rejected_activities: list[str] = field(default_factory=list)
    activity_purpose_consents: dict[str, list[str]] = field(default_factory=dict)
    rule_context: dict[str, Any] | None = None
    visitor_email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    consent_duration: int | None = None
    device_type: str | None = None
    user_agent: str | None = None
    language: str | None = None


@dataclass
class RecordedConsent:
    id: int | None
    kind: str
    widget_id: str
    visitor_id: str
    status: str
    created_at: datetime
    expires_at: datetime | None = None


def validate_submission(submission: ConsentSubmission) -> None:
    if not submission.widget_id or not submission.visitor_id or not submission.status:
        raise ValidationError("Missing required fields: widgetId, consentId, status")
    if submission.status not in VALID_STATUSES:
        raise ValidationError(
            "Invalid status. Must be one of: accepted, rejected, partial, revoked",
            code="INVALID_STATUS",
        )


async def resolve_widget(db: AsyncSession, widget_id: str, *, dpdpa_only: bool = False) -> ResolvedWidget:
    """Find the widget in the cookie table, then the DPDPA table."""
    if not dpdpa_only:
        cookie = (await db.execute(
            select(CookieWidgetConfig).where(CookieWidgetConfig.widget_id == widget_id)
        )).scalar_one_or_none()
        if cookie is not None:
            return ResolvedWidget(kind="cookie", config=cookie)

    dpdpa = (await db.execute(
        select(DpdpaWidgetConfig).where(DpdpaWidgetConfig.widget_id == widget_id)
    )).scalar_one_or_none()
    if dpdpa is not None:
        return ResolvedWidget(kind="dpdpa", config=dpdpa)

    raise NotFoundError("Invalid widget ID", code="INVALID_WIDGET")


async def enforce_quota(db: AsyncSession, widget: ResolvedWidget) -> None:
    tenant = await db.get(Tenant, widget.tenant_id)
    if tenant is None:
        logger.warning("quota_tenant_missing", widget_id=widget.widget_id, tenant_id=widget.tenant_id)
        return

    quota, entitlements = await check_consent_quota(db, tenant)
    if not quota.allowed:
        raise QuotaExceededError(used=quota.used, limit=quota.limit, plan=entitlements.plan.value)


async def linked_email_hash(db: AsyncSession, visitor_id: str, widget_id: str) -> str | None:
    """Email hash already attached to this visitor by a previous verification."""
    result = await db.execute(
        select(VisitorConsentPreference.visitor_email_hash)
        .where(
            VisitorConsentPreference.visitor_id == visitor_id,
            VisitorConsentPreference.widget_id == widget_id,
            VisitorConsentPreference.visitor_email_hash.is_not(None),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def upsert_preferences(
    db: AsyncSession,
    *,
    visitor_id: str,
    widget_id: str,
    accepted: list[str],
    rejected: list[str],
    email_hash: str | None,
    now: datetime,
) -> int:
    """Write the current per-activity state. ``created_at`` survives updates."""
    # One VALUES row per activity: ON CONFLICT cannot touch a key twice.
    accepted_ids = list(dict.fromkeys(accepted))
    rejected_ids = [a for a in dict.fromkeys(rejected) if a not in accepted_ids]
    rows = [
        {"activity_id": a, "consent_status": "accepted"} for a in accepted_ids
    ] + [
        {"activity_id": a, "consent_status": "rejected"} for a in rejected_ids
    ]
    if not rows:
        return 0

    stmt = pg_insert(VisitorConsentPreference).values([
        {
            "visitor_id": visitor_id,
            "widget_id": widget_id,
            "activity_id": row["activity_id"],
            "consent_status": row["consent_status"],
            "visitor_email_hash": email_hash,
            "created_at": now,
            "last_updated": now,
        }
        for row in rows
    ])
    stmt = stmt.on_conflict_do_update(
        constraint="uq_visitor_widget_activity",
        set_={
            "consent_status": stmt.excluded.consent_status,
            "last_updated": stmt.excluded.last_updated,
            "visitor_email_hash": func.coalesce(
                stmt.excluded.visitor_email_hash, VisitorConsentPreference.visitor_email_hash
            ),
        },
    )
    await db.execute(stmt)
    return len(rows)


async def record_consent(
    db: AsyncSession,
    submission: ConsentSubmission,
    client: ClientContext,
    *,
    dpdpa_only: bool = False,
    default_duration_days: int = 365,
) -> RecordedConsent:
    """Validate and persist one consent decision.

    With ``dpdpa_only`` the widget must be a DPDPA widget and the decision
    is stored as a DPDPA record. Otherwise it is logged as a banner consent
    against whichever widget the id resolves to.

    Raises:
        ValidationError: missing fields or unknown status (nothing written).
        NotFoundError: the widget id matches no widget.
        QuotaExceededError: the tenant used its monthly allowance (nothing written).
    """
    validate_submission(submission)
    widget = await resolve_widget(db, submission.widget_id, dpdpa_only=dpdpa_only)
    await enforce_quota(db, widget)

    now = datetime.now(timezone.utc)
    if dpdpa_only:
        recorded = await _write_dpdpa(db, widget, submission, client, now, default_duration_days)
    else:
        recorded = await _write_cookie(db, widget, submission, client, now)

    # Lazy import: the task module pulls in the Celery app.
    from consently.tasks.aggregate_analytics import trigger_widget_aggregation

    trigger_widget_aggregation(widget.widget_id)
    return recorded


async def _write_cookie(
    db: AsyncSession,
    widget: ResolvedWidget,
    submission: ConsentSubmission,
    client: ClientContext,
    now: datetime,
) -> RecordedConsent:
    user_agent = submission.user_agent or client.user_agent
    device_type = submission.device_type or detect_device_type(user_agent)
    language = submission.language or "en"

    log = CookieConsentLog(
        user_id=widget.tenant_id,
        widget_id=widget.widget_id,
        consent_id=submission.visitor_id,
        visitor_token=derive_visitor_token(client.ip_address, user_agent, widget.domain),
        consent_type="cookie",
        status=submission.status,
        categories=submission.categories or [],
        device_info={
            "type": device_type,
            "browser": extract_browser(user_agent),
            "os": extract_os(user_agent),
        },
        ip_address=client.ip_address,
        user_agent=user_agent,
        language=language,
        consent_method="banner",
        created_at=now,
    )
    db.add(log)

    # Older dashboards still read consent_records.
    db.add(LegacyConsentRecord(
        user_id=widget.tenant_id,
        consent_id=submission.visitor_id,
        consent_type="cookie",
        status=submission.status,
        categories=submission.categories or [],
        device_type=device_type,
        ip_address=client.ip_address,
        user_agent=user_agent,
        language=language,
        created_at=now,
    ))
    await db.flush()

    logger.info(
        "consent_recorded",
        kind="cookie",
        widget_id=widget.widget_id,
        status=submission.status,
        consent_id=submission.visitor_id[:12],
    )
    return RecordedConsent(
        id=log.id,
        kind="cookie",
        widget_id=widget.widget_id,
        visitor_id=submission.visitor_id,
        status=submission.status,
        created_at=now,
    )


async def _write_dpdpa(
    db: AsyncSession,
    widget: ResolvedWidget,
    submission: ConsentSubmission,
    client: ClientContext,
    now: datetime,
    default_duration_days: int,
) -> RecordedConsent:
    meta = submission.metadata or {}
    user_agent = meta.get("userAgent") or submission.user_agent or client.user_agent
    duration = submission.consent_duration or widget.config.consent_duration or default_duration_days
    expires_at = now + timedelta(days=duration)

    # Preferences only carry a hash that went through OTP verification.
    linked_hash = await linked_email_hash(db, submission.visitor_id, widget.widget_id)
    email_hash = hash_email(submission.visitor_email) if submission.visitor_email else linked_hash

    details: dict[str, Any] = {
        "activityPurposeConsents": submission.activity_purpose_consents or {},
    }
    if submission.rule_context:
        details["ruleContext"] = submission.rule_context

    revoked_at = now if submission.status == ConsentStatus.REVOKED.value else None
    if revoked_at:
        details["revoked_at"] = revoked_at.isoformat()

    device_type = meta.get("deviceType") or detect_device_type(user_agent)
    language = meta.get("language") or submission.language or (client.accept_language or "").split(",")[0] or None

    record = DpdpaConsentRecord(
        widget_id=widget.widget_id,
        visitor_id=submission.visitor_id,
        visitor_token=derive_visitor_token(client.ip_address, user_agent, widget.domain),
        visitor_email=submission.visitor_email,
        visitor_email_hash=email_hash,
        consent_status=submission.status,
        consented_activities=list(submission.accepted_activities or []),
        rejected_activities=list(submission.rejected_activities or []),
        consent_details=details,
        ip_address=client.ip_address,
        user_agent=user_agent,
        device_type=device_type,
        browser=meta.get("browser") or extract_browser(user_agent),
        os=meta.get("os") or extract_os(user_agent),
        country=meta.get("country"),
        language=language,
        referrer=meta.get("referrer") or client.referrer,
        consent_given_at=now,
        consent_expires_at=expires_at,
        revoked_at=revoked_at,
        created_at=now,
    )
    db.add(record)

    await upsert_preferences(
        db,
        visitor_id=submission.visitor_id,
        widget_id=widget.widget_id,
        accepted=list(submission.accepted_activities or []),
        rejected=list(submission.rejected_activities or []),
        email_hash=linked_hash,
        now=now,
    )

    if submission.rule_context:
        db.add(ConsentEvent(
            widget_id=widget.widget_id,
            visitor_id=submission.visitor_id,
            rule_id=submission.rule_context.get("rule_id"),
            rule_name=submission.rule_context.get("rule_name"),
            consent_status=submission.status,
            accepted_activities=list(submission.accepted_activities or []),
            rejected_activities=list(submission.rejected_activities or []),
            device_type=device_type,
            country=meta.get("country"),
            language=language,
            consented_at=now,
        ))

    await db.flush()

    logger.info(
        "consent_recorded",
        kind="dpdpa",
        widget_id=widget.widget_id,
        status=submission.status,
        visitor_id=submission.visitor_id[:12],
        accepted=len(submission.accepted_activities or []),
        rejected=len(submission.rejected_activities or []),
        rule_id=(submission.rule_context or {}).get("rule_id"),
    )
    return RecordedConsent(
        id=record.id,
        kind="dpdpa",
        widget_id=widget.widget_id,
        visitor_id=submission.visitor_id,
        status=submission.status,
        created_at=now,
        expires_at=expires_at,
    )


def serialize_record(record: DpdpaConsentRecord) -> dict:
    """Public JSON shape of a DPDPA consent record. Never includes the email."""
    details = record.consent_details or {}
    return {
        "id": record.id,
        "widgetId": record.widget_id,
        "visitorId": record.visitor_id,
        "consentStatus": record.consent_status,
        "acceptedActivities": record.consented_activities or [],
        "rejectedActivities": record.rejected_activities or [],
        "activityPurposeConsents": details.get("activityPurposeConsents", {}),
        "deviceType": record.device_type,
        "browser": record.browser,
        "country": record.country,
        "language": record.language,
        "consentedAt": record.consent_given_at.isoformat() if record.consent_given_at else None,
        "expiresAt": record.consent_expires_at.isoformat() if record.consent_expires_at else None,
        "revokedAt": record.revoked_at.isoformat() if record.revoked_at else None,
    }
