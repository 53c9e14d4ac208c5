"""Consent router: recording decisions posted by widgets.

Endpoints:
  POST /api/consent/record        record a cookie banner decision
  POST /api/dpdpa/consent-record  record a DPDPA widget decision
  GET  /api/dpdpa/consent-record  list the tenant's DPDPA records (auth)
"""

from __future__ import annotations

import math

import structlog
from fastapi import APIRouter, Query
from sqlalchemy import func, select

from consently.config import settings
from consently.deps import DB, Client, CurrentUser
from consently.exceptions import ValidationError
from consently.models.consent import DpdpaConsentRecord
from consently.models.widget import DpdpaWidgetConfig
from consently.schemas.consent import ConsentStatusLiteral, CookieConsentCreate, DpdpaConsentCreate
from consently.services.consent_recorder import ConsentSubmission, record_consent, serialize_record

logger = structlog.get_logger()

router = APIRouter()


@router.post("/consent/record")
async def record_cookie_consent(body: CookieConsentCreate, db: DB, client: Client):
    """Store a cookie banner decision (canonical log plus legacy copy)."""
    recorded = await record_consent(
        db,
        ConsentSubmission(
            widget_id=body.widget_id,
            visitor_id=body.consent_id,
            status=body.status,
            categories=body.categories or [],
            device_type=body.device_type,
            user_agent=body.user_agent,
            language=body.language,
        ),
        client,
    )
    return {
        "success": True,
        "data": {
            "id": recorded.id,
            "consent_id": recorded.visitor_id,
            "status": recorded.status,
            "created_at": recorded.created_at.isoformat(),
        },
    }


@router.post("/dpdpa/consent-record")
async def record_dpdpa_consent(body: DpdpaConsentCreate, db: DB, client: Client):
    """Store a DPDPA widget decision and refresh the visitor's preferences."""
    recorded = await record_consent(
        db,
        ConsentSubmission(
            widget_id=body.widget_id,
            visitor_id=body.visitor_id,
            status=body.consent_status,
            accepted_activities=body.accepted_activities,
            rejected_activities=body.rejected_activities,
            activity_purpose_consents=body.activity_purpose_consents,
            rule_context=body.rule_context.model_dump() if body.rule_context else None,
            visitor_email=body.visitor_email,
            metadata=body.metadata.model_dump(by_alias=True, exclude_none=True) if body.metadata else {},
            consent_duration=body.consent_duration,
        ),
        client,
        dpdpa_only=True,
        default_duration_days=settings.DEFAULT_CONSENT_DURATION_DAYS,
    )
    return {
        "success": True,
        "consentId": recorded.visitor_id,
        "expiresAt": recorded.expires_at.isoformat() if recorded.expires_at else None,
    }


@router.get("/dpdpa/consent-record")
async def list_dpdpa_consents(
    db: DB,
    user: CurrentUser,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    status: ConsentStatusLiteral | None = None,
    widget_id: str | None = Query(None, alias="widgetId"),
):
    """Paginated consent records across the tenant's widgets, newest first."""
    widget_ids = (await db.execute(
        select(DpdpaWidgetConfig.widget_id).where(DpdpaWidgetConfig.user_id == user["id"])
    )).scalars().all()

    if widget_id:
        if widget_id not in widget_ids:
            raise ValidationError("Widget does not belong to this account", code="INVALID_WIDGET")
        widget_ids = [widget_id]

    if not widget_ids:
        return {"data": [], "pagination": {"page": page, "limit": limit, "total": 0, "totalPages": 0}}

    query = select(DpdpaConsentRecord).where(DpdpaConsentRecord.widget_id.in_(widget_ids))
    if status:
        query = query.where(DpdpaConsentRecord.consent_status == status)

    total = (await db.execute(
        select(func.count()).select_from(query.subquery())
    )).scalar() or 0

    result = await db.execute(
        query.order_by(DpdpaConsentRecord.consent_given_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    records = result.scalars().all()

    return {
        "data": [serialize_record(r) for r in records],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    }
